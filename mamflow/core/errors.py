"""Error taxonomy shared by the ingest pipeline and its adapters."""

from __future__ import annotations

from typing import Optional


class MamflowError(Exception):
    """Root of every error raised by mamflow itself."""


class InvalidRequest(MamflowError):
    """The caller supplied an ingest request that cannot be accepted."""


class PersistenceFailure(MamflowError):
    """The asset store is unreachable or rejected a write."""


class AssetNotFound(PersistenceFailure):
    def __init__(self, asset_id: str):
        super().__init__(f"asset_not_found:{asset_id}")
        self.asset_id = asset_id


class InvalidStatusTransition(PersistenceFailure):
    def __init__(self, asset_id: str, current: str, requested: str):
        super().__init__(f"invalid status transition {current} -> {requested} for asset {asset_id}")
        self.asset_id = asset_id
        self.current = current
        self.requested = requested


class RegistryError(MamflowError):
    """Base class for failed calls against the flow/source registry."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RegistryUnavailable(RegistryError):
    """Timeout, transport failure or server-side error. Retryable."""


class RegistryRejected(RegistryError):
    """The registry understood the call and refused it. Not retryable."""


class TranscodeFailure(MamflowError):
    """The media tool failed or produced unusable output."""

    def __init__(self, message: str, *, returncode: Optional[int] = None, stderr: Optional[str] = None):
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class StorageFailure(MamflowError):
    """A segment upload did not complete."""

    def __init__(self, message: str, *, retryable: bool = False):
        super().__init__(message)
        self.retryable = retryable


class CacheInvalidationError(MamflowError):
    """Evicting a cached read-view failed. Never fatal to a pipeline run."""


class HandoffFailed(MamflowError):
    """The asset was persisted but its pipeline run could not be started."""

    def __init__(self, asset_id: str, reason: str):
        super().__init__(f"pipeline handoff failed for asset {asset_id}: {reason}")
        self.asset_id = asset_id


class PipelineCancelled(MamflowError):
    pass


class DeadlineExceeded(MamflowError):
    pass


class PipelineStageError(MamflowError):
    """A pipeline stage failed; carries everything needed for the asset diagnostic."""

    def __init__(
        self,
        stage: str,
        message: str,
        cause: BaseException,
        *,
        segment_index: Optional[int] = None,
    ):
        super().__init__(f"{message}: {cause}")
        self.stage = stage
        self.message = message
        self.cause = cause
        self.segment_index = segment_index


__all__ = [
    "MamflowError",
    "InvalidRequest",
    "PersistenceFailure",
    "AssetNotFound",
    "InvalidStatusTransition",
    "RegistryError",
    "RegistryUnavailable",
    "RegistryRejected",
    "TranscodeFailure",
    "StorageFailure",
    "CacheInvalidationError",
    "HandoffFailed",
    "PipelineCancelled",
    "DeadlineExceeded",
    "PipelineStageError",
]
