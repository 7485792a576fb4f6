from __future__ import annotations

import asyncio
import shutil
import subprocess
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from mamflow.core.auth import issue_token, require_scope
from mamflow.core.config import Settings, get_settings

from .schemas import EnvCheckResponse


router = APIRouter(prefix="/admin", tags=["admin"])

DEV_ENVIRONMENTS = frozenset({"development", "dev", "test"})


class DevTokenRequest(BaseModel):
    user_id: str | None = Field(default=None, examples=["editor-7"])
    scopes: list[str] = Field(default_factory=lambda: ["admin"])
    ttl_minutes: int = Field(default=60, ge=1, le=24 * 60)


class DevTokenResponse(BaseModel):
    token: str


def binary_available(binary: str) -> bool:
    """True when ``binary`` is on PATH and answers ``-version``."""
    if shutil.which(binary) is None:
        return False
    try:
        subprocess.run([binary, "-version"], stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True, timeout=10)
    except (OSError, subprocess.SubprocessError):
        return False
    return True


@router.get(
    "/env-check",
    response_model=EnvCheckResponse,
    dependencies=[Depends(require_scope("admin"))],
    summary="Check the transcoding toolchain",
)
async def env_check(settings: Settings = Depends(get_settings)) -> EnvCheckResponse:
    ffmpeg, ffprobe = await asyncio.gather(
        asyncio.to_thread(binary_available, settings.ffmpeg_path),
        asyncio.to_thread(binary_available, settings.ffprobe_path),
    )
    return EnvCheckResponse(ffmpeg=ffmpeg, ffprobe=ffprobe)


@router.post("/dev-token", response_model=DevTokenResponse, summary="Issue a development token")
async def dev_token(payload: DevTokenRequest, settings: Settings = Depends(get_settings)) -> DevTokenResponse:
    if settings.environment_lower not in DEV_ENVIRONMENTS:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="dev_token_disabled")
    token = issue_token(
        settings,
        user_id=payload.user_id,
        scopes=payload.scopes,
        ttl=timedelta(minutes=payload.ttl_minutes),
    )
    return DevTokenResponse(token=token)


__all__ = ["router", "binary_available"]
