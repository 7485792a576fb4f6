from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List

NANOS_PER_SECOND = 1_000_000_000


@dataclass(frozen=True, slots=True)
class TimeRange:
    """Half-open ``[start, end)`` interval in nanoseconds."""

    start_ns: int
    end_ns: int

    def __post_init__(self) -> None:
        if self.start_ns < 0 or self.end_ns <= self.start_ns:
            raise ValueError(f"invalid time range [{self.start_ns}, {self.end_ns})")

    @classmethod
    def from_seconds(cls, start_s: float, end_s: float) -> "TimeRange":
        return cls(_to_nanos(start_s), _to_nanos(end_s))

    @property
    def start_s(self) -> float:
        return self.start_ns / NANOS_PER_SECOND

    @property
    def end_s(self) -> float:
        return self.end_ns / NANOS_PER_SECOND

    def to_timerange(self) -> str:
        """Render the registry timerange notation, e.g. ``[0:0_60:0)``."""
        return f"[{_format_timestamp(self.start_ns)}_{_format_timestamp(self.end_ns)})"


@dataclass(frozen=True, slots=True)
class SegmentChunk:
    index: int
    path: Path
    time_range: TimeRange


def segment_time_ranges(count: int, source_duration_s: float, segment_duration_s: int) -> List[TimeRange]:
    """Return contiguous windows ``[i*d, (i+1)*d)`` for ``count`` segments.

    When the source duration is known, ``count`` must equal
    ``expected_segment_count`` and the last window ends exactly at the
    duration, so 125 s at 60 s yields ``[0,60) [60,120) [120,125)``.
    """
    if segment_duration_s <= 0:
        raise ValueError("segment duration must be positive")
    if count < 0:
        raise ValueError("segment count cannot be negative")

    step_ns = segment_duration_s * NANOS_PER_SECOND
    duration_ns = _to_nanos(source_duration_s) if source_duration_s > 0 else 0
    if duration_ns:
        expected = expected_segment_count(source_duration_s, segment_duration_s)
        if count != expected:
            raise ValueError(
                f"{count} segment(s) do not cover {source_duration_s}s at {segment_duration_s}s (expected {expected})"
            )
    ranges: List[TimeRange] = []
    for index in range(count):
        start = index * step_ns
        end = (index + 1) * step_ns
        if index == count - 1 and duration_ns:
            end = duration_ns
        ranges.append(TimeRange(start, end))
    return ranges


def expected_segment_count(source_duration_s: float, segment_duration_s: int) -> int:
    if source_duration_s <= 0:
        return 0
    step_ns = segment_duration_s * NANOS_PER_SECOND
    duration_ns = _to_nanos(source_duration_s)
    return -(-duration_ns // step_ns)


def build_chunks(paths: List[Path], source_duration_s: float, segment_duration_s: int) -> List[SegmentChunk]:
    ranges = segment_time_ranges(len(paths), source_duration_s, segment_duration_s)
    return [SegmentChunk(index=i, path=path, time_range=rng) for i, (path, rng) in enumerate(zip(paths, ranges))]


def _to_nanos(seconds: float) -> int:
    return int(round(seconds * NANOS_PER_SECOND))


def _format_timestamp(nanos: int) -> str:
    seconds, remainder = divmod(nanos, NANOS_PER_SECOND)
    return f"{seconds}:{remainder}"


__all__ = [
    "NANOS_PER_SECOND",
    "SegmentChunk",
    "TimeRange",
    "build_chunks",
    "expected_segment_count",
    "segment_time_ranges",
]
