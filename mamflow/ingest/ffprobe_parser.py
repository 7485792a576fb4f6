from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from . import PARSER_VERSION

StreamType = Literal["video", "audio", "data", "subtitle", "other"]


@dataclass(slots=True)
class VideoSummary:
    codec: str
    width_px: int
    height_px: int
    frame_rate_fps: Optional[float]
    profile: Optional[str] = None
    pix_fmt: Optional[str] = None


@dataclass(slots=True)
class AudioSummary:
    codec: str
    sample_rate_hz: int
    channels: int
    channel_layout: Optional[str]
    bitrate_kbps: Optional[int] = None


@dataclass(slots=True)
class MediaTechnicalMetadata:
    """Technical attributes extracted from the probing tool's JSON output."""

    duration_s: float
    container: str
    bitrate_kbps: Optional[int]
    video: Optional[VideoSummary]
    audio: Optional[AudioSummary]
    stream_count: int = 0
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["parser"] = PARSER_VERSION
        return payload


def parse_ffprobe_json(raw: Dict[str, Any]) -> MediaTechnicalMetadata:
    """Normalise ffprobe JSON into ``MediaTechnicalMetadata``.

    Args:
        raw: The decoded output of ``ffprobe -show_format -show_streams``.

    Returns:
        The extracted technical metadata.

    Raises:
        ValueError: If the payload carries neither a format section nor streams.
    """
    if not isinstance(raw, dict):
        raise ValueError("ffprobe output is not a JSON object")
    format_info = raw.get("format") or {}
    streams = raw.get("streams") or []
    if not format_info and not streams:
        raise ValueError("ffprobe output has no format or streams")

    warnings: List[str] = []

    duration_s, duration_warning = _parse_duration(format_info.get("duration"))
    if duration_warning:
        warnings.append(duration_warning)

    video_streams, audio_streams = _split_streams(streams)

    video_summary, video_warning = _summarise_video_stream(video_streams)
    if video_warning:
        warnings.append(video_warning)

    audio_summary, audio_warning = _summarise_audio_stream(audio_streams)
    if audio_warning:
        warnings.append(audio_warning)

    return MediaTechnicalMetadata(
        duration_s=duration_s,
        container=format_info.get("format_name") or format_info.get("format_long_name") or "unknown",
        bitrate_kbps=_parse_bitrate_kbps(format_info.get("bit_rate")),
        video=video_summary,
        audio=audio_summary,
        stream_count=len(streams),
        warnings=sorted(set(warnings)),
    )


def _parse_duration(raw_value: Any) -> Tuple[float, Optional[str]]:
    """Parse the duration from ffprobe.

    Args:
        raw_value: The raw duration value.

    Returns:
        A tuple containing the duration in seconds and an optional warning.
    """
    if raw_value in (None, "N/A", ""):
        return 0.0, "duration_unavailable"
    try:
        value = float(raw_value)
    except (TypeError, ValueError):
        return 0.0, "duration_unavailable"
    if math.isnan(value) or value < 0:
        return 0.0, "duration_unavailable"
    return value, None


def _parse_bitrate_kbps(raw_value: Any) -> Optional[int]:
    """Parse a bitrate in bits per second into kbps, or None when unavailable."""
    if raw_value in (None, "N/A", ""):
        return None
    try:
        return int(round(int(raw_value) / 1000))
    except (TypeError, ValueError):
        return None


def _split_streams(streams: Iterable[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    video_streams: List[Dict[str, Any]] = []
    audio_streams: List[Dict[str, Any]] = []
    for stream in streams:
        stream_type = _normalise_stream_type(stream.get("codec_type"))
        if stream_type == "video":
            disposition = stream.get("disposition") or {}
            # cover art is reported as a single-frame video stream
            if isinstance(disposition, dict) and disposition.get("attached_pic"):
                continue
            video_streams.append(stream)
        elif stream_type == "audio":
            audio_streams.append(stream)
    return video_streams, audio_streams


def _normalise_stream_type(value: Any) -> StreamType:
    if not isinstance(value, str):
        return "other"
    value_lower = value.lower()
    if value_lower in {"video", "audio", "data", "subtitle"}:
        return value_lower  # type: ignore[return-value]
    return "other"


def _int_or_none(value: Any) -> Optional[int]:
    if value in (None, "N/A", ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _disposition_default(disposition: Any) -> Optional[bool]:
    if not isinstance(disposition, dict):
        return None
    default_value = disposition.get("default")
    if default_value is None:
        return None
    return bool(default_value)


def _summarise_video_stream(streams: List[Dict[str, Any]]) -> Tuple[Optional[VideoSummary], Optional[str]]:
    """Summarise the selected video stream.

    Args:
        streams: The video streams.

    Returns:
        A tuple containing the video summary and an optional warning.
    """
    if not streams:
        return None, None

    selected = _select_video_stream(streams)
    frame_rate = _frame_rate_from_stream(selected)
    warning = "frame_rate_unavailable" if frame_rate is None else None

    summary = VideoSummary(
        codec=selected.get("codec_name") or "unknown",
        width_px=_int_or_none(selected.get("width")) or 0,
        height_px=_int_or_none(selected.get("height")) or 0,
        frame_rate_fps=frame_rate,
        profile=selected.get("profile"),
        pix_fmt=selected.get("pix_fmt"),
    )
    return summary, warning


def _select_video_stream(streams: List[Dict[str, Any]]) -> Dict[str, Any]:
    default_streams = [stream for stream in streams if _disposition_default(stream.get("disposition")) is True]
    if default_streams:
        return default_streams[0]

    def score(item: Dict[str, Any]) -> int:
        width = _int_or_none(item.get("width")) or 0
        height = _int_or_none(item.get("height")) or 0
        return width * height

    return max(streams, key=score)


def _summarise_audio_stream(streams: List[Dict[str, Any]]) -> Tuple[Optional[AudioSummary], Optional[str]]:
    """Summarise the selected audio stream.

    Args:
        streams: The audio streams.

    Returns:
        A tuple containing the audio summary and an optional warning.
    """
    if not streams:
        return None, "no_audio_stream"

    selected = _select_audio_stream(streams)
    summary = AudioSummary(
        codec=selected.get("codec_name") or "unknown",
        sample_rate_hz=_int_or_none(selected.get("sample_rate")) or 0,
        channels=_int_or_none(selected.get("channels")) or 0,
        channel_layout=selected.get("channel_layout") or None,
        bitrate_kbps=_parse_bitrate_kbps(selected.get("bit_rate")),
    )
    return summary, None


def _select_audio_stream(streams: List[Dict[str, Any]]) -> Dict[str, Any]:
    default_streams = [stream for stream in streams if _disposition_default(stream.get("disposition")) is True]
    if default_streams:
        return default_streams[0]

    def score(item: Dict[str, Any]) -> Tuple[int, int]:
        channels = _int_or_none(item.get("channels")) or 0
        sample_rate = _int_or_none(item.get("sample_rate")) or 0
        return channels, sample_rate

    return max(streams, key=score)


def _frame_rate_from_stream(stream: Dict[str, Any]) -> Optional[float]:
    for key in ("avg_frame_rate", "r_frame_rate"):
        rate = _parse_rational(stream.get(key))
        if rate is not None:
            return rate
    return None


def _parse_rational(value: Optional[str]) -> Optional[float]:
    """Parse an ffprobe rational such as ``30000/1001``.

    Args:
        value: The rational number as a string.

    Returns:
        The value rounded to two decimals, or None if it's not valid.
    """
    if not value or value in {"0/0", "N/A"}:
        return None
    if "/" not in value:
        try:
            return round(float(value), 2)
        except ValueError:
            return None
    numerator_str, denominator_str = value.split("/", 1)
    try:
        numerator = float(numerator_str)
        denominator = float(denominator_str)
    except ValueError:
        return None
    if math.isclose(denominator, 0.0):
        return None
    return round(numerator / denominator, 2)


__all__ = [
    "AudioSummary",
    "MediaTechnicalMetadata",
    "VideoSummary",
    "parse_ffprobe_json",
]
