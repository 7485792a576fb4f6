from __future__ import annotations

import asyncio
import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence

from mamflow.core.config import ProxyRendition, Settings
from mamflow.core.errors import TranscodeFailure
from mamflow.core.logging import get_logger

from .ffprobe_parser import MediaTechnicalMetadata, parse_ffprobe_json
from .thumbnails import ThumbnailInfo, measure_thumbnail, thumbnail_command

SEGMENT_PATTERN = "segment_%04d.ts"
_SEGMENT_NAME = re.compile(r"^segment_(\d+)\.ts$")


@dataclass(slots=True)
class ProcessOutput:
    returncode: int
    stdout: str
    stderr: str


class Transcoder:
    """Runs ffprobe/ffmpeg as child processes with explicit argument lists."""

    def __init__(
        self,
        *,
        ffmpeg_path: str = "ffmpeg",
        ffprobe_path: str = "ffprobe",
        timeout_s: float = 1800.0,
        thumbnail_size: tuple[int, int] = (640, 360),
    ):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.timeout_s = timeout_s
        self.thumbnail_size = thumbnail_size
        self.logger = get_logger(component="transcoder")

    @classmethod
    def from_settings(cls, settings: Settings) -> "Transcoder":
        return cls(
            ffmpeg_path=settings.ffmpeg_path,
            ffprobe_path=settings.ffprobe_path,
            timeout_s=settings.transcode_timeout_s,
            thumbnail_size=(settings.thumbnail_width, settings.thumbnail_height),
        )

    async def inspect_media(self, source: str) -> MediaTechnicalMetadata:
        command = [
            self.ffprobe_path,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_format",
            "-show_streams",
            source,
        ]
        output = await self._run(command)
        try:
            raw = json.loads(output.stdout)
            return parse_ffprobe_json(raw)
        except ValueError as exc:
            raise TranscodeFailure(f"unusable ffprobe output: {exc}") from exc

    async def thumbnail(self, source: str, output: Path) -> ThumbnailInfo:
        width, height = self.thumbnail_size
        await self._run(thumbnail_command(self.ffmpeg_path, source, output, width, height))
        try:
            return await asyncio.to_thread(measure_thumbnail, output)
        except RuntimeError as exc:
            raise TranscodeFailure(str(exc)) from exc

    async def proxy(self, source: str, output: Path, rendition: ProxyRendition) -> Path:
        command = [
            self.ffmpeg_path,
            "-nostdin",
            "-v",
            "error",
            "-i",
            source,
            "-c:v",
            rendition.codec,
            "-b:v",
            rendition.bitrate,
            "-vf",
            f"scale={rendition.width}:{rendition.height}",
            "-y",
            str(output),
        ]
        await self._run(command)
        if not output.is_file() or output.stat().st_size == 0:
            raise TranscodeFailure(f"proxy {rendition.name} was not written")
        return output

    async def segment(self, source: str, out_dir: Path, duration_s: int) -> List[Path]:
        out_dir.mkdir(parents=True, exist_ok=True)
        command = [
            self.ffmpeg_path,
            "-nostdin",
            "-v",
            "error",
            "-i",
            source,
            "-c",
            "copy",
            "-f",
            "segment",
            "-segment_time",
            str(duration_s),
            "-reset_timestamps",
            "1",
            str(out_dir / SEGMENT_PATTERN),
        ]
        await self._run(command)
        segments = list_segment_files(out_dir)
        if not segments:
            raise TranscodeFailure("segmentation produced no segments")
        return segments

    async def _run(self, command: Sequence[str]) -> ProcessOutput:
        self.logger.debug("transcoder_exec", command=list(command))
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as exc:
            raise TranscodeFailure(f"cannot execute {command[0]}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_s)
        except asyncio.TimeoutError as exc:
            await _terminate(proc)
            raise TranscodeFailure(f"{Path(command[0]).name} timed out after {self.timeout_s}s") from exc
        except asyncio.CancelledError:
            await _terminate(proc)
            raise

        out = ProcessOutput(
            returncode=proc.returncode if proc.returncode is not None else -1,
            stdout=stdout.decode("utf-8", errors="replace"),
            stderr=stderr.decode("utf-8", errors="replace"),
        )
        if out.returncode != 0:
            tool = Path(command[0]).name
            detail = out.stderr.strip().splitlines()[-1] if out.stderr.strip() else "no output"
            raise TranscodeFailure(
                f"{tool} exited with {out.returncode}: {detail}",
                returncode=out.returncode,
                stderr=out.stderr,
            )
        return out


def list_segment_files(out_dir: Path) -> List[Path]:
    """Segment files in ascending index order."""
    indexed = []
    for path in out_dir.iterdir():
        match = _SEGMENT_NAME.match(path.name)
        if match:
            indexed.append((int(match.group(1)), path))
    return [path for _, path in sorted(indexed)]


async def _terminate(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    await proc.wait()


__all__ = ["ProcessOutput", "Transcoder", "SEGMENT_PATTERN", "list_segment_files"]
