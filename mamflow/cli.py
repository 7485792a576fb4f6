from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from .api.v1.routes_admin import binary_available
from .core.config import get_settings
from .core.errors import TranscodeFailure
from .ingest.segments import expected_segment_count, segment_time_ranges
from .ingest.transcoder import Transcoder

console = Console()


def main(argv: Optional[list[str]] = None) -> None:
    """The main entry point for the CLI.

    Args:
        argv: The command-line arguments.
    """
    parser = _build_parser()
    args = parser.parse_args(argv)

    if getattr(args, "check", False):
        _run_environment_check()
        return

    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    args.func(args)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="mamflow ingest developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg/ffprobe dependencies")

    subparsers = parser.add_subparsers(dest="command")

    inspect_parser = subparsers.add_parser("inspect", help="Run ffprobe and print the normalised technical metadata")
    inspect_parser.add_argument("--file", required=True, help="Path to the source media file")
    inspect_parser.set_defaults(func=_cmd_inspect)

    segments_parser = subparsers.add_parser("segments", help="Print the segment timeranges for a source duration")
    segments_parser.add_argument("--duration", type=float, required=True, help="Source duration in seconds")
    segments_parser.add_argument(
        "--segment",
        type=int,
        default=None,
        help="Segment window length in seconds (defaults to the configured value).",
    )
    segments_parser.set_defaults(func=_cmd_segments)
    return parser


def _cmd_inspect(args: argparse.Namespace) -> None:
    """Run ffprobe against a local file and print the parsed result.

    Args:
        args: The command-line arguments.
    """
    media_path = Path(args.file).expanduser().resolve()
    if not media_path.exists():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)

    transcoder = Transcoder.from_settings(get_settings())
    try:
        metadata = asyncio.run(transcoder.inspect_media(str(media_path)))
    except TranscodeFailure as exc:
        console.print(f"[red]ffprobe failed:[/] {exc}")
        sys.exit(3)
    console.print_json(data=metadata.to_dict())


def _cmd_segments(args: argparse.Namespace) -> None:
    segment_s = args.segment or get_settings().segment_duration_s
    if args.duration <= 0 or segment_s <= 0:
        console.print("[red]Duration and segment length must be positive.[/]")
        sys.exit(2)

    count = expected_segment_count(args.duration, segment_s)
    table = Table(title=f"{count} segment(s) of {segment_s}s")
    table.add_column("index", justify="right")
    table.add_column("timerange")
    table.add_column("seconds")
    for index, window in enumerate(segment_time_ranges(count, args.duration, segment_s)):
        table.add_row(str(index), window.to_timerange(), f"{window.start_s:g}-{window.end_s:g}")
    console.print(table)


def _run_environment_check() -> None:
    """Check for the presence of required external dependencies."""
    settings = get_settings()
    results = {
        "ffmpeg": binary_available(settings.ffmpeg_path),
        "ffprobe": binary_available(settings.ffprobe_path),
    }

    console.rule("[bold]Environment Check")
    for label, ok in results.items():
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'}")

    if not all(results.values()):
        console.print("[red]Missing dependencies detected. Install ffmpeg or set MAMFLOW_FFMPEG_PATH/MAMFLOW_FFPROBE_PATH.[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
