from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from rich.console import Console

from .core.config import get_settings
from .media import ACCEPTED_VIDEO_TYPE
from .media.classification import build_storage_key, classify_aspect_ratio
from .media.faststart import RemuxError, process_video_for_fast_start
from .media.naming import generate_asset_name
from .media.probe import ProbeError, get_video_aspect_ratio
from .media.toolchain import binary_version

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
    parser = argparse.ArgumentParser(description="Tubely developer CLI")
    parser.add_argument("--check", action="store_true", help="Validate presence of ffmpeg/ffprobe dependencies")

    subparsers = parser.add_subparsers(dest="command")

    probe_parser = subparsers.add_parser("probe", help="Print the aspect ratio, class and storage key for a video")
    probe_parser.add_argument("--file", required=True, help="Path to the source media file")
    probe_parser.set_defaults(func=_cmd_probe)

    faststart_parser = subparsers.add_parser("faststart", help="Remux a video with its index moved to the front")
    faststart_parser.add_argument("--file", required=True, help="Path to the source media file")
    faststart_parser.set_defaults(func=_cmd_faststart)

    serve_parser = subparsers.add_parser("serve", help="Run the API with uvicorn")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8091)
    serve_parser.set_defaults(func=_cmd_serve)
    return parser


def _cmd_probe(args: argparse.Namespace) -> None:
    """Probe a file and show where the upload pipeline would publish it.

    Args:
        args: The command-line arguments.
    """
    media_path = _existing_file(args.file)
    settings = get_settings()
    try:
        ratio = get_video_aspect_ratio(media_path, ffprobe=settings.ffprobe_binary)
    except ProbeError as exc:
        console.print(f"[red]ffprobe failed:[/] {exc}")
        sys.exit(3)

    classification = classify_aspect_ratio(ratio)
    asset = generate_asset_name(ACCEPTED_VIDEO_TYPE)
    console.print_json(
        data={
            "file": str(media_path),
            "aspect_ratio": ratio,
            "classification": classification.value,
            "example_key": build_storage_key(classification, asset),
        }
    )


def _cmd_faststart(args: argparse.Namespace) -> None:
    media_path = _existing_file(args.file)
    settings = get_settings()
    try:
        output = process_video_for_fast_start(media_path, ffmpeg=settings.ffmpeg_binary)
    except RemuxError as exc:
        console.print(f"[red]ffmpeg failed:[/] {exc}")
        sys.exit(3)
    console.print(f"[green]Fast-start copy written to {output}[/]")


def _cmd_serve(args: argparse.Namespace) -> None:
    import uvicorn

    uvicorn.run("tubely.main:create_app", factory=True, host=args.host, port=args.port)


def _existing_file(raw: str) -> Path:
    media_path = Path(raw).expanduser().resolve()
    if not media_path.is_file():
        console.print(f"[red]File not found: {media_path}[/]")
        sys.exit(2)
    return media_path


def _run_environment_check() -> None:
    """Check for the presence of required external dependencies."""
    settings = get_settings()
    checks = {
        "ffmpeg": [settings.ffmpeg_binary, "-version"],
        "ffprobe": [settings.ffprobe_binary, "-version"],
    }
    results = {label: binary_version(cmd) for label, cmd in checks.items()}

    console.rule("[bold]Environment Check")
    for label, version in results.items():
        ok = version != "unknown"
        console.print(f"[bold]{label}[/]: {'✅' if ok else '❌'} {version if ok else ''}")

    if "unknown" in results.values():
        console.print("[red]Missing dependencies detected. Install ffmpeg (which ships ffprobe).[/]")
        sys.exit(1)
    console.print("[green]Environment looks good![/]")


if __name__ == "__main__":
    main()
