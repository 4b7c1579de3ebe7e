from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Protocol, Sequence

from .faststart import process_video_for_fast_start
from .probe import get_video_aspect_ratio


class MediaToolchain(Protocol):
    """External media tools the ingest pipeline depends on."""

    def probe(self, path: Path) -> str: ...

    def remux(self, path: Path) -> Path: ...


class FFmpegToolchain:
    def __init__(self, *, ffprobe: str = "ffprobe", ffmpeg: str = "ffmpeg"):
        self.ffprobe = ffprobe
        self.ffmpeg = ffmpeg

    def probe(self, path: Path) -> str:
        return get_video_aspect_ratio(path, ffprobe=self.ffprobe)

    def remux(self, path: Path) -> Path:
        return process_video_for_fast_start(path, ffmpeg=self.ffmpeg)

    def check(self) -> dict[str, bool]:
        return {
            "ffmpeg": binary_available([self.ffmpeg, "-version"]),
            "ffprobe": binary_available([self.ffprobe, "-version"]),
        }


def binary_available(command: Sequence[str]) -> bool:
    try:
        subprocess.run(list(command), stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, check=True)
    except (OSError, subprocess.CalledProcessError):
        return False
    return True


def binary_version(command: Sequence[str]) -> str:
    try:
        proc = subprocess.run(list(command), check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except (OSError, subprocess.CalledProcessError):
        return "unknown"
    output = proc.stdout.strip() or proc.stderr.strip()
    if not output:
        return "unknown"
    return output.splitlines()[0].strip()


__all__ = ["MediaToolchain", "FFmpegToolchain", "binary_available", "binary_version"]
