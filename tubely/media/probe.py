from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any, Dict, Optional

__all__ = ["ProbeError", "get_video_aspect_ratio", "parse_aspect_ratio"]


class ProbeError(RuntimeError):
    """ffprobe could not run or did not describe a usable video stream."""


def get_video_aspect_ratio(path: Path, *, ffprobe: str = "ffprobe") -> str:
    """Return the display aspect ratio of the first stream with real dimensions.

    The file is only read. Callers that will read it again must reposition
    their own handles afterwards.

    Args:
        path: A local, fully written media file.
        ffprobe: The ffprobe executable to invoke.

    Returns:
        The ratio as reported by ffprobe (e.g. ``16:9``), or ``""`` when the
        stream carries no ratio.

    Raises:
        ProbeError: If ffprobe cannot start, exits nonzero, prints something
            other than stream JSON, or lists no stream with dimensions.
    """
    raw = _run_ffprobe(path, ffprobe)
    return parse_aspect_ratio(raw)


def parse_aspect_ratio(raw: Dict[str, Any]) -> str:
    """Pick the aspect ratio out of decoded ``ffprobe -show_streams`` output.

    Args:
        raw: The decoded ffprobe JSON document.

    Returns:
        The display aspect ratio of the first stream with nonzero width and height.
    """
    streams = raw.get("streams") if isinstance(raw, dict) else None
    if not isinstance(streams, list):
        raise ProbeError("ffprobe output has no stream list")

    for stream in streams:
        if not isinstance(stream, dict):
            continue
        width = _int_or_none(stream.get("width"))
        height = _int_or_none(stream.get("height"))
        if width and height:
            ratio = stream.get("display_aspect_ratio")
            return ratio if isinstance(ratio, str) else ""
    raise ProbeError("no video stream found")


def _run_ffprobe(target: Path, ffprobe: str) -> Dict[str, Any]:
    command = [
        ffprobe,
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_streams",
        str(target),
    ]
    try:
        proc = subprocess.run(
            command,
            check=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
        )
    except OSError as exc:
        raise ProbeError(f"could not start {ffprobe}: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise ProbeError(f"ffprobe exited with status {exc.returncode}: {stderr}") from exc

    try:
        return json.loads(proc.stdout)
    except json.JSONDecodeError as exc:
        raise ProbeError("ffprobe output is not valid JSON") from exc


def _int_or_none(value: Any) -> Optional[int]:
    if value in (None, "N/A", ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
