from __future__ import annotations

import subprocess
from pathlib import Path

__all__ = ["FASTSTART_SUFFIX", "RemuxError", "faststart_output_path", "process_video_for_fast_start"]

FASTSTART_SUFFIX = ".faststart.mp4"


class RemuxError(RuntimeError):
    """ffmpeg could not rewrite the container."""


def faststart_output_path(path: Path) -> Path:
    return path.with_name(path.name + FASTSTART_SUFFIX)


def process_video_for_fast_start(path: Path, *, ffmpeg: str = "ffmpeg") -> Path:
    """Copy every stream of ``path`` into a new MP4 with the moov atom up front.

    Nothing is re-encoded. The input is left in place; the caller owns both files.

    Returns:
        The sibling output path (input path plus ``FASTSTART_SUFFIX``).

    Raises:
        RemuxError: If ffmpeg cannot start or exits nonzero.
    """
    output_path = faststart_output_path(path)
    command = [
        ffmpeg,
        "-nostdin",
        "-v",
        "error",
        "-y",
        "-i",
        str(path),
        "-c",
        "copy",
        "-movflags",
        "faststart",
        "-f",
        "mp4",
        str(output_path),
    ]
    try:
        subprocess.run(command, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except OSError as exc:
        output_path.unlink(missing_ok=True)
        raise RemuxError(f"could not start {ffmpeg}: {exc}") from exc
    except subprocess.CalledProcessError as exc:
        output_path.unlink(missing_ok=True)
        stderr = (exc.stderr or "").strip()
        raise RemuxError(f"ffmpeg exited with status {exc.returncode}: {stderr}") from exc
    return output_path
