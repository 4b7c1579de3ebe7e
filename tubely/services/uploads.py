"""Pieces shared by the video and thumbnail upload paths."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional

from tubely.core.errors import Forbidden, NotFound, UploadIOError, UploadTooLarge
from tubely.core.logging import get_logger

from .video_store import VideoRecord, VideoStore

CHUNK_SIZE = 1024 * 1024

logger = get_logger(component="uploads")


@dataclass(slots=True)
class IncomingFile:
    """One multipart file field as declared by the client."""

    file: BinaryIO
    content_type: Optional[str]
    filename: Optional[str] = None


async def load_owned_video(videos: VideoStore, *, video_id: str, user_id: str) -> VideoRecord:
    record = await videos.get(video_id)
    if record is None:
        raise NotFound("video_not_found")
    if record.user_id != user_id:
        raise Forbidden("not_video_owner")
    return record


def copy_upload(source: BinaryIO, target: BinaryIO, *, limit: int) -> int:
    """Stream ``source`` into ``target`` in chunks and return the byte count.

    Raises:
        UploadTooLarge: Once more than ``limit`` bytes have been read.
        UploadIOError: On any read or write failure.
    """
    total = 0
    try:
        while chunk := source.read(CHUNK_SIZE):
            total += len(chunk)
            if total > limit:
                raise UploadTooLarge(f"upload exceeds {limit} bytes")
            target.write(chunk)
        target.flush()
    except OSError as exc:
        raise UploadIOError("error saving upload") from exc
    return total


def discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("scratch_file_cleanup_failed", path=str(path), error=str(exc))


__all__ = ["CHUNK_SIZE", "IncomingFile", "load_owned_video", "copy_upload", "discard"]
