from __future__ import annotations

import asyncio
from pathlib import Path

from tubely.core.config import Settings
from tubely.core.errors import BadRequest, PersistError, UploadIOError
from tubely.core.logging import get_logger
from tubely.media.naming import media_type_to_ext, parse_media_type

from .signing import PlaybackSigner, SignedVideo
from .uploads import IncomingFile, copy_upload, discard, load_owned_video
from .video_store import VideoStore, VideoStoreError


class ThumbnailService:
    """Writes a thumbnail image next to the served assets; no transcoding."""

    def __init__(self, settings: Settings, videos: VideoStore, signer: PlaybackSigner):
        self.settings = settings
        self.videos = videos
        self.signer = signer
        self.logger = get_logger(component="thumbnail_service")

    async def upload_thumbnail(self, *, video_id: str, user_id: str, upload: IncomingFile | None) -> SignedVideo:
        await load_owned_video(self.videos, video_id=video_id, user_id=user_id)
        if upload is None:
            raise BadRequest("missing thumbnail file")
        try:
            media_type = parse_media_type(upload.content_type)
        except ValueError as exc:
            raise BadRequest("missing or invalid Content-Type for thumbnail") from exc
        if not media_type.startswith("image/"):
            raise BadRequest(f"invalid thumbnail type {media_type}")

        filename = f"{video_id}{media_type_to_ext(media_type)}"
        target = Path(self.settings.assets_root) / filename
        await asyncio.to_thread(self._write, upload, target)
        self.logger.info("thumbnail_written", video_id=video_id, path=str(target))

        url = f"{self.settings.public_base_url.rstrip('/')}/assets/{filename}"
        try:
            saved = await self.videos.set_thumbnail_url(video_id, url)
        except VideoStoreError as exc:
            raise PersistError("couldn't update video") from exc
        return self.signer.sign(saved)

    def _write(self, upload: IncomingFile, target: Path) -> None:
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("wb") as handle:
                copy_upload(upload.file, handle, limit=self.settings.max_thumbnail_upload_bytes)
        except OSError as exc:
            discard(target)
            raise UploadIOError("couldn't save thumbnail") from exc
        except (BadRequest, UploadIOError):
            discard(target)
            raise


__all__ = ["ThumbnailService"]
