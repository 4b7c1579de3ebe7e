from __future__ import annotations

import asyncio
import tempfile
from contextlib import ExitStack
from pathlib import Path
from typing import BinaryIO

from tubely.core.config import Settings
from tubely.core.errors import BadRequest, PersistError, PublishError, UploadIOError
from tubely.core.logging import get_logger
from tubely.core.storage import AbortableBody, ObjectStore, ObjectStoreError, StorageLocation
from tubely.media import ACCEPTED_VIDEO_TYPE
from tubely.media.classification import build_storage_key, classify_aspect_ratio
from tubely.media.faststart import RemuxError
from tubely.media.naming import AssetName, generate_asset_name, parse_media_type
from tubely.media.probe import ProbeError
from tubely.media.toolchain import MediaToolchain

from .signing import PlaybackSigner, SignedVideo
from .uploads import IncomingFile, copy_upload, discard, load_owned_video
from .video_store import VideoStore, VideoStoreError


class VideoIngestService:
    """Takes one uploaded video from the request body to a published, playable asset.

    The steps run in order and the first failure ends the request. Scratch files
    are registered on a single ``ExitStack`` as soon as they exist, so every exit
    path closes and deletes them exactly once.

    A publish that misses its deadline is aborted and any object it still
    managed to write is deleted before the request fails. Publishing and
    persisting are not transactional, though: when the store accepts the object
    but the record update fails, the object stays in the bucket and is not
    cleaned up.
    """

    def __init__(
        self,
        settings: Settings,
        videos: VideoStore,
        object_store: ObjectStore,
        toolchain: MediaToolchain,
        signer: PlaybackSigner | None = None,
    ):
        self.settings = settings
        self.videos = videos
        self.object_store = object_store
        self.toolchain = toolchain
        self.signer = signer or PlaybackSigner(object_store, expires_s=settings.playback_url_ttl_s)
        self.logger = get_logger(component="ingest_service")

    async def upload_video(self, *, video_id: str, user_id: str, upload: IncomingFile | None) -> SignedVideo:
        logger = self.logger.bind(video_id=video_id)
        await load_owned_video(self.videos, video_id=video_id, user_id=user_id)
        upload, media_type = self._accept(upload)
        asset = generate_asset_name(media_type)

        with ExitStack() as stack:
            source = await self._buffer(stack, upload, asset)
            source_path = Path(source.name)
            logger.info("video_upload_buffered", path=str(source_path))

            try:
                ratio = await asyncio.to_thread(self.toolchain.probe, source_path)
            except ProbeError as exc:
                logger.warning("video_probe_failed", error=str(exc))
                raise UploadIOError("error getting video aspect ratio") from exc

            self._rewind(source)

            try:
                optimized_path = await asyncio.to_thread(self.toolchain.remux, source_path)
            except RemuxError as exc:
                logger.warning("video_remux_failed", error=str(exc))
                raise UploadIOError("error processing video for fast start") from exc
            stack.callback(discard, optimized_path)
            try:
                optimized = stack.enter_context(optimized_path.open("rb"))
            except OSError as exc:
                raise UploadIOError("error opening processed video") from exc

            classification = classify_aspect_ratio(ratio)
            location = self.object_store.location_for(build_storage_key(classification, asset))
            logger.info("video_classified", ratio=ratio, classification=classification.value, key=location.key)

            await self._publish(location, optimized, media_type)
            logger.info("video_published", bucket=location.bucket, key=location.key)

        try:
            saved = await self.videos.set_video_url(video_id, location.encode())
        except VideoStoreError as exc:
            # The object stays published under this key with no record pointing at it.
            logger.error("video_location_persist_failed", bucket=location.bucket, key=location.key, error=str(exc))
            raise PersistError("couldn't update video") from exc

        logger.info("video_upload_completed", key=location.key)
        return self.signer.sign(saved)

    def _accept(self, upload: IncomingFile | None) -> tuple[IncomingFile, str]:
        if upload is None:
            raise BadRequest("missing video file")
        try:
            media_type = parse_media_type(upload.content_type)
        except ValueError as exc:
            raise BadRequest("invalid Content-Type") from exc
        if media_type != ACCEPTED_VIDEO_TYPE:
            raise BadRequest(f"invalid file type {media_type}, expected {ACCEPTED_VIDEO_TYPE}")
        return upload, media_type

    async def _buffer(self, stack: ExitStack, upload: IncomingFile, asset: AssetName) -> BinaryIO:
        try:
            handle = tempfile.NamedTemporaryFile(
                prefix="tubely-upload-",
                suffix=asset.extension,
                dir=self._scratch_dir(),
                delete=False,
            )
        except OSError as exc:
            raise UploadIOError("unable to create temp file on server") from exc
        stack.callback(discard, Path(handle.name))
        stack.enter_context(handle)

        await asyncio.to_thread(copy_upload, upload.file, handle, limit=self.settings.max_video_upload_bytes)
        return handle

    @staticmethod
    def _rewind(handle: BinaryIO) -> None:
        try:
            offset = handle.seek(0)
        except OSError as exc:
            raise UploadIOError("error seeking to beginning of file") from exc
        if offset != 0:
            raise UploadIOError("error seeking to beginning of file")

    async def _publish(self, location: StorageLocation, body: BinaryIO, media_type: str) -> None:
        abortable = AbortableBody(body)
        worker = asyncio.ensure_future(
            asyncio.to_thread(self.object_store.put_object, location, abortable, content_type=media_type)
        )
        try:
            await asyncio.wait_for(asyncio.shield(worker), timeout=self.settings.publish_timeout_s)
        except asyncio.TimeoutError as exc:
            self.logger.warning("video_publish_timed_out", key=location.key, timeout_s=self.settings.publish_timeout_s)
            abortable.abort()
            await self._withdraw(worker, location)
            raise PublishError("timed out uploading video to object storage") from exc
        except ObjectStoreError as exc:
            self.logger.warning("video_publish_failed", key=location.key, error=str(exc))
            raise PublishError("error uploading video to object storage") from exc

    async def _withdraw(self, worker: asyncio.Future, location: StorageLocation) -> None:
        """Wait for an aborted write to stop, then delete anything it stored.

        The body stays open until the worker returns, so the caller may close
        and delete it afterwards.
        """
        try:
            await worker
        except ObjectStoreError:
            return
        try:
            await asyncio.to_thread(self.object_store.delete_object, location)
        except ObjectStoreError as exc:
            self.logger.error("video_publish_orphaned", bucket=location.bucket, key=location.key, error=str(exc))
            return
        self.logger.warning("video_publish_withdrawn", bucket=location.bucket, key=location.key)

    def _scratch_dir(self) -> str | None:
        scratch = self.settings.upload_tmp_dir
        if scratch is None:
            return None
        scratch.mkdir(parents=True, exist_ok=True)
        return str(scratch)


__all__ = ["VideoIngestService"]
