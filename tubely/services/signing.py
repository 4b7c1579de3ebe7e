from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import datetime

from tubely.core.errors import PublishError
from tubely.core.logging import get_logger
from tubely.core.storage import ObjectStore, ObjectStoreError, StorageLocation

from .video_store import VideoRecord

PLAYBACK_URL_TTL_S = 5 * 60


@dataclass(slots=True)
class SignedVideo:
    record: VideoRecord
    video_url_expires_at: datetime | None = None


class PlaybackSigner:
    """Renders a record's stored location as a short-lived fetchable URL."""

    def __init__(self, object_store: ObjectStore, *, expires_s: int = PLAYBACK_URL_TTL_S):
        self.object_store = object_store
        self.expires_s = expires_s
        self.logger = get_logger(component="playback_signer")

    def sign(self, record: VideoRecord) -> SignedVideo:
        # Absent or malformed locations are passed through untouched.
        if not record.video_url:
            return SignedVideo(record=record)
        try:
            location = StorageLocation.decode(record.video_url)
        except ValueError:
            self.logger.info("playback_location_undecodable", video_id=record.id)
            return SignedVideo(record=record)

        try:
            presigned = self.object_store.presign_get(location, expires_s=self.expires_s)
        except ObjectStoreError as exc:
            raise PublishError("could not sign playback url") from exc
        return SignedVideo(
            record=dataclasses.replace(record, video_url=presigned.url),
            video_url_expires_at=presigned.expires_at,
        )


__all__ = ["PLAYBACK_URL_TTL_S", "PlaybackSigner", "SignedVideo"]
