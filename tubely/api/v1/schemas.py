from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from tubely.services.signing import SignedVideo


class HealthResponse(BaseModel):
    status: str = Field(default="ok", description="Health status indicator.")
    version: str
    environment: str
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ReadinessResponse(BaseModel):
    status: str = "ready"
    database: str
    object_store_backend: str


class EnvCheckResponse(BaseModel):
    ffmpeg: bool
    ffprobe: bool


class VideoCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255, json_schema_extra={"example": "Boots on the ground"})
    description: str = Field(default="", json_schema_extra={"example": "Unboxing a pair of boots."})


class VideoResponse(BaseModel):
    id: str
    user_id: str
    title: str
    description: str
    video_url: Optional[str] = Field(default=None, description="Signed playback URL, or the stored value when it cannot be signed.")
    video_url_expires_at: Optional[datetime] = None
    thumbnail_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_signed(cls, signed: SignedVideo) -> "VideoResponse":
        record = signed.record
        return cls(
            id=record.id,
            user_id=record.user_id,
            title=record.title,
            description=record.description,
            video_url=record.video_url,
            video_url_expires_at=signed.video_url_expires_at,
            thumbnail_url=record.thumbnail_url,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class ErrorResponse(BaseModel):
    error: str
    detail: Optional[Any] = None


__all__ = [
    "HealthResponse",
    "ReadinessResponse",
    "EnvCheckResponse",
    "VideoCreateRequest",
    "VideoResponse",
    "ErrorResponse",
]
