from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tubely.core.auth import AuthContext, get_auth_context
from tubely.core.config import Settings, get_settings
from tubely.core.storage import ObjectStore
from tubely.media.toolchain import MediaToolchain
from tubely.services.ingest_service import VideoIngestService
from tubely.services.signing import PlaybackSigner
from tubely.services.thumbnail_service import ThumbnailService
from tubely.services.video_store import SqlVideoStore, VideoStore


async def get_session(request: Request) -> AsyncIterator[AsyncSession]:
    session_factory = request.app.state.session_factory
    if not isinstance(session_factory, async_sessionmaker):  # pragma: no cover
        raise RuntimeError("session_factory_not_configured")
    async with session_factory() as session:
        yield session


def get_object_store(request: Request) -> ObjectStore:
    store: ObjectStore = request.app.state.object_store
    return store


def get_toolchain(request: Request) -> MediaToolchain:
    toolchain: MediaToolchain = request.app.state.toolchain
    return toolchain


def get_app_settings() -> Settings:
    return get_settings()


def get_video_store(session: AsyncSession = Depends(get_session)) -> VideoStore:
    return SqlVideoStore(session)


def get_playback_signer(
    store: ObjectStore = Depends(get_object_store),
    settings: Settings = Depends(get_app_settings),
) -> PlaybackSigner:
    return PlaybackSigner(store, expires_s=settings.playback_url_ttl_s)


def get_ingest_service(
    videos: VideoStore = Depends(get_video_store),
    store: ObjectStore = Depends(get_object_store),
    toolchain: MediaToolchain = Depends(get_toolchain),
    signer: PlaybackSigner = Depends(get_playback_signer),
    settings: Settings = Depends(get_app_settings),
) -> VideoIngestService:
    return VideoIngestService(settings, videos, store, toolchain, signer)


def get_thumbnail_service(
    videos: VideoStore = Depends(get_video_store),
    signer: PlaybackSigner = Depends(get_playback_signer),
    settings: Settings = Depends(get_app_settings),
) -> ThumbnailService:
    return ThumbnailService(settings, videos, signer)


AuthDependency = Annotated[AuthContext, Depends(get_auth_context)]
VideoStoreDependency = Annotated[VideoStore, Depends(get_video_store)]
SignerDependency = Annotated[PlaybackSigner, Depends(get_playback_signer)]
IngestServiceDependency = Annotated[VideoIngestService, Depends(get_ingest_service)]
ThumbnailServiceDependency = Annotated[ThumbnailService, Depends(get_thumbnail_service)]


__all__ = [
    "get_session",
    "get_object_store",
    "get_toolchain",
    "get_app_settings",
    "get_video_store",
    "get_playback_signer",
    "get_ingest_service",
    "get_thumbnail_service",
    "AuthDependency",
    "VideoStoreDependency",
    "SignerDependency",
    "IngestServiceDependency",
    "ThumbnailServiceDependency",
]
