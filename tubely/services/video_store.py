from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.db.models import Video


class VideoStoreError(RuntimeError):
    """The metadata store refused a read or write."""


@dataclass(slots=True)
class VideoRecord:
    id: str
    user_id: str
    title: str
    description: str = ""
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class VideoStore(ABC):
    @abstractmethod
    async def get(self, video_id: str) -> VideoRecord | None: ...

    @abstractmethod
    async def set_video_url(self, video_id: str, video_url: str) -> VideoRecord:
        """Overwrite only the playable location of an existing video."""

    @abstractmethod
    async def set_thumbnail_url(self, video_id: str, thumbnail_url: str) -> VideoRecord: ...

    @abstractmethod
    async def create(self, record: VideoRecord) -> VideoRecord: ...

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[VideoRecord]: ...


def _to_record(row: Video) -> VideoRecord:
    return VideoRecord(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        description=row.description,
        video_url=row.video_url,
        thumbnail_url=row.thumbnail_url,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class SqlVideoStore(VideoStore):
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, video_id: str) -> VideoRecord | None:
        try:
            row = await self.session.get(Video, video_id)
        except SQLAlchemyError as exc:
            raise VideoStoreError(str(exc)) from exc
        return _to_record(row) if row else None

    async def set_video_url(self, video_id: str, video_url: str) -> VideoRecord:
        return await self._set_columns(video_id, video_url=video_url)

    async def set_thumbnail_url(self, video_id: str, thumbnail_url: str) -> VideoRecord:
        return await self._set_columns(video_id, thumbnail_url=thumbnail_url)

    async def _set_columns(self, video_id: str, **values: str) -> VideoRecord:
        # Only the named columns change; everything else keeps its last committed value.
        stmt = (
            update(Video)
            .where(Video.id == video_id)
            .values(**values, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.session.execute(stmt)
            if result.rowcount == 0:
                await self.session.rollback()
                raise VideoStoreError(f"video {video_id} does not exist")
            await self.session.commit()
            row = await self.session.get(Video, video_id, populate_existing=True)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise VideoStoreError(str(exc)) from exc
        if row is None:
            raise VideoStoreError(f"video {video_id} does not exist")
        return _to_record(row)

    async def create(self, record: VideoRecord) -> VideoRecord:
        row = Video(
            id=record.id,
            user_id=record.user_id,
            title=record.title,
            description=record.description,
            video_url=record.video_url,
            thumbnail_url=record.thumbnail_url,
        )
        try:
            self.session.add(row)
            await self.session.commit()
            await self.session.refresh(row)
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise VideoStoreError(str(exc)) from exc
        return _to_record(row)

    async def list_for_user(self, user_id: str) -> list[VideoRecord]:
        stmt = select(Video).where(Video.user_id == user_id).order_by(Video.created_at.desc(), Video.id)
        try:
            rows = (await self.session.execute(stmt)).scalars().all()
        except SQLAlchemyError as exc:
            raise VideoStoreError(str(exc)) from exc
        return [_to_record(row) for row in rows]


__all__ = ["VideoRecord", "VideoStore", "VideoStoreError", "SqlVideoStore"]
