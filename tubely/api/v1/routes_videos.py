from __future__ import annotations

import uuid

from fastapi import APIRouter, File, UploadFile, status

from tubely.api import deps
from tubely.core.errors import BadRequest
from tubely.services.uploads import IncomingFile, load_owned_video
from tubely.services.video_store import VideoRecord

from . import schemas


router = APIRouter(prefix="/videos", tags=["videos"])


def _parse_video_id(raw: str) -> str:
    try:
        return str(uuid.UUID(raw))
    except ValueError as exc:
        raise BadRequest("invalid_video_id") from exc


def _incoming(upload: UploadFile | None) -> IncomingFile | None:
    if upload is None:
        return None
    return IncomingFile(file=upload.file, content_type=upload.content_type, filename=upload.filename)


@router.post("", response_model=schemas.VideoResponse, status_code=status.HTTP_201_CREATED)
async def create_video(
    payload: schemas.VideoCreateRequest,
    videos: deps.VideoStoreDependency,
    signer: deps.SignerDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    record = await videos.create(
        VideoRecord(
            id=str(uuid.uuid4()),
            user_id=context.user_id,
            title=payload.title,
            description=payload.description,
        )
    )
    return schemas.VideoResponse.from_signed(signer.sign(record))


@router.get("", response_model=list[schemas.VideoResponse])
async def list_videos(
    videos: deps.VideoStoreDependency,
    signer: deps.SignerDependency,
    context: deps.AuthDependency,
) -> list[schemas.VideoResponse]:
    records = await videos.list_for_user(context.user_id)
    return [schemas.VideoResponse.from_signed(signer.sign(record)) for record in records]


@router.get("/{video_id}", response_model=schemas.VideoResponse)
async def get_video(
    video_id: str,
    videos: deps.VideoStoreDependency,
    signer: deps.SignerDependency,
    context: deps.AuthDependency,
) -> schemas.VideoResponse:
    record = await load_owned_video(videos, video_id=_parse_video_id(video_id), user_id=context.user_id)
    return schemas.VideoResponse.from_signed(signer.sign(record))


@router.post("/{video_id}/video", response_model=schemas.VideoResponse)
async def upload_video(
    video_id: str,
    service: deps.IngestServiceDependency,
    context: deps.AuthDependency,
    video: UploadFile | None = File(default=None),
) -> schemas.VideoResponse:
    signed = await service.upload_video(
        video_id=_parse_video_id(video_id),
        user_id=context.user_id,
        upload=_incoming(video),
    )
    return schemas.VideoResponse.from_signed(signed)


@router.post("/{video_id}/thumbnail", response_model=schemas.VideoResponse)
async def upload_thumbnail(
    video_id: str,
    service: deps.ThumbnailServiceDependency,
    context: deps.AuthDependency,
    thumbnail: UploadFile | None = File(default=None),
) -> schemas.VideoResponse:
    signed = await service.upload_thumbnail(
        video_id=_parse_video_id(video_id),
        user_id=context.user_id,
        upload=_incoming(thumbnail),
    )
    return schemas.VideoResponse.from_signed(signed)


__all__ = ["router"]
