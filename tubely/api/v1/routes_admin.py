from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from tubely.api.deps import AuthDependency, get_app_settings
from tubely.core.auth import issue_token
from tubely.core.config import Settings
from tubely.core.errors import Forbidden
from tubely.media.toolchain import FFmpegToolchain

from .schemas import EnvCheckResponse


router = APIRouter(prefix="/admin", tags=["admin"])


class DevTokenRequest(BaseModel):
    user_id: str = Field(..., examples=["user-123"])
    scopes: list[str] = Field(default_factory=list)


class DevTokenResponse(BaseModel):
    token: str


@router.get("/env-check", response_model=EnvCheckResponse, summary="Validate ffmpeg toolchain")
async def env_check(context: AuthDependency, settings: Settings = Depends(get_app_settings)) -> EnvCheckResponse:
    if "admin" not in context.scopes:
        raise Forbidden("admin_scope_required")

    toolchain = FFmpegToolchain(ffprobe=settings.ffprobe_binary, ffmpeg=settings.ffmpeg_binary)
    return EnvCheckResponse(**toolchain.check())


@router.post("/dev-token", response_model=DevTokenResponse, summary="Mint development JWT")
async def mint_dev_token(payload: DevTokenRequest, settings: Settings = Depends(get_app_settings)) -> DevTokenResponse:
    if settings.environment_lower not in {"development", "dev"}:
        raise Forbidden("dev_token_disabled")

    token = issue_token(payload.user_id, settings, scopes=payload.scopes)
    return DevTokenResponse(token=token)


__all__ = ["router"]
