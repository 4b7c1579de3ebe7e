from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tubely.api.deps import get_app_settings, get_session
from tubely.core.config import Settings
from tubely.core.errors import ServiceUnavailable
from tubely.core.logging import get_logger

from .schemas import HealthResponse, ReadinessResponse


router = APIRouter(tags=["system"])
logger = get_logger(component="system")


@router.get("/health", response_model=HealthResponse, summary="Liveness probe")
async def health(settings: Settings = Depends(get_app_settings)) -> HealthResponse:
    return HealthResponse(version=settings.version, environment=settings.environment)


@router.get("/ready", response_model=ReadinessResponse, summary="Readiness probe")
async def ready(
    session: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_app_settings),
) -> ReadinessResponse:
    """Report ready only once the metadata database answers a trivial query."""
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("readiness_database_unreachable", error=str(exc))
        raise ServiceUnavailable("database_unreachable") from exc
    return ReadinessResponse(database="ok", object_store_backend=settings.object_store_backend)


__all__ = ["router"]
