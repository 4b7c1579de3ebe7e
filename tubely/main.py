from __future__ import annotations

import re
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from tubely.api.v1 import get_api_router
from tubely.api.v1.schemas import ErrorResponse
from tubely.core.config import get_settings
from tubely.core.db import create_engine, create_session_factory
from tubely.core.errors import TubelyError
from tubely.core.logging import REQUEST_ID_HEADER, bind_request_context, configure_logging, get_logger, level_from_name
from tubely.core.storage import get_object_store
from tubely.media.toolchain import FFmpegToolchain

logger = get_logger(component="api")

_REQUEST_ID_RE = re.compile(r"[A-Za-z0-9._-]{1,64}")


async def handle_tubely_error(request: Request, exc: TubelyError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("request_failed", path=request.url.path, error=exc.code, detail=exc.message, status_code=exc.status_code)
    body = ErrorResponse(error=exc.code, detail=exc.message)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(
        level=level_from_name(settings.log_level),
        json_logs=settings.environment_lower not in {"development", "dev"},
    )
    object_store = get_object_store(settings)
    toolchain = FFmpegToolchain(ffprobe=settings.ffprobe_binary, ffmpeg=settings.ffmpeg_binary)
    engine = create_engine(settings)
    session_factory = create_session_factory(engine)

    assets_root = Path(settings.assets_root)
    assets_root.mkdir(parents=True, exist_ok=True)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.settings = settings
        app.state.object_store = object_store
        app.state.toolchain = toolchain
        app.state.engine = engine
        app.state.session_factory = session_factory
        try:
            yield
        finally:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        lifespan=lifespan,
        openapi_url="/openapi.json",
        docs_url="/docs",
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        incoming = request.headers.get(REQUEST_ID_HEADER, "")
        request_id = bind_request_context(
            incoming if _REQUEST_ID_RE.fullmatch(incoming) else None,
            method=request.method,
            path=request.url.path,
        )
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.add_exception_handler(TubelyError, handle_tubely_error)
    app.include_router(get_api_router())
    app.mount("/assets", StaticFiles(directory=assets_root), name="assets")
    return app


__all__ = ["create_app", "handle_tubely_error"]
