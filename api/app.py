from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from api.dependencies import get_config, get_dispatcher, get_storage
from api.routes.jobs import router as jobs_router
from api.routes.uploads import router as uploads_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    provider = app.dependency_overrides.get(get_dispatcher, get_dispatcher)
    dispatcher = provider()
    dispatcher.bind(asyncio.get_running_loop())
    yield
    await dispatcher.shutdown()


def create_app() -> FastAPI:
    config = get_config()
    app = FastAPI(title="Concept Weaver API", version="0.1.0", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[config.cors_origin],
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(uploads_router)
    app.include_router(jobs_router)

    if config.storage_backend == "local":
        app.mount("/uploads", StaticFiles(directory=get_storage().paths.upload_dir()), name="uploads")

    @app.get("/healthz")
    def health() -> dict:
        provider = app.dependency_overrides.get(get_dispatcher, get_dispatcher)
        dispatcher = provider()
        return {
            "status": "ok",
            "time": datetime.now(timezone.utc).isoformat(),
            "queued": dispatcher.queue_depth,
            "busy": dispatcher.is_busy,
        }

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content={"success": False, "status": "error", "message": "Server error"})

    return app


app = create_app()
