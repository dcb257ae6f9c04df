"""
Blog file store application.
Wires the file routes, CORS, upload rate limiting and the error handlers.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from blogfiles.api.v1.router import api_router
from blogfiles.core.config import settings
from blogfiles.core.exceptions import register_exception_handlers
from blogfiles.core.rate_limit import limiter
from blogfiles.db.session import engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    if settings.FILE_STORAGE_TYPE == "local":
        Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    logger.info(
        "%s v%s serving files from %s storage at %s",
        settings.APP_NAME,
        settings.APP_VERSION,
        settings.FILE_STORAGE_TYPE,
        settings.UPLOAD_DIR,
    )
    yield
    await engine.dispose()
    logger.info("%s stopped", settings.APP_NAME)


def create_application() -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=(
            "Uploaded-file store for the blog platform: two-phase uploads, "
            "attachment to articles and user profiles, and orphan reconciliation."
        ),
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Authorization", "Content-Type", "If-None-Match"],
        expose_headers=["ETag"],
    )

    # Only the upload route carries a limit; the middleware enforces it
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]

    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.get("/health", tags=["Health"], include_in_schema=False)
    async def health_check() -> dict[str, str]:
        return {"status": "ok", "service": settings.APP_NAME}

    return app


app = create_application()
