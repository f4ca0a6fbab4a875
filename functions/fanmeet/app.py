"""
FastAPI application entry point for the FanMeet functions.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fanmeet.config import get_settings
from fanmeet.errors import FanmeetError
from fanmeet.routes import router
from fanmeet.schemas import HealthResponse

logger = logging.getLogger(__name__)

CORS_ALLOW_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]


async def handle_fanmeet_error(request: Request, exc: FanmeetError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="FanMeet Functions (FastAPI)", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=CORS_ALLOW_HEADERS,
    )
    app.add_exception_handler(FanmeetError, handle_fanmeet_error)

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(status="ok")

    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
