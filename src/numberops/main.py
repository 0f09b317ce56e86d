"""
FastAPI application entry point.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from numberops.config import get_settings
from numberops.phone_numbers.locks import PurchaseLeaseRegistry
from numberops.phone_numbers.router import router as phone_numbers_router
from numberops.phone_numbers.search import SearchSessionRegistry
from numberops.shared.database import get_database_manager
from numberops.shared.exceptions import AppException
from numberops.shared.logging import correlation_id_var, get_logger, setup_logging
from numberops.telephony.factory import get_telephony_provider
from numberops.telephony.interface import TelephonyProvider
from numberops.voice_ai.factory import get_voice_ai_provider
from numberops.voice_ai.interface import VoiceAIProvider

import numberops.phone_numbers.models  # noqa: F401

logger = get_logger(__name__)

CORRELATION_ID_HEADER = "X-Correlation-ID"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    setup_logging()
    settings = get_settings()

    logger.info("Application starting", extra={"env": settings.app_env})

    if getattr(app.state, "telephony_provider", None) is None:
        app.state.telephony_provider = get_telephony_provider()
    if getattr(app.state, "voice_ai_provider", None) is None:
        app.state.voice_ai_provider = get_voice_ai_provider()

    db_manager = get_database_manager()
    if settings.create_tables_on_startup:
        await db_manager.create_all()
        logger.info("Database tables ensured")

    yield

    logger.info("Shutting down application")

    await app.state.voice_ai_provider.aclose()
    await app.state.telephony_provider.aclose()
    await db_manager.close()
    logger.info("Application shutdown complete")


def create_app(
    telephony_provider: TelephonyProvider | None = None,
    voice_ai_provider: VoiceAIProvider | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Providers passed here are used as-is; missing ones are built from
    configuration when the application starts.
    """
    settings = get_settings()

    app = FastAPI(
        title="numberops API",
        description="Phone number lifecycle for voice-AI agents",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    app.state.telephony_provider = telephony_provider
    app.state.voice_ai_provider = voice_ai_provider
    app.state.purchase_leases = PurchaseLeaseRegistry(settings.purchase_lease_seconds)
    app.state.search_sessions = SearchSessionRegistry(settings.search_debounce_seconds)

    @app.exception_handler(AppException)
    async def _app_exception(_: Request, exc: AppException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Request failed", extra={"error": exc.to_dict()})
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})

    # Request validation (FastAPI/Pydantic) -> consistent 422 payload
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request,
        exc: RequestValidationError,
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"])
            errors.append(
                {
                    "field": field,
                    "message": error["msg"],
                    "type": error["type"],
                }
            )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": {
                    "code": "VALIDATION_ERROR",
                    "message": "Request validation failed",
                    "errors": errors,
                }
            },
        )

    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next):
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or uuid4().hex
        token = correlation_id_var.set(correlation_id)
        try:
            response = await call_next(request)
        finally:
            correlation_id_var.reset(token)
        response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(phone_numbers_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app


app = create_app()
