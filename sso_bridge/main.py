import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from redis.asyncio import Redis

from sso_bridge.api.router import api_router
from sso_bridge.config import Settings, SSOConfig, get_settings
from sso_bridge.database import create_engine, create_session_maker
from sso_bridge.errors import SSOError
from sso_bridge.services.nonce_service import MemoryNonceLedger, NonceLedger, RedisNonceLedger
from sso_bridge.services.sso_service import SSOService

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _build_nonce_ledger(
    settings: Settings, sso_config: SSOConfig
) -> tuple[Optional[NonceLedger], Optional[Redis]]:
    if not sso_config.replay_protection:
        return None, None
    if settings.sso_nonce_backend == "redis":
        redis = Redis.from_url(str(settings.redis_url))
        return RedisNonceLedger(redis), redis
    return MemoryNonceLedger(sso_config.nonce_max_entries), None


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application. Raises ConfigurationError before any route exists
    when the SSO configuration is missing or unusable.
    """
    settings = settings or get_settings()
    settings.validate_security()
    sso_config = SSOConfig.from_settings(settings)
    nonce_ledger, redis = _build_nonce_ledger(settings, sso_config)
    engine = create_engine(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info(
            "SSO bridge for %s (connect name %r, auth mode %s, replay protection %s)",
            sso_config.forum_base_url,
            sso_config.connect_name,
            settings.get_auth_mode(),
            sso_config.replay_protection,
        )
        yield
        if redis is not None:
            await redis.aclose()
        await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        description="Single sign-on bridge between this application and the community forum",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_maker = create_session_maker(engine)
    app.state.sso_service = SSOService(sso_config, nonce_ledger)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Enable GZip compression for responses > 500 bytes
    app.add_middleware(GZipMiddleware, minimum_size=500)
    # Include API router
    app.include_router(api_router, prefix="/api/v1")

    register_exception_handlers(app)
    return app


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(SSOError)
    async def sso_exception_handler(request: Request, exc: SSOError) -> JSONResponse:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        logger.warning(
            "SSO request rejected: %s %s request_id=%s code=%s detail=%s",
            request.method,
            request.url.path,
            request_id,
            exc.code,
            exc.detail,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message, "code": exc.code},
            headers={REQUEST_ID_HEADER: request_id},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = []
        for error in exc.errors():
            field = " -> ".join(str(loc) for loc in error["loc"])
            errors.append({"field": field, "message": error["msg"]})

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "detail": "Validation error",
                "errors": errors,
            },
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)

        # Don't expose internal error details in production
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred. Please try again later.",
            },
        )


app = create_app()
