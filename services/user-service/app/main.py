"""FastAPI application wiring for the user service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import redis
import uvicorn
from fastapi import FastAPI, Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from .api.routes import router as users_router
from .config import Settings, get_settings
from .db import open_pools
from .domain.clock import SystemClock, TimeProvider
from .domain.service import UserService
from .logging_config import configure_logging
from .repository import UserRepository
from .security.passwords import PasswordHasher
from .security.rate_limiter import SlidingWindowRateLimiter
from .security.redis_rate_limiter import RedisSlidingWindowRateLimiter

logger = logging.getLogger(__name__)


def build_rate_limiter(
    settings: Settings, clock: TimeProvider | None = None
) -> SlidingWindowRateLimiter | RedisSlidingWindowRateLimiter:
    """Instantiate the configured rate limiter backend, preferring Redis when available."""
    if settings.rate_limit_backend == "redis" and settings.redis_url:
        try:
            client = redis.from_url(settings.redis_url)
            # fail fast so a dead Redis falls back to the in-memory limiter
            client.ping()
        except redis.RedisError as exc:
            logger.warning("redis rate limiter unavailable, falling back to in-memory: %s", exc)
        else:
            logger.info("rate limiter configured for redis backend at %s", settings.redis_url)
            return RedisSlidingWindowRateLimiter(
                client,
                max_requests=settings.rate_limit_requests,
                window_seconds=settings.rate_limit_window_seconds,
                clock=clock,
            )

    logger.info("rate limiter using in-memory backend")
    return SlidingWindowRateLimiter(
        max_requests=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        clock=clock,
    )


def create_app(
    settings: Settings,
    *,
    user_service: UserService | None = None,
    rate_limiter: SlidingWindowRateLimiter | RedisSlidingWindowRateLimiter | None = None,
) -> FastAPI:
    """Build the application.

    When ``user_service`` is given the lifespan does not open database pools,
    which lets tests run the full HTTP stack against an in-memory repository.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the read/write Postgres pools and the service for the app lifecycle."""
        if app.state.user_service is not None:
            yield
            return
        pools = open_pools(settings)
        app.state.user_service = UserService(
            UserRepository(pools.read, pools.write), SystemClock()
        )
        try:
            yield
        finally:
            pools.close()
            logger.info("database pools closed")

    app = FastAPI(title=settings.app_name, version=settings.version, lifespan=lifespan)
    app.state.user_service = user_service
    app.state.password_hasher = PasswordHasher(rounds=settings.bcrypt_rounds)
    app.state.rate_limiter = rate_limiter or build_rate_limiter(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,
    )

    @app.exception_handler(RequestValidationError)
    async def request_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"detail": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "internal server error"},
        )

    @app.get("/healthz", tags=["health"])
    def healthz() -> dict[str, str]:
        """Return a minimal readiness indicator used by orchestration systems."""
        return {"status": "ok"}

    @app.get("/metrics", include_in_schema=False)
    def metrics() -> Response:
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(users_router)
    return app


settings = get_settings()
configure_logging(settings.log_level)
app = create_app(settings)


def run() -> None:
    """Serve the application with uvicorn using the configured host and port."""
    uvicorn.run(app, host=settings.http_host, port=settings.http_port, log_config=None)
