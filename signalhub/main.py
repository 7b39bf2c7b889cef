"""FastAPI application initialization."""

from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import asyncpg
import redis.asyncio as redis
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from signalhub import __version__
from signalhub.api.auth import router as auth_router
from signalhub.api.errors import register_exception_handlers
from signalhub.api.middleware import CorrelationIdMiddleware
from signalhub.api.routes import router
from signalhub.api.signals import router as signals_router
from signalhub.api.users import router as users_router
from signalhub.config import Settings, get_settings
from signalhub.database import close_pool, create_pool, run_migrations
from signalhub.services.auth_service import AuthService
from signalhub.services.logging_service import configure_logging, get_logger
from signalhub.services.redis_service import RedisService, close_redis, connect_redis
from signalhub.services.signal_service import SignalService
from signalhub.services.token_service import TokenService
from signalhub.services.user_service import UserService


def install_services(
    state,
    settings: Settings,
    pool: Optional[asyncpg.Pool],
    redis_client: Optional[redis.Redis],
) -> None:
    """Construct every service from explicit clients and attach them to ``state``.

    Without a database pool the store-backed services are left unset, and
    requests that need them fail with 503.
    """
    redis_service = RedisService(redis_client)
    token_service = TokenService(settings, redis_service)

    state.settings = settings
    state.pool = pool
    state.redis_service = redis_service
    state.token_service = token_service

    if pool is None:
        return

    user_service = UserService(pool)
    state.user_service = user_service
    state.auth_service = AuthService(user_service, token_service, settings)
    state.signal_service = SignalService(pool, redis_service, settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the database pool and optional Redis client, then wire services."""
    settings: Settings = app.state.settings
    configure_logging(settings.log_level)
    logger = get_logger("main")

    pool = None
    try:
        pool = await create_pool(settings)
        await run_migrations(pool)
        logger.info("database_initialized")
    except Exception as e:
        logger.warning(
            "database_initialization_failed",
            error=str(e),
            note="Continuing without database - auth and signal routes will return 503",
        )
        await close_pool(pool)
        pool = None

    redis_client = await connect_redis(settings)
    if redis_client is None:
        logger.warning(
            "redis_unavailable",
            note="Continuing without Redis - caching, rate limiting and token revocation are disabled",
        )

    install_services(app.state, settings, pool, redis_client)

    logger.info(
        "application_started",
        environment=settings.environment,
        log_level=settings.log_level,
    )

    yield

    await close_redis(redis_client)
    await close_pool(pool)
    logger.info("application_shutdown")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application with middleware, exception handlers and routers."""
    settings = settings or get_settings()

    app = FastAPI(
        title="SignalHub API",
        description="Crypto trading signals with JWT access/refresh authentication",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    register_exception_handlers(app, settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_origin_regex=r"https://.*\.vercel\.app" if settings.cors_allow_vercel_previews else None,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "X-Requested-With", "X-Correlation-Id"],
    )

    # Correlation ID middleware for request tracking and observability
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(router)
    app.include_router(auth_router)
    app.include_router(signals_router)
    app.include_router(users_router)

    return app


app = create_app()
