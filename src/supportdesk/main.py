"""FastAPI application factory + Socket.IO mount.

create_app() returns the configured FastAPI instance (used directly by
tests). `asgi_app` wraps it with the Socket.IO server so a single uvicorn
process serves both:

    uvicorn supportdesk.main:asgi_app --port 3000
"""

from contextlib import asynccontextmanager

import socketio
import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.exceptions import RedisError

from supportdesk import __version__
from supportdesk.api import api_router
from supportdesk.config import settings

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(
        "supportdesk.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from supportdesk.redis_pool import close_redis, init_redis
    try:
        await init_redis()
        logger.info("supportdesk.redis_connected", url=settings.redis_url)
    except (RedisError, OSError) as e:
        # Redis only backs rate limiting; run without it
        logger.warning("supportdesk.redis_unavailable", error=str(e))

    yield

    logger.info("supportdesk.shutdown")
    await close_redis()

    from supportdesk.db.engine import engine
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="SupportDesk",
        description="Storefront admin backend with realtime chat support",
        version=__version__,
        lifespan=lifespan,
    )

    # Starlette runs middleware in reverse order of registration:
    # RequestId → Security → RateLimit → CORS → handler
    from supportdesk.middleware.rate_limit import RateLimitMiddleware
    from supportdesk.middleware.request_id import RequestIdMiddleware
    from supportdesk.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)
    return app


def create_asgi_app(app: FastAPI) -> socketio.ASGIApp:
    """Put the Socket.IO server in front of the HTTP app.

    Socket.IO needs both long-polling and websocket upgrades on its path,
    so it sits outside FastAPI and forwards everything else.
    """
    from supportdesk.realtime.socketio import sio

    return socketio.ASGIApp(
        sio,
        other_asgi_app=app,
        socketio_path=settings.socketio_path,
    )


app = create_app()
asgi_app = create_asgi_app(app)
