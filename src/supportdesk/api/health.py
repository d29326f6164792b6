"""Health check endpoint.

Reports whether the database answers, whether the shared Redis pool is
up, and how many accounts are connected to the chat. Redis being down
only degrades the status; the app still works without it.
"""

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from supportdesk import __version__
from supportdesk.db.engine import engine
from supportdesk.realtime.relay import ChatRelay
from supportdesk.realtime.socketio import get_relay
from supportdesk.redis_pool import get_redis

router = APIRouter()


async def _check_database() -> str:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        return f"error: {e}"
    return "ok"


async def _check_redis() -> str:
    try:
        redis = get_redis()
    except RuntimeError:
        return "error: not connected"
    try:
        await redis.ping()
    except RedisError as e:
        return f"error: {e}"
    return "ok"


@router.get("/health")
async def health_check(relay: ChatRelay = Depends(get_relay)):
    checks = {
        "server": "ok",
        "version": __version__,
        "database": await _check_database(),
        "redis": await _check_redis(),
    }
    degraded = any(v != "ok" for k, v in checks.items() if k != "version")
    return {
        "status": "degraded" if degraded else "healthy",
        **checks,
        "online_users": len(relay.registry),
    }
