"""Socket.IO server for the storefront frontend.

The frontend uses `socket.io-client` against the API origin:
- path: /socket.io (SUPPORTDESK_SOCKETIO_PATH)
- auth: either `query.token` / `auth.token` on connect, or an
  `authenticate` event carrying the JWT right after connecting

Handlers are thin: everything routes through the module-level ChatRelay.
"""

from __future__ import annotations

from typing import Any
from urllib.parse import parse_qs

import socketio
import structlog

from supportdesk.auth.dependencies import identity_from_token
from supportdesk.auth.jwt import TokenError
from supportdesk.config import settings
from supportdesk.db.engine import async_session_factory
from supportdesk.realtime.relay import ChatRelay

logger = structlog.get_logger()

sio = socketio.AsyncServer(
    async_mode="asgi",
    cors_allowed_origins=settings.cors_origins,
    ping_interval=settings.socketio_ping_interval,
    ping_timeout=settings.socketio_ping_timeout,
    logger=False,
    engineio_logger=False,
)

relay = ChatRelay(sio, async_session_factory)


def get_relay() -> ChatRelay:
    """FastAPI dependency — the process-wide relay (overridden in tests)."""
    return relay


def _extract_token(environ: dict[str, Any], auth: Any | None) -> str | None:
    """Pull a JWT from the handshake, if the client sent one.

    python-socketio hands over an ASGI scope (`query_string: bytes`),
    sometimes nested under `asgi.scope`.
    """
    scope: Any = environ
    if isinstance(environ, dict) and isinstance(environ.get("asgi.scope"), dict):
        scope = environ["asgi.scope"]

    query_string: str | bytes = ""
    if isinstance(scope, dict):
        query_string = scope.get("query_string") or scope.get("QUERY_STRING", "")
    if isinstance(query_string, (bytes, bytearray)):
        query_string = query_string.decode(errors="ignore")

    token = parse_qs(str(query_string)).get("token", [None])[0]
    if isinstance(token, str) and token:
        return token

    if isinstance(auth, dict):
        auth_token = auth.get("token")
        if isinstance(auth_token, str) and auth_token:
            return auth_token

    return None


@sio.event
async def connect(sid: str, environ: dict[str, Any], auth: Any | None = None):
    relay.connect(sid)
    token = _extract_token(environ, auth)
    if token is None:
        # Client will send an `authenticate` event instead.
        return

    try:
        identity_from_token(token)
    except TokenError as exc:
        # Clients refresh their token on "jwt_expired" and retry.
        reason = "jwt_expired" if "expired" in str(exc).lower() else "unauthorized"
        logger.info("realtime.connect_refused", sid=sid, reason=reason)
        # A refused connection never reaches the disconnect handler
        await relay.disconnect(sid)
        raise ConnectionRefusedError(reason) from exc

    if await relay.authenticate(sid, token) is None:
        await relay.disconnect(sid)
        raise ConnectionRefusedError("unauthorized")


@sio.event
async def disconnect(sid: str, reason: Any = None):
    await relay.disconnect(sid)


@sio.on("authenticate")
async def on_authenticate(sid: str, data: Any):
    await relay.authenticate(sid, data)


@sio.on("send-message")
async def on_send_message(sid: str, data: Any):
    await relay.send_message(sid, data)


@sio.on("mark-read")
async def on_mark_read(sid: str, data: Any):
    await relay.mark_read(sid, data)


@sio.on("typing")
async def on_typing(sid: str, data: Any):
    await relay.typing(sid, data)


@sio.on("stop-typing")
async def on_stop_typing(sid: str, data: Any):
    await relay.typing(sid, data, stopped=True)
