"""Chat relay — presence, message routing and read/typing signals.

The relay is transport-agnostic: it talks to an emitter with the
python-socketio AsyncServer surface (emit / enter_room / leave_room), so
the Socket.IO handlers and the REST fallback share one routing path and
tests can drive it with a recording fake.

Event flow for a message:
1. persist via ChatService (committed before anything is emitted)
2. `message-sent` back to the sending connection
3. `receive-message` to the recipient's connection, if they are online

Typing signals are never persisted; read receipts are (ChatService.mark_read).
"""

import uuid
from typing import Any, Optional, Protocol

import structlog
from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from supportdesk.auth.dependencies import CurrentIdentity, identity_from_token
from supportdesk.auth.jwt import TokenError
from supportdesk.config import settings
from supportdesk.db.models import ROLE_ADMIN, STATUS_ACTIVE, ChatMessage, User
from supportdesk.realtime.registry import ConnectionRegistry
from supportdesk.schemas.chat import (
    ChatMessageRead,
    MarkReadEvent,
    SendMessageEvent,
    TypingEvent,
)
from supportdesk.services.chat_service import ChatError, ChatService

logger = structlog.get_logger()

# Every authenticated connection joins this room; presence goes here.
ONLINE_ROOM = "online"

# ─── Outbound event names ────────────────────────────────

AUTHENTICATED = "authenticated"
MESSAGE_SENT = "message-sent"
RECEIVE_MESSAGE = "receive-message"
MARKED_READ = "marked-read"
MESSAGES_READ = "messages-read"
USER_ONLINE = "user-online"
USER_OFFLINE = "user-offline"
USER_TYPING = "user-typing"
USER_STOP_TYPING = "user-stop-typing"
ERROR = "error"


class Emitter(Protocol):
    async def emit(self, event: str, data: Any = None, to: Optional[str] = None,
                   skip_sid: Optional[str] = None, **kwargs) -> None: ...

    async def enter_room(self, sid: str, room: str, **kwargs) -> None: ...

    async def leave_room(self, sid: str, room: str, **kwargs) -> None: ...


def serialize_message(msg: ChatMessage) -> dict[str, Any]:
    """JSON-ready payload shared by HTTP responses and socket events."""
    return ChatMessageRead.model_validate(msg).model_dump(mode="json")


class ChatRelay:
    """Routes chat events between authenticated connections."""

    def __init__(
        self,
        emitter: Emitter,
        session_factory: async_sessionmaker[AsyncSession],
        registry: Optional[ConnectionRegistry] = None,
        admin_only: Optional[bool] = None,
    ):
        self.emitter = emitter
        self.session_factory = session_factory
        self.registry = registry if registry is not None else ConnectionRegistry()
        self.admin_only = (
            settings.chat_admin_only if admin_only is None else admin_only
        )
        # sids between connect and disconnect; authenticate only binds these
        self._live: set[str] = set()
        # user_id -> role, for online users
        self._roles: dict[str, str] = {}

    # ─── Presence ───────────────────────────────────────

    def is_online(self, user_id: str | uuid.UUID) -> bool:
        return self.registry.is_online(str(user_id))

    def connect(self, sid: str) -> None:
        """Mark a transport connection as live (before any authentication)."""
        self._live.add(sid)

    async def authenticate(self, sid: str, token: Any) -> Optional[CurrentIdentity]:
        """Bind a connection to the account behind `token`.

        Accepts the raw token string or `{"token": ...}`. Answers with an
        `authenticated` event and returns the identity on success. Only
        sids passed to connect() and not yet disconnected get registered.
        """
        if isinstance(token, dict):
            token = token.get("token")
        if not isinstance(token, str) or not token:
            await self._auth_failed(sid, "No token provided")
            return None

        try:
            identity = identity_from_token(token)
        except TokenError as e:
            await self._auth_failed(sid, str(e))
            return None

        try:
            async with self.session_factory() as db:
                user = await db.get(User, identity.uuid)
        except SQLAlchemyError:
            logger.exception("realtime.auth_failed", sid=sid, user_id=identity.user_id)
            await self._auth_failed(sid, "Authentication unavailable, try again")
            return None

        if sid not in self._live:
            # Disconnected while the lookup was in flight
            logger.info("realtime.auth_abandoned", sid=sid, user_id=identity.user_id)
            return None
        if user is None:
            await self._auth_failed(sid, "User not found")
            return None
        if user.status != STATUS_ACTIVE:
            await self._auth_failed(sid, "Account is not active")
            return None

        previous = self.registry.user_for(sid)
        if previous is not None and previous != identity.user_id:
            await self._drop(sid)

        came_online = self.registry.register(identity.user_id, sid)
        self._roles[identity.user_id] = user.role
        await self.emitter.enter_room(sid, ONLINE_ROOM)
        await self.emitter.emit(
            AUTHENTICATED,
            {
                "success": True,
                "user_id": identity.user_id,
                "role": user.role,
                "online_users": self.registry.online_user_ids(),
            },
            to=sid,
        )
        if came_online:
            logger.info("realtime.user_online", user_id=identity.user_id, sid=sid)
            await self.emitter.emit(
                USER_ONLINE,
                {"user_id": identity.user_id},
                to=ONLINE_ROOM,
                skip_sid=sid,
            )
        return identity

    async def disconnect(self, sid: str) -> None:
        self._live.discard(sid)
        await self._drop(sid)

    async def _drop(self, sid: str) -> None:
        user_id = self.registry.unregister(sid)
        if user_id is None:
            return
        self._roles.pop(user_id, None)
        logger.info("realtime.user_offline", user_id=user_id, sid=sid)
        await self.emitter.leave_room(sid, ONLINE_ROOM)
        await self.emitter.emit(
            USER_OFFLINE, {"user_id": user_id}, to=ONLINE_ROOM, skip_sid=sid
        )

    async def _auth_failed(self, sid: str, message: str) -> None:
        logger.info("realtime.auth_failed", sid=sid, reason=message)
        await self.emitter.emit(
            AUTHENTICATED, {"success": False, "message": message}, to=sid
        )

    # ─── Messages ───────────────────────────────────────

    async def send_message(self, sid: str, data: Any) -> None:
        user_id = await self._require_user(sid)
        if user_id is None:
            return
        event = await self._parse(sid, SendMessageEvent, data)
        if event is None:
            return

        try:
            async with self.session_factory() as db:
                svc = ChatService(db, admin_only=self.admin_only)
                msg = await svc.send_message(
                    uuid.UUID(user_id), event.recipient_id, event.content
                )
                payload = serialize_message(msg)
        except ChatError as e:
            await self._error(sid, str(e))
            return
        except SQLAlchemyError:
            logger.exception("chat.send_failed", user_id=user_id)
            await self._error(sid, "Failed to send message")
            return

        await self.deliver(payload, origin_sid=sid)

    async def deliver(
        self, payload: dict[str, Any], origin_sid: Optional[str] = None
    ) -> bool:
        """Forward an already-persisted message. Returns True if the
        recipient was online to receive it.

        The confirmation goes to `origin_sid`, or to the sender's current
        connection for messages that arrived over HTTP.
        """
        sender_id = str(payload["sender"]["id"])
        recipient_id = str(payload["recipient"]["id"])

        confirm_sid = origin_sid or self.registry.sid_for(sender_id)
        if confirm_sid:
            await self.emitter.emit(MESSAGE_SENT, payload, to=confirm_sid)

        recipient_sid = self.registry.sid_for(recipient_id)
        logger.info(
            "chat.message_sent",
            message_id=payload["id"],
            sender_id=sender_id,
            recipient_id=recipient_id,
            delivered=recipient_sid is not None,
        )
        if recipient_sid is None:
            return False
        await self.emitter.emit(RECEIVE_MESSAGE, payload, to=recipient_sid)
        return True

    # ─── Read receipts ──────────────────────────────────

    async def mark_read(self, sid: str, data: Any) -> None:
        user_id = await self._require_user(sid)
        if user_id is None:
            return
        event = await self._parse(sid, MarkReadEvent, data)
        if event is None:
            return

        try:
            async with self.session_factory() as db:
                count = await ChatService(db).mark_read(
                    uuid.UUID(user_id), event.sender_id
                )
        except SQLAlchemyError:
            logger.exception("chat.mark_read_failed", user_id=user_id)
            await self._error(sid, "Failed to mark messages as read")
            return

        await self.emitter.emit(
            MARKED_READ, {"sender_id": str(event.sender_id), "count": count}, to=sid
        )
        await self.notify_read(user_id, event.sender_id, count)

    async def notify_read(
        self, reader_id: str | uuid.UUID, sender_id: str | uuid.UUID, count: int
    ) -> None:
        """Tell the original sender that `count` of their messages were read."""
        if not count:
            return
        sender_sid = self.registry.sid_for(str(sender_id))
        if sender_sid is None:
            return
        await self.emitter.emit(
            MESSAGES_READ,
            {"reader_id": str(reader_id), "count": count},
            to=sender_sid,
        )

    # ─── Typing ─────────────────────────────────────────

    async def typing(self, sid: str, data: Any, stopped: bool = False) -> None:
        user_id = await self._require_user(sid)
        if user_id is None:
            return
        event = await self._parse(sid, TypingEvent, data)
        if event is None:
            return

        recipient_id = str(event.recipient_id)
        recipient_sid = self.registry.sid_for(recipient_id)
        if recipient_sid is None or not self._may_signal(user_id, recipient_id):
            return
        await self.emitter.emit(
            USER_STOP_TYPING if stopped else USER_TYPING,
            {"user_id": user_id},
            to=recipient_sid,
        )

    # ─── Helpers ────────────────────────────────────────

    def _may_signal(self, sender_id: str, recipient_id: str) -> bool:
        """Same rule as ChatService.send_message, from cached roles."""
        if not self.admin_only:
            return True
        return ROLE_ADMIN in (self._roles.get(sender_id), self._roles.get(recipient_id))

    async def _require_user(self, sid: str) -> Optional[str]:
        user_id = self.registry.user_for(sid)
        if user_id is None:
            await self._error(sid, "Not authenticated")
        return user_id

    async def _parse(self, sid: str, model: type[BaseModel], data: Any):
        try:
            return model.model_validate(data)
        except ValidationError:
            await self._error(sid, "Invalid payload")
            return None

    async def _error(self, sid: str, message: str) -> None:
        await self.emitter.emit(ERROR, {"message": message}, to=sid)
