"""Chat service — durable side of the support chat.

Messages are written here first; the realtime relay only forwards what
this service has already committed. Read tracking is a bulk flip of the
`read` flag on everything a peer sent that the reader has not seen yet.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import and_, case, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from supportdesk.config import settings
from supportdesk.db.models import ROLE_ADMIN, STATUS_BLOCKED, ChatMessage, User
from supportdesk.events.store import EventStore, chat_stream
from supportdesk.events.types import CHAT_MESSAGE_SENT, CHAT_MESSAGES_READ


class ChatError(Exception):
    """Base class for chat failures reported back to the client."""


class ParticipantNotFoundError(ChatError):
    """Raised when the sender or recipient account does not exist."""


class InvalidMessageError(ChatError):
    """Raised for empty, oversized or self-addressed messages."""


class ChatPermissionError(ChatError):
    """Raised when the sender may not write to the recipient."""


class ChatService:
    """Business logic for support-chat messages."""

    def __init__(
        self,
        db: AsyncSession,
        *,
        max_length: Optional[int] = None,
        admin_only: Optional[bool] = None,
    ):
        self.db = db
        self.events = EventStore(db)
        self.max_length = max_length or settings.chat_max_message_length
        self.admin_only = (
            settings.chat_admin_only if admin_only is None else admin_only
        )

    # ─── Send ───────────────────────────────────────────

    async def send_message(
        self,
        sender_id: uuid.UUID,
        recipient_id: uuid.UUID,
        content: str,
    ) -> ChatMessage:
        """Validate and persist a message.

        The returned message has `sender` and `recipient` populated so it
        can be serialized without another round-trip.
        """
        content = (content or "").strip()
        if not content:
            raise InvalidMessageError("Message cannot be empty")
        if len(content) > self.max_length:
            raise InvalidMessageError(
                f"Message exceeds {self.max_length} characters"
            )
        if sender_id == recipient_id:
            raise InvalidMessageError("Cannot send a message to yourself")

        sender = await self.db.get(User, sender_id)
        if not sender:
            raise ParticipantNotFoundError("Sender not found")
        recipient = await self.db.get(User, recipient_id)
        if not recipient:
            raise ParticipantNotFoundError("Recipient not found")

        if sender.status == STATUS_BLOCKED:
            raise ChatPermissionError("Account is blocked.")
        if (
            self.admin_only
            and sender.role != ROLE_ADMIN
            and recipient.role != ROLE_ADMIN
        ):
            raise ChatPermissionError("Messages can only be sent to support")

        msg = ChatMessage(
            sender_id=sender.id,
            recipient_id=recipient.id,
            content=content,
            read=False,
        )
        msg.sender = sender
        msg.recipient = recipient
        self.db.add(msg)
        await self.db.flush()

        await self.events.append(
            stream_id=chat_stream(recipient.id),
            event_type=CHAT_MESSAGE_SENT,
            data={
                "message_id": msg.id,
                "sender_id": str(sender.id),
                "recipient_id": str(recipient.id),
            },
        )
        await self.db.commit()
        return msg

    # ─── Read ───────────────────────────────────────────

    async def get_thread(
        self, user_id: uuid.UUID, peer_id: uuid.UUID
    ) -> list[ChatMessage]:
        """All messages between two accounts, oldest first."""
        result = await self.db.execute(
            select(ChatMessage)
            .where(
                or_(
                    and_(
                        ChatMessage.sender_id == user_id,
                        ChatMessage.recipient_id == peer_id,
                    ),
                    and_(
                        ChatMessage.sender_id == peer_id,
                        ChatMessage.recipient_id == user_id,
                    ),
                )
            )
            .options(
                selectinload(ChatMessage.sender),
                selectinload(ChatMessage.recipient),
            )
            .order_by(ChatMessage.created_at, ChatMessage.id)
            # rows may already sit in the session with a stale read flag
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def mark_read(self, reader_id: uuid.UUID, sender_id: uuid.UUID) -> int:
        """Mark everything `sender_id` sent to `reader_id` as read.

        Returns how many messages changed; already-read messages are left
        alone so read_at keeps the first read time.
        """
        result = await self.db.execute(
            update(ChatMessage)
            .where(
                ChatMessage.sender_id == sender_id,
                ChatMessage.recipient_id == reader_id,
                ChatMessage.read.is_(False),
            )
            .values(read=True, read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0

        if count:
            await self.events.append(
                stream_id=chat_stream(reader_id),
                event_type=CHAT_MESSAGES_READ,
                data={
                    "reader_id": str(reader_id),
                    "sender_id": str(sender_id),
                    "count": count,
                },
            )
        await self.db.commit()
        return count

    async def unread_count(self, user_id: uuid.UUID) -> int:
        count = await self.db.scalar(
            select(func.count())
            .select_from(ChatMessage)
            .where(
                ChatMessage.recipient_id == user_id,
                ChatMessage.read.is_(False),
            )
        )
        return count or 0

    # ─── Inbox ──────────────────────────────────────────

    async def list_conversations(self, user_id: uuid.UUID) -> list[dict[str, Any]]:
        """One row per peer the user has exchanged messages with.

        Newest conversation first. unread_count only counts messages
        addressed to `user_id`.
        """
        peer = case(
            (ChatMessage.sender_id == user_id, ChatMessage.recipient_id),
            else_=ChatMessage.sender_id,
        )
        unread = func.sum(
            case(
                (
                    and_(
                        ChatMessage.recipient_id == user_id,
                        ChatMessage.read.is_(False),
                    ),
                    1,
                ),
                else_=0,
            )
        )
        summary = (
            select(
                peer.label("peer_id"),
                func.max(ChatMessage.id).label("last_id"),
                unread.label("unread"),
            )
            .where(
                or_(
                    ChatMessage.sender_id == user_id,
                    ChatMessage.recipient_id == user_id,
                )
            )
            .group_by(peer)
            .subquery()
        )

        result = await self.db.execute(
            select(User, ChatMessage, summary.c.unread)
            .join(summary, User.id == summary.c.peer_id)
            .join(ChatMessage, ChatMessage.id == summary.c.last_id)
            .order_by(ChatMessage.id.desc())
        )
        return [
            {
                "user_id": peer_user.id,
                "name": peer_user.name,
                "email": peer_user.email,
                "last_message": last.content,
                "last_message_at": last.created_at,
                "unread_count": int(unread_count or 0),
            }
            for peer_user, last, unread_count in result.all()
        ]

    async def get_support_admin(self) -> Optional[User]:
        """The admin customers talk to — the oldest admin account."""
        result = await self.db.execute(
            select(User)
            .where(User.role == ROLE_ADMIN)
            .order_by(User.created_at, User.id)
            .limit(1)
        )
        return result.scalars().first()
