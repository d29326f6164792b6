"""Event store — append-only audit log.

Services append one event per state change (account created, message
sent, messages read) alongside the row they write, in the same
transaction. Nothing is ever updated or deleted here, so an account's
history survives the account itself.

Streams are named after what they describe:
- "user:<uuid>": account lifecycle (registered, updated, role, deleted)
- "chat:<uuid>": messages addressed to / read by that account
"""

import uuid
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.db.models import Event


def user_stream(user_id: uuid.UUID | str) -> str:
    return f"user:{user_id}"


def chat_stream(user_id: uuid.UUID | str) -> str:
    return f"chat:{user_id}"


class EventStore:
    """Append-only event store backed by the application database."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def append(
        self,
        stream_id: str,
        event_type: str,
        data: dict,
        actor_id: Optional[str] = None,
    ) -> Event:
        """Add an event to the current transaction (flushed, not committed).

        `actor_id` is recorded in metadata when someone other than the
        subject caused the change (an admin, the CLI).
        """
        event = Event(
            stream_id=stream_id,
            type=event_type,
            data=data,
            meta={"actor_id": actor_id} if actor_id else {},
        )
        self.db.add(event)
        await self.db.flush()
        return event

    async def read_stream(
        self,
        stream_id: str,
        after_id: int = 0,
        event_types: Optional[Iterable[str]] = None,
        limit: int = 100,
    ) -> list[Event]:
        """Events of one stream in append order, optionally filtered by type."""
        query = (
            select(Event)
            .where(Event.stream_id == stream_id, Event.id > after_id)
            .order_by(Event.id)
            .limit(limit)
        )
        if event_types:
            query = query.where(Event.type.in_(list(event_types)))
        result = await self.db.execute(query)
        return list(result.scalars().all())
