"""Pydantic schemas for the support chat.

The same ChatMessageRead shape goes out over HTTP and over the socket
(`message-sent`, `receive-message`), so clients render both identically.
Inbound socket payloads are validated with the *Event models.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field


class Participant(BaseModel):
    id: uuid.UUID
    name: str
    email: str

    model_config = {"from_attributes": True}


class ChatMessageRead(BaseModel):
    id: int
    sender: Participant
    recipient: Participant
    content: str
    read: bool
    read_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class SendMessageRequest(BaseModel):
    recipient_id: uuid.UUID
    content: str = Field(..., min_length=1)


class ConversationRead(BaseModel):
    """One row of the admin inbox — a peer and the latest exchange."""
    user_id: uuid.UUID
    name: str
    email: str
    last_message: str
    last_message_at: datetime
    unread_count: int
    online: bool = False


class UnreadCount(BaseModel):
    count: int


class SupportContact(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    online: bool = False


# ─── Socket events (client → server) ────────────────────
# Browser clients send camelCase keys ("receiverId", "message", "senderId");
# both spellings are accepted.

class SendMessageEvent(BaseModel):
    recipient_id: uuid.UUID = Field(
        validation_alias=AliasChoices("recipient_id", "receiverId")
    )
    content: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("content", "message")
    )


class MarkReadEvent(BaseModel):
    sender_id: uuid.UUID = Field(
        validation_alias=AliasChoices("sender_id", "senderId")
    )


class TypingEvent(BaseModel):
    recipient_id: uuid.UUID = Field(
        validation_alias=AliasChoices("recipient_id", "receiverId")
    )
