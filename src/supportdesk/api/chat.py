"""Chat API — history, inbox and the REST fallback for sending.

The live path is Socket.IO (realtime/socketio.py); these routes cover
loading history when a chat window opens and sending when the socket is
down. Messages sent here still reach an online recipient through the relay.

- GET /chat/conversations → admin inbox, one row per customer
- GET /chat/messages/{user_id} → thread with a peer (marks it read)
- POST /chat/send → persist + deliver
- GET /chat/unread-count → unread messages addressed to me
- GET /chat/admin → the support admin customers write to
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.auth.dependencies import (
    CurrentIdentity,
    get_current_user,
    require_admin,
)
from supportdesk.db.engine import get_db
from supportdesk.realtime.relay import ChatRelay, serialize_message
from supportdesk.realtime.socketio import get_relay
from supportdesk.schemas.chat import (
    ChatMessageRead,
    ConversationRead,
    SendMessageRequest,
    SupportContact,
    UnreadCount,
)
from supportdesk.services.chat_service import (
    ChatPermissionError,
    ChatService,
    InvalidMessageError,
    ParticipantNotFoundError,
)

router = APIRouter(prefix="/chat")


def _chat_svc(db: AsyncSession = Depends(get_db)) -> ChatService:
    return ChatService(db)


@router.get("/conversations", response_model=list[ConversationRead])
async def list_conversations(
    admin: CurrentIdentity = Depends(require_admin),
    svc: ChatService = Depends(_chat_svc),
    relay: ChatRelay = Depends(get_relay),
):
    """Customers who have exchanged messages with this admin."""
    rows = await svc.list_conversations(admin.uuid)
    return [
        {**row, "online": relay.is_online(row["user_id"])}
        for row in rows
    ]


@router.get("/messages/{user_id}", response_model=list[ChatMessageRead])
async def get_messages(
    user_id: uuid.UUID,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ChatService = Depends(_chat_svc),
    relay: ChatRelay = Depends(get_relay),
):
    """Thread with `user_id`, oldest first. Opening it marks it read."""
    count = await svc.mark_read(identity.uuid, user_id)
    await relay.notify_read(identity.user_id, user_id, count)
    return await svc.get_thread(identity.uuid, user_id)


@router.post("/send", response_model=ChatMessageRead, status_code=201)
async def send_message(
    body: SendMessageRequest,
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ChatService = Depends(_chat_svc),
    relay: ChatRelay = Depends(get_relay),
):
    """REST fallback for sending; the recipient still gets it live."""
    try:
        msg = await svc.send_message(identity.uuid, body.recipient_id, body.content)
    except InvalidMessageError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ParticipantNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ChatPermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))

    payload = serialize_message(msg)
    await relay.deliver(payload)
    return payload


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: ChatService = Depends(_chat_svc),
):
    return {"count": await svc.unread_count(identity.uuid)}


@router.get("/admin", response_model=SupportContact)
async def get_support_admin(
    svc: ChatService = Depends(_chat_svc),
    relay: ChatRelay = Depends(get_relay),
):
    """The admin account customers should address messages to."""
    admin = await svc.get_support_admin()
    if not admin:
        raise HTTPException(status_code=404, detail="Admin not found")
    return {
        "id": admin.id,
        "name": admin.name,
        "email": admin.email,
        "online": relay.is_online(admin.id),
    }
