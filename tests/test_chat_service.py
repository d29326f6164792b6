"""ChatService tests — validation, threads, read tracking, inbox."""

import uuid

import pytest
from sqlalchemy import select

from supportdesk.db.models import STATUS_BLOCKED, Event
from supportdesk.events.store import EventStore
from supportdesk.services.chat_service import (
    ChatPermissionError,
    ChatService,
    InvalidMessageError,
    ParticipantNotFoundError,
)


@pytest.mark.asyncio
async def test_send_message_persists_and_audits(db_session, customer, admin_user):
    svc = ChatService(db_session)
    msg = await svc.send_message(customer.id, admin_user.id, "  Where is my order?  ")

    assert msg.id is not None
    assert msg.content == "Where is my order?"
    assert msg.read is False
    assert msg.sender.email == "alice@example.com"
    assert msg.recipient.email == "admin@shop.test"

    events = await EventStore(db_session).read_stream(f"chat:{admin_user.id}")
    assert [e.type for e in events] == ["chat.message_sent"]
    assert events[0].data["message_id"] == msg.id


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["", "   "])
async def test_send_rejects_empty(db_session, customer, admin_user, content):
    with pytest.raises(InvalidMessageError):
        await ChatService(db_session).send_message(customer.id, admin_user.id, content)


@pytest.mark.asyncio
async def test_send_rejects_too_long(db_session, customer, admin_user):
    svc = ChatService(db_session, max_length=10)
    with pytest.raises(InvalidMessageError, match="10 characters"):
        await svc.send_message(customer.id, admin_user.id, "x" * 11)


@pytest.mark.asyncio
async def test_send_rejects_self(db_session, customer):
    with pytest.raises(InvalidMessageError):
        await ChatService(db_session).send_message(customer.id, customer.id, "hi me")


@pytest.mark.asyncio
async def test_send_unknown_recipient(db_session, customer):
    with pytest.raises(ParticipantNotFoundError, match="Recipient not found"):
        await ChatService(db_session).send_message(customer.id, uuid.uuid4(), "hello?")


@pytest.mark.asyncio
async def test_send_unknown_sender(db_session, admin_user):
    with pytest.raises(ParticipantNotFoundError, match="Sender not found"):
        await ChatService(db_session).send_message(uuid.uuid4(), admin_user.id, "hello")


@pytest.mark.asyncio
async def test_customers_can_only_write_to_support(db_session, customer, other_customer):
    with pytest.raises(ChatPermissionError):
        await ChatService(db_session).send_message(customer.id, other_customer.id, "hey")


@pytest.mark.asyncio
async def test_customer_to_customer_when_not_restricted(
    db_session, customer, other_customer
):
    svc = ChatService(db_session, admin_only=False)
    msg = await svc.send_message(customer.id, other_customer.id, "hey Bob")
    assert msg.recipient_id == other_customer.id


@pytest.mark.asyncio
async def test_blocked_sender_cannot_write(db_session, customer, admin_user):
    customer.status = STATUS_BLOCKED
    await db_session.commit()
    with pytest.raises(ChatPermissionError, match="blocked"):
        await ChatService(db_session).send_message(customer.id, admin_user.id, "hi")


@pytest.mark.asyncio
async def test_thread_is_both_directions_oldest_first(
    db_session, customer, other_customer, admin_user
):
    svc = ChatService(db_session)
    await svc.send_message(customer.id, admin_user.id, "one")
    await svc.send_message(admin_user.id, customer.id, "two")
    await svc.send_message(other_customer.id, admin_user.id, "not in thread")
    await svc.send_message(customer.id, admin_user.id, "three")

    thread = await svc.get_thread(customer.id, admin_user.id)
    assert [m.content for m in thread] == ["one", "two", "three"]
    # Same thread from the other side
    assert [m.id for m in await svc.get_thread(admin_user.id, customer.id)] == [
        m.id for m in thread
    ]


@pytest.mark.asyncio
async def test_mark_read_only_touches_incoming(db_session, customer, admin_user):
    svc = ChatService(db_session)
    await svc.send_message(customer.id, admin_user.id, "q1")
    await svc.send_message(customer.id, admin_user.id, "q2")
    await svc.send_message(admin_user.id, customer.id, "answer")

    assert await svc.unread_count(admin_user.id) == 2
    assert await svc.unread_count(customer.id) == 1

    assert await svc.mark_read(admin_user.id, customer.id) == 2
    assert await svc.unread_count(admin_user.id) == 0
    assert await svc.unread_count(customer.id) == 1

    thread = await svc.get_thread(admin_user.id, customer.id)
    incoming = [m for m in thread if m.sender_id == customer.id]
    assert all(m.read and m.read_at is not None for m in incoming)
    assert [m.read for m in thread if m.sender_id == admin_user.id] == [False]


@pytest.mark.asyncio
async def test_mark_read_twice_is_noop(db_session, customer, admin_user):
    svc = ChatService(db_session)
    await svc.send_message(customer.id, admin_user.id, "ping")

    assert await svc.mark_read(admin_user.id, customer.id) == 1
    assert await svc.mark_read(admin_user.id, customer.id) == 0

    read_events = (await db_session.execute(
        select(Event).where(Event.type == "chat.messages_read")
    )).scalars().all()
    assert len(read_events) == 1
    assert read_events[0].data["count"] == 1


@pytest.mark.asyncio
async def test_list_conversations(db_session, customer, other_customer, admin_user):
    svc = ChatService(db_session)
    await svc.send_message(customer.id, admin_user.id, "alice 1")
    await svc.send_message(other_customer.id, admin_user.id, "bob 1")
    await svc.send_message(customer.id, admin_user.id, "alice 2")
    await svc.send_message(admin_user.id, other_customer.id, "reply to bob")

    rows = await svc.list_conversations(admin_user.id)

    # Bob's thread has the newest message
    assert [r["email"] for r in rows] == ["bob@example.com", "alice@example.com"]
    bob, alice = rows
    assert bob["last_message"] == "reply to bob"
    assert bob["unread_count"] == 1
    assert alice["last_message"] == "alice 2"
    assert alice["unread_count"] == 2
    assert alice["user_id"] == customer.id


@pytest.mark.asyncio
async def test_list_conversations_empty(db_session, admin_user):
    assert await ChatService(db_session).list_conversations(admin_user.id) == []


@pytest.mark.asyncio
async def test_support_admin_is_oldest_admin(db_session, admin_user):
    from supportdesk.services.user_service import UserService

    await UserService(db_session).create_user(
        email="second@shop.test", name="Second Admin", password="secret123",
        role="admin", actor_id="test",
    )
    admin = await ChatService(db_session).get_support_admin()
    assert admin.id == admin_user.id


@pytest.mark.asyncio
async def test_support_admin_missing(db_session, customer):
    assert await ChatService(db_session).get_support_admin() is None
