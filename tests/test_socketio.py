"""Socket.IO handshake tests — token extraction and connect refusal."""

import pytest

from conftest import token_for
from supportdesk.auth.jwt import create_access_token
from supportdesk.realtime import socketio as sio_module
from supportdesk.realtime.socketio import _extract_token


def test_token_from_query_string():
    environ = {"query_string": b"EIO=4&transport=websocket&token=abc.def"}
    assert _extract_token(environ, None) == "abc.def"


def test_token_from_nested_asgi_scope():
    environ = {"asgi.scope": {"query_string": b"token=xyz"}}
    assert _extract_token(environ, None) == "xyz"


def test_token_from_auth_payload():
    assert _extract_token({"query_string": b"EIO=4"}, {"token": "from-auth"}) == "from-auth"


def test_query_string_wins_over_auth():
    environ = {"query_string": b"token=from-query"}
    assert _extract_token(environ, {"token": "from-auth"}) == "from-query"


def test_no_token():
    assert _extract_token({}, None) is None
    assert _extract_token({"query_string": b"token="}, {"token": ""}) is None


@pytest.fixture()
def patched_relay(monkeypatch, relay):
    monkeypatch.setattr(sio_module, "relay", relay)
    return relay


@pytest.mark.asyncio
async def test_connect_without_token_is_allowed(patched_relay, emitter):
    assert await sio_module.connect("s1", {}, None) is None
    assert emitter.sent == []


@pytest.mark.asyncio
async def test_connect_with_expired_token_refused(patched_relay, customer):
    token = create_access_token(str(customer.id), "user", expires_minutes=-1)
    with pytest.raises(ConnectionRefusedError, match="jwt_expired"):
        await sio_module.connect("s1", {}, {"token": token})

    # The refused sid cannot be bound later on
    assert await patched_relay.authenticate("s1", token_for(customer)) is None
    assert not patched_relay.is_online(customer.id)


@pytest.mark.asyncio
async def test_connect_with_bad_token_refused(patched_relay):
    with pytest.raises(ConnectionRefusedError, match="unauthorized"):
        await sio_module.connect("s1", {"query_string": b"token=garbage"}, None)


@pytest.mark.asyncio
async def test_connect_with_token_authenticates(patched_relay, emitter, customer):
    await sio_module.connect("s1", {}, {"token": token_for(customer)})
    assert patched_relay.is_online(customer.id)
    assert emitter.events("authenticated", to="s1")[0]["data"]["success"] is True


@pytest.mark.asyncio
async def test_handlers_route_through_relay(patched_relay, emitter, customer, admin_user):
    await sio_module.connect("alice", {}, {"token": token_for(customer)})
    await sio_module.connect("admin", {}, None)
    await sio_module.on_authenticate("admin", token_for(admin_user))
    emitter.reset()

    await sio_module.on_typing("alice", {"recipient_id": str(admin_user.id)})
    await sio_module.on_send_message(
        "alice", {"recipient_id": str(admin_user.id), "content": "hi"}
    )
    await sio_module.on_mark_read("admin", {"sender_id": str(customer.id)})
    await sio_module.on_stop_typing("alice", {"recipient_id": str(admin_user.id)})
    await sio_module.disconnect("alice")

    assert [e["event"] for e in emitter.sent] == [
        "user-typing",
        "message-sent",
        "receive-message",
        "marked-read",
        "messages-read",
        "user-stop-typing",
        "user-offline",
    ]
