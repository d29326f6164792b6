"""Test fixtures — a fresh in-memory SQLite database per test.

Each test gets its own engine on a single shared aiosqlite connection
(StaticPool), so the request session, the relay's sessions and the
test's own session all see the same data. Redis is never initialized,
so rate limiting is skipped.

Socket.IO emits are captured by FakeEmitter instead of going out on the
wire; tests assert on `emitter.sent`.
"""

import os

# Must be set before supportdesk.config is imported anywhere
os.environ.setdefault("SUPPORTDESK_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("SUPPORTDESK_JWT_SECRET", "test-secret-not-for-production")

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from supportdesk.auth import password as password_module
from supportdesk.auth.jwt import create_access_token
from supportdesk.db.engine import get_db
from supportdesk.db.models import ROLE_ADMIN, Base
from supportdesk.main import app
from supportdesk.realtime.relay import ChatRelay
from supportdesk.realtime.socketio import get_relay
from supportdesk.services.user_service import UserService

# Cheap hashes; the cost factor is not what these tests exercise
password_module.BCRYPT_ROUNDS = 4


class FakeEmitter:
    """Records what the relay would send through python-socketio."""

    def __init__(self):
        self.sent: list[dict] = []
        self.rooms: dict[str, set[str]] = {}

    async def emit(self, event, data=None, to=None, skip_sid=None, **kwargs):
        self.sent.append({"event": event, "data": data, "to": to, "skip_sid": skip_sid})

    async def enter_room(self, sid, room, **kwargs):
        self.rooms.setdefault(room, set()).add(sid)

    async def leave_room(self, sid, room, **kwargs):
        self.rooms.get(room, set()).discard(sid)

    def events(self, name: str, to: str | None = None) -> list[dict]:
        return [
            e for e in self.sent
            if e["event"] == name and (to is None or e["to"] == to)
        ]

    def reset(self) -> None:
        self.sent.clear()


@pytest_asyncio.fixture()
async def session_factory():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def emitter():
    return FakeEmitter()


@pytest_asyncio.fixture()
async def relay(emitter, session_factory):
    return ChatRelay(emitter, session_factory)


@pytest_asyncio.fixture()
async def client(db_session, relay):
    """HTTP client with the database and the relay swapped for test doubles.

    Auth is NOT overridden: tests send real tokens from the fixtures below.
    """
    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_relay] = lambda: relay

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ─── Accounts ───────────────────────────────────────────

@pytest_asyncio.fixture()
async def admin_user(db_session):
    return await UserService(db_session).create_user(
        email="admin@shop.test", name="Support Admin", password="admin-pass",
        role=ROLE_ADMIN, actor_id="test",
    )


@pytest_asyncio.fixture()
async def customer(db_session):
    return await UserService(db_session).create_user(
        email="alice@example.com", name="Alice", password="alice-pass",
    )


@pytest_asyncio.fixture()
async def other_customer(db_session):
    return await UserService(db_session).create_user(
        email="bob@example.com", name="Bob", password="bob-pass",
    )


def token_for(user) -> str:
    return create_access_token(str(user.id), user.role)


def auth_headers(user) -> dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}
