"""User service — accounts, credentials and admin management.

API routes call services, services call the database. Every mutation
appends an audit event in the same transaction.
"""

import math
import uuid
from typing import Any, Optional

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.auth.password import hash_password, verify_password
from supportdesk.db.models import (
    ROLE_ADMIN,
    ROLE_USER,
    STATUS_ACTIVE,
    STATUS_BLOCKED,
    STATUS_UNVERIFIED,
    ChatMessage,
    User,
)
from supportdesk.events.store import EventStore, user_stream
from supportdesk.events.types import (
    USER_CREATED,
    USER_DELETED,
    USER_REGISTERED,
    USER_ROLE_CHANGED,
    USER_UPDATED,
)


class UserNotFoundError(Exception):
    """Raised when a user id does not resolve to an account."""


class EmailTakenError(Exception):
    """Raised when an email is already used by another account."""


class EmptyUpdateError(ValueError):
    """Raised when an update carries no fields."""


class InvalidCredentialsError(Exception):
    """Raised on unknown email or wrong password."""


class AccountInactiveError(Exception):
    """Raised when a blocked or unverified account tries to log in."""


class UserService:
    """Business logic for account management."""

    PAGE_SIZE = 10

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = EventStore(db)

    # ─── Lookup ─────────────────────────────────────────

    async def get_user(self, user_id: uuid.UUID) -> User:
        user = await self.db.get(User, user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return user

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == email.strip().lower())
        )
        return result.scalars().first()

    # ─── Create ─────────────────────────────────────────

    async def create_user(
        self,
        *,
        email: str,
        name: str,
        password: str,
        role: str = ROLE_USER,
        actor_id: Optional[str] = None,
    ) -> User:
        """Create an account. Self-registration passes no actor_id."""
        email = email.strip().lower()
        if await self.get_by_email(email):
            raise EmailTakenError("User already exists")

        user = User(
            email=email,
            name=name.strip(),
            password_hash=hash_password(password),
            role=role,
            status=STATUS_ACTIVE,
        )
        self.db.add(user)
        await self.db.flush()

        await self.events.append(
            stream_id=user_stream(user.id),
            event_type=USER_CREATED if actor_id else USER_REGISTERED,
            data={"email": email, "role": role},
            actor_id=actor_id,
        )
        await self.db.commit()
        await self.db.refresh(user)
        return user

    # ─── Login ──────────────────────────────────────────

    async def authenticate(self, email: str, password: str) -> User:
        """Resolve credentials to an active account."""
        user = await self.get_by_email(email)
        if not user or not user.password_hash:
            raise InvalidCredentialsError("Invalid email or password")
        if not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Invalid email or password")

        if user.status == STATUS_BLOCKED:
            raise AccountInactiveError("Account is blocked.")
        if user.status == STATUS_UNVERIFIED:
            raise AccountInactiveError("Account not verified.")
        return user

    # ─── Admin listing ──────────────────────────────────

    async def list_users(
        self, page: int = 1, role: str = ROLE_USER
    ) -> dict[str, Any]:
        """One page of accounts with the given role, newest first."""
        page = max(page, 1)
        total = await self.db.scalar(
            select(func.count()).select_from(User).where(User.role == role)
        )
        result = await self.db.execute(
            select(User)
            .where(User.role == role)
            .order_by(User.created_at.desc(), User.id)
            .offset((page - 1) * self.PAGE_SIZE)
            .limit(self.PAGE_SIZE)
        )
        return {
            "page": page,
            "total_pages": math.ceil(total / self.PAGE_SIZE),
            "total_records": total,
            "data": list(result.scalars().all()),
        }

    async def stats(self) -> dict[str, int]:
        total_users = await self.db.scalar(select(func.count()).select_from(User))
        total_admins = await self.db.scalar(
            select(func.count()).select_from(User).where(User.role == ROLE_ADMIN)
        )
        return {"total_users": total_users, "total_admins": total_admins}

    # ─── Update ─────────────────────────────────────────

    async def update_user(
        self,
        user_id: uuid.UUID,
        changes: dict[str, Any],
        actor_id: Optional[str] = None,
    ) -> User:
        """Apply a partial update. Keys with None values are ignored."""
        changes = {k: v for k, v in changes.items() if v is not None}
        if not changes:
            raise EmptyUpdateError("No valid fields provided for update")

        user = await self.get_user(user_id)

        if "email" in changes:
            changes["email"] = changes["email"].strip().lower()
            existing = await self.get_by_email(changes["email"])
            if existing and existing.id != user.id:
                raise EmailTakenError("Email already in use")

        password = changes.pop("password", None)
        if password is not None:
            user.password_hash = hash_password(password)

        for field, value in changes.items():
            setattr(user, field, value)

        await self.events.append(
            stream_id=user_stream(user.id),
            event_type=USER_UPDATED,
            # Never log the password itself
            data={
                "fields": sorted(changes) + (["password"] if password else []),
            },
            actor_id=actor_id,
        )
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def change_role(
        self,
        user_id: uuid.UUID,
        role: str,
        actor_id: Optional[str] = None,
    ) -> User:
        user = await self.get_user(user_id)
        previous = user.role
        user.role = role

        await self.events.append(
            stream_id=user_stream(user.id),
            event_type=USER_ROLE_CHANGED,
            data={"from": previous, "to": role},
            actor_id=actor_id,
        )
        await self.db.commit()
        await self.db.refresh(user)
        return user

    # ─── Delete ─────────────────────────────────────────

    async def delete_user(
        self,
        user_id: uuid.UUID,
        actor_id: Optional[str] = None,
    ) -> None:
        """Delete an account together with its chat history."""
        user = await self.get_user(user_id)

        await self.db.execute(
            delete(ChatMessage).where(
                or_(
                    ChatMessage.sender_id == user.id,
                    ChatMessage.recipient_id == user.id,
                )
            )
        )
        await self.db.delete(user)

        await self.events.append(
            stream_id=user_stream(user_id),
            event_type=USER_DELETED,
            data={"email": user.email},
            actor_id=actor_id,
        )
        await self.db.commit()
