"""FastAPI auth dependencies.

Used as Depends() in route handlers to resolve the caller from the
`Authorization: Bearer <jwt>` header. `require_admin` is the role gate
for the admin routers.
"""

import uuid
from typing import Optional

from fastapi import Depends, Header, HTTPException

from supportdesk.auth.jwt import TokenError, verify_access_token
from supportdesk.db.models import ROLE_ADMIN


class CurrentIdentity:
    """The authenticated account making the request."""

    def __init__(self, user_id: str, role: str):
        self.user_id = user_id
        self.role = role

    @property
    def uuid(self) -> uuid.UUID:
        return uuid.UUID(self.user_id)

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


def identity_from_token(token: str) -> CurrentIdentity:
    """Decode an access token into an identity. Raises TokenError."""
    payload = verify_access_token(token)
    try:
        uuid.UUID(str(payload["sub"]))
    except ValueError:
        raise TokenError("Invalid token: malformed subject")
    return CurrentIdentity(user_id=str(payload["sub"]), role=payload.get("role", "user"))


async def get_current_user(
    authorization: Optional[str] = Header(None),
) -> CurrentIdentity:
    """Extract the current identity (401 if missing or invalid)."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=401,
            detail="No token provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return identity_from_token(authorization[7:])
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_admin(
    identity: CurrentIdentity = Depends(get_current_user),
) -> CurrentIdentity:
    """Role gate — 403 for anyone but admins."""
    if not identity.is_admin:
        raise HTTPException(status_code=403, detail="Forbidden")
    return identity
