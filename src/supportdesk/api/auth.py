"""Auth API — registration, login, token refresh, current user.

- POST /auth/register → create a customer account
- POST /auth/login → email/password → JWT tokens + role
- POST /auth/refresh → refresh token → new token pair
- GET /auth/me → current account
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.auth.dependencies import CurrentIdentity, get_current_user
from supportdesk.auth.jwt import (
    TokenError,
    create_access_token,
    create_refresh_token,
    verify_token,
)
from supportdesk.db.engine import get_db
from supportdesk.db.models import STATUS_ACTIVE, User
from supportdesk.schemas.user import (
    LoginRequest,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
    UserRead,
)
from supportdesk.services.user_service import (
    AccountInactiveError,
    EmailTakenError,
    InvalidCredentialsError,
    UserNotFoundError,
    UserService,
)

router = APIRouter(prefix="/auth")


def _user_svc(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


def _tokens_for(user: User) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(str(user.id), user.role),
        refresh_token=create_refresh_token(str(user.id)),
        role=user.role,
    )


@router.post("/register", response_model=UserRead, status_code=201)
async def register(body: RegisterRequest, svc: UserService = Depends(_user_svc)):
    """Create a new customer account."""
    try:
        return await svc.create_user(
            email=body.email, name=body.name, password=body.password
        )
    except EmailTakenError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, svc: UserService = Depends(_user_svc)):
    """Login with email and password → JWT tokens."""
    try:
        user = await svc.authenticate(body.email, body.password)
    except InvalidCredentialsError as e:
        raise HTTPException(status_code=401, detail=str(e))
    except AccountInactiveError as e:
        raise HTTPException(status_code=403, detail=str(e))
    return _tokens_for(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh(body: RefreshRequest, svc: UserService = Depends(_user_svc)):
    """Exchange a refresh token for a new token pair.

    The role is re-read from the database, so a role change takes effect
    at the next refresh.
    """
    try:
        payload = verify_token(body.refresh_token)
    except TokenError as e:
        raise HTTPException(status_code=401, detail=str(e))
    if payload.get("type") != "refresh":
        raise HTTPException(status_code=401, detail="Not a refresh token")

    try:
        user = await svc.get_user(_parse_uuid(payload.get("sub")))
    except UserNotFoundError:
        raise HTTPException(status_code=401, detail="User not found")
    if user.status != STATUS_ACTIVE:
        raise HTTPException(status_code=403, detail="Account is not active")
    return _tokens_for(user)


@router.get("/me", response_model=UserRead)
async def get_me(
    identity: CurrentIdentity = Depends(get_current_user),
    svc: UserService = Depends(_user_svc),
):
    """Get the current authenticated account."""
    try:
        return await svc.get_user(identity.uuid)
    except UserNotFoundError:
        raise HTTPException(status_code=404, detail="User not found")


def _parse_uuid(value) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token subject")
