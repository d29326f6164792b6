"""Admin API — user management for the shop's admins.

Every route here is mounted behind require_admin (see api/__init__.py).
Listing covers customer accounts only; admins are managed individually.
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from supportdesk.auth.dependencies import CurrentIdentity, require_admin
from supportdesk.db.engine import get_db
from supportdesk.events.store import EventStore, user_stream
from supportdesk.schemas.user import (
    AuditEventRead,
    DashboardStats,
    RoleChange,
    UserCreate,
    UserPage,
    UserRead,
    UserUpdate,
)
from supportdesk.services.user_service import (
    EmailTakenError,
    EmptyUpdateError,
    UserNotFoundError,
    UserService,
)

router = APIRouter(prefix="/admin")


def _user_svc(db: AsyncSession = Depends(get_db)) -> UserService:
    return UserService(db)


@router.get("/dashboard", response_model=DashboardStats)
async def dashboard(svc: UserService = Depends(_user_svc)):
    """Account totals for the admin landing page."""
    return await svc.stats()


@router.post("/users", response_model=UserRead, status_code=201)
async def create_user(
    body: UserCreate,
    admin: CurrentIdentity = Depends(require_admin),
    svc: UserService = Depends(_user_svc),
):
    try:
        return await svc.create_user(
            email=body.email,
            name=body.name,
            password=body.password,
            role=body.role,
            actor_id=admin.user_id,
        )
    except EmailTakenError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/users", response_model=UserPage)
async def list_users(
    page: int = Query(1, ge=1),
    svc: UserService = Depends(_user_svc),
):
    """Customer accounts, newest first, ten per page."""
    return await svc.list_users(page=page)


@router.get("/users/{user_id}", response_model=UserRead)
async def get_user(user_id: uuid.UUID, svc: UserService = Depends(_user_svc)):
    try:
        return await svc.get_user(user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/users/{user_id}", response_model=UserRead)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdate,
    admin: CurrentIdentity = Depends(require_admin),
    svc: UserService = Depends(_user_svc),
):
    """Partial update — name, email, password, role and/or status."""
    try:
        return await svc.update_user(
            user_id, body.model_dump(exclude_unset=True), actor_id=admin.user_id
        )
    except EmptyUpdateError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except EmailTakenError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.patch("/users/{user_id}/role", response_model=UserRead)
async def change_role(
    user_id: uuid.UUID,
    body: RoleChange,
    admin: CurrentIdentity = Depends(require_admin),
    svc: UserService = Depends(_user_svc),
):
    try:
        return await svc.change_role(user_id, body.role, actor_id=admin.user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/users/{user_id}")
async def delete_user(
    user_id: uuid.UUID,
    admin: CurrentIdentity = Depends(require_admin),
    svc: UserService = Depends(_user_svc),
):
    """Delete an account and its chat history."""
    try:
        await svc.delete_user(user_id, actor_id=admin.user_id)
    except UserNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"deleted": True}


@router.get("/users/{user_id}/events", response_model=list[AuditEventRead])
async def get_user_events(
    user_id: uuid.UUID,
    after_id: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """Audit trail of an account, oldest first.

    Still readable after the account is deleted; the stream outlives it.
    """
    return await EventStore(db).read_stream(
        user_stream(user_id), after_id=after_id, limit=limit
    )
