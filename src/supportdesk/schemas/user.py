"""Pydantic schemas for accounts and auth.

"Create"/"Update" schemas validate input; "Read" schemas shape output.
Input models strip surrounding whitespace from emails and names and
lower-case emails. Passwords are taken verbatim."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

EMAIL_PATTERN = r"^[^\s@]+@[^\s@]+\.[^\s@]+$"
ROLE_PATTERN = r"^(user|admin)$"
STATUS_PATTERN = r"^(active|blocked|unverified)$"


class _Input(BaseModel):
    @field_validator("email", "name", mode="before", check_fields=False)
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email", check_fields=False)
    @classmethod
    def _lower_email(cls, v: Optional[str]) -> Optional[str]:
        return v.lower() if v is not None else v


# ─── Auth ───────────────────────────────────────────────

class RegisterRequest(_Input):
    email: str = Field(..., max_length=255, pattern=EMAIL_PATTERN)
    name: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=6)


class LoginRequest(_Input):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    role: str


class RefreshRequest(BaseModel):
    refresh_token: str


# ─── Users ──────────────────────────────────────────────

class UserCreate(RegisterRequest):
    role: str = Field(default="user", pattern=ROLE_PATTERN)


class UserUpdate(_Input):
    """Partial update — only fields that are sent are changed."""
    name: Optional[str] = Field(None, min_length=3, max_length=50)
    email: Optional[str] = Field(None, max_length=255, pattern=EMAIL_PATTERN)
    password: Optional[str] = Field(None, min_length=6)
    role: Optional[str] = Field(None, pattern=ROLE_PATTERN)
    status: Optional[str] = Field(None, pattern=STATUS_PATTERN)


class RoleChange(BaseModel):
    role: str = Field(..., pattern=ROLE_PATTERN)


class UserRead(BaseModel):
    id: uuid.UUID
    email: str
    name: str
    role: str
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserPage(BaseModel):
    page: int
    total_pages: int
    total_records: int
    data: list[UserRead]


class DashboardStats(BaseModel):
    total_users: int
    total_admins: int


class AuditEventRead(BaseModel):
    """One entry of an account's audit trail."""
    id: int
    type: str
    data: dict
    metadata: dict = Field(validation_alias="meta")
    created_at: datetime

    model_config = {"from_attributes": True}
