from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field

from storefront.models.base import utc_now


class Role(str, Enum):
    CUSTOMER = "CUSTOMER"
    PERSONNEL = "PERSONNEL"
    MANAGER = "MANAGER"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"

# Roles that pass every permission check
ELEVATED_ROLES = (Role.ADMIN, Role.SUPER_ADMIN)
STAFF_ROLES = (Role.PERSONNEL, Role.MANAGER, Role.ADMIN, Role.SUPER_ADMIN)

class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    name: str | None = None
    phone: str | None = Field(default=None, index=True)
    image: str | None = None
    role: Role = Field(default=Role.CUSTOMER)
    hashed_password: str | None = None
    email_verified: bool = False
    push_token: str | None = None
    reset_token: str | None = Field(default=None, index=True)
    reset_token_expiry: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})

class UserSession(SQLModel, table=True):
    __tablename__ = "session"

    id: int | None = Field(default=None, primary_key=True)
    token: str = Field(unique=True, index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    expires_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime = Field(default_factory=utc_now)

class Account(SQLModel, table=True):
    """Link between a user and a third-party identity (e.g. Sign in with Apple)."""
    __table_args__ = (UniqueConstraint("provider_id", "account_id"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    provider_id: str
    account_id: str
    created_at: datetime = Field(default_factory=utc_now)

class Verification(SQLModel, table=True):
    """Short-lived code sent by email, keyed by the address it was sent to."""
    id: int | None = Field(default=None, primary_key=True)
    identifier: str = Field(index=True)
    value: str
    expires_at: datetime
    created_at: datetime = Field(default_factory=utc_now)

class Permission(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(unique=True)
    category: str = Field(unique=True, index=True)
    description: str | None = None

class UserPermission(SQLModel, table=True):
    __tablename__ = "user_permission"
    __table_args__ = (UniqueConstraint("user_id", "permission_id"),)

    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    permission_id: int = Field(foreign_key="permission.id")
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False

class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    name: str | None = None
    phone: str | None = None
    image: str | None = None
    role: Role
    created_at: datetime | None = None

class UserPermissionResponse(BaseModel):
    permission_id: int
    category: str
    name: str
    can_view: bool
    can_create: bool
    can_edit: bool
    can_delete: bool

class StaffResponse(UserResponse):
    permissions: list[UserPermissionResponse] = []
