from datetime import datetime
from enum import Enum

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from storefront.models.base import utc_now


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ORDER_STATUS_CHANGE = "ORDER_STATUS_CHANGE"
    ROLE_CHANGE = "ROLE_CHANGE"
    LOGIN = "LOGIN"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    BULK_DELETE = "BULK_DELETE"
    SETTINGS_CHANGE = "SETTINGS_CHANGE"

class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_log"

    id: int | None = Field(default=None, primary_key=True)
    user_id: int | None = Field(default=None, foreign_key="user.id", index=True)
    user_email: str | None = None
    action: AuditAction = Field(index=True)
    resource: str = Field(index=True)
    resource_id: str | None = None
    details: dict | None = Field(default=None, sa_column=Column(JSON))
    ip_address: str | None = None
    user_agent: str | None = None
    success: bool = True
    error_message: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
