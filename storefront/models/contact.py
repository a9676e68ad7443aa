from datetime import datetime
from enum import Enum

from sqlmodel import SQLModel, Field

from storefront.models.base import utc_now


class ContactStatus(str, Enum):
    NEW = "NEW"
    READ = "READ"
    REPLIED = "REPLIED"
    ARCHIVED = "ARCHIVED"

class ContactMessage(SQLModel, table=True):
    __tablename__ = "contact_message"

    id: int | None = Field(default=None, primary_key=True)
    first_name: str
    last_name: str | None = None
    email: str
    phone: str | None = None
    subject: str = "Contact général"
    message: str
    status: ContactStatus = Field(default=ContactStatus.NEW, index=True)
    notes: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})
