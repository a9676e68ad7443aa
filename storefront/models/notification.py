from datetime import datetime

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from storefront.models.base import utc_now


class Notification(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    title: str
    message: str
    type: str = "system"
    data: dict = Field(default_factory=dict, sa_column=Column(JSON))
    is_read: bool = False
    created_at: datetime = Field(default_factory=utc_now)
