from datetime import datetime
from typing import Any

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from storefront.models.base import utc_now


class SiteSetting(SQLModel, table=True):
    __tablename__ = "site_setting"

    id: int | None = Field(default=None, primary_key=True)
    key: str = Field(unique=True, index=True)
    value: Any = Field(default=None, sa_column=Column(JSON))
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})

class PromoBanner(SQLModel, table=True):
    __tablename__ = "promo_banner"

    id: int | None = Field(default=None, primary_key=True)
    title: str
    subtitle: str | None = None
    image: str | None = None
    link: str | None = None
    order: int = 0
    enabled: bool = True
    created_at: datetime = Field(default_factory=utc_now)

class Image(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    filename: str
    mime_type: str
    size: int
    storage_key: str = Field(unique=True)
    created_at: datetime = Field(default_factory=utc_now)
