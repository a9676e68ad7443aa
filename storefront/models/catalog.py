from datetime import datetime

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from storefront.models.base import utc_now


class Category(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str
    slug: str = Field(unique=True, index=True)
    description: str | None = None
    image: str | None = None
    parent_id: int | None = Field(default=None, foreign_key="category.id")
    created_at: datetime = Field(default_factory=utc_now)

class Product(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str
    slug: str = Field(unique=True, index=True)
    description: str | None = None
    short_desc: str | None = None
    price: float
    discount_price: float | None = None
    sku: str | None = Field(default=None, unique=True)
    stock: int = 0
    category_id: int = Field(foreign_key="category.id", index=True)
    images: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    thumbnail: str | None = None
    is_new: bool = False
    is_featured: bool = False
    is_active: bool = True
    tags: list[str] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})

    @property
    def effective_price(self) -> float:
        return self.discount_price or self.price
