from datetime import datetime
from enum import Enum

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field

from storefront.models.base import utc_now


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"

class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"

CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.PROCESSING)

class Order(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    order_number: str = Field(unique=True, index=True)
    user_id: int = Field(foreign_key="user.id", index=True)
    status: OrderStatus = Field(default=OrderStatus.PENDING)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PENDING)
    payment_method: str | None = None
    subtotal: float = 0
    shipping: float = 0
    discount: float = 0
    tax: float = 0
    total: float = 0
    # Snapshots taken at checkout, not references to Address rows
    shipping_address: dict = Field(default_factory=dict, sa_column=Column(JSON))
    billing_address: dict = Field(default_factory=dict, sa_column=Column(JSON))
    customer_notes: str | None = None
    admin_notes: str | None = None
    tracking_number: str | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now, sa_column_kwargs={"onupdate": utc_now})

class OrderItem(SQLModel, table=True):
    __tablename__ = "order_item"

    id: int | None = Field(default=None, primary_key=True)
    order_id: int = Field(foreign_key="order.id", index=True)
    product_id: int = Field(foreign_key="product.id", index=True)
    quantity: int
    price: float
    product_snapshot: dict = Field(default_factory=dict, sa_column=Column(JSON))
