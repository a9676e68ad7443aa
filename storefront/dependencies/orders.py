import random
import re
import string
import time

from sqlmodel import Session, select

from storefront.models.catalog import Product
from storefront.models.order import Order, OrderItem, OrderStatus, PaymentStatus
from storefront.settings import get_settings


def normalize_phone(value: str | None) -> str:
    """Reduce a phone number to its national digits.

    "+225 01 02 03 04 05", "00225 0102030405" and "01-02-03-04-05" all give
    "0102030405". Calling codes are only stripped from numbers written in
    international form.
    """
    raw = str(value or "").strip()
    digits = re.sub(r"\D", "", raw)
    international = raw.startswith("+")
    if digits.startswith("00"):
        digits = digits[2:]
        international = True
    if international:
        for code in get_settings().phone_country_codes:
            if digits.startswith(code) and len(digits) > len(code):
                return digits[len(code):]
    return digits

def phones_match(left: str | None, right: str | None) -> bool:
    normalized = normalize_phone(left)
    return normalized != "" and normalized == normalize_phone(right)

def generate_order_number() -> str:
    timestamp = str(int(time.time() * 1000))[-8:]
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=4))
    return f"ORD-{timestamp}-{suffix}"

def generate_unique_order_number(session: Session) -> str:
    """Generate an order number that doesn't exist in the database"""
    max_attempts = 100
    for _ in range(max_attempts):
        order_number = generate_order_number()
        existing = session.exec(select(Order).where(Order.order_number == order_number)).first()
        if not existing:
            return order_number
    raise RuntimeError("Failed to generate unique order number")

def get_order_items(session: Session, order_id: int) -> list[OrderItem]:
    return session.exec(select(OrderItem).where(OrderItem.order_id == order_id)).all()

def cancel_order(session: Session, order: Order) -> None:
    """Mark an order cancelled and put its items back in stock. Caller commits."""
    order.status = OrderStatus.CANCELLED
    order.payment_status = (
        PaymentStatus.REFUNDED if order.payment_status == PaymentStatus.PAID else PaymentStatus.FAILED
    )
    session.add(order)
    for item in get_order_items(session, order.id):
        product = session.get(Product, item.product_id)
        if product:
            product.stock += item.quantity
            session.add(product)

def serialize_order(session: Session, order: Order) -> dict:
    data = order.model_dump()
    data["items"] = [item.model_dump() for item in get_order_items(session, order.id)]
    return data
