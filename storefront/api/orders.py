import logging
import math
import time
from datetime import datetime, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy import func
from sqlmodel import Session, or_, select
from starlette import status

from storefront.audit import record_audit
from storefront.auth import CurrentUserDep, OptionalUserDep, PermissionChecker, has_permission
from storefront.database import DbSessionDep
from storefront.dependencies.catalog import get_purchasable_product
from storefront.dependencies.orders import (
    cancel_order, generate_unique_order_number, phones_match, serialize_order,
)
from storefront.dependencies.site_settings import shipping_cost_for
from storefront.models.audit import AuditAction
from storefront.models.customer import CartItem
from storefront.models.notification import Notification
from storefront.models.order import (
    CANCELLABLE_STATUSES, Order, OrderItem, OrderStatus, PaymentStatus,
)
from storefront.models.user import Role, User
from storefront.schemas import RequestModel, envelope

logger = logging.getLogger(__name__)

class CheckoutCustomer(RequestModel):
    first_name: str
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None

class CheckoutAddress(RequestModel):
    address: str
    city: str
    state: str | None = None
    zip_code: str | None = None
    country: str | None = None

class CheckoutItem(RequestModel):
    product_id: int
    quantity: int = 1

class OrderCreate(RequestModel):
    customer: CheckoutCustomer
    billing_address: CheckoutAddress
    items: list[CheckoutItem]
    shipping_method: str | None = None
    payment_method: str = "cash_on_delivery"
    customer_notes: str | None = None

class OrderUpdate(RequestModel):
    status: OrderStatus | None = None
    payment_status: PaymentStatus | None = None
    tracking_number: str | None = None
    admin_notes: str | None = None

class BulkCancelRequest(RequestModel):
    ids: list[int]

class TrackOrderRequest(RequestModel):
    order_number: str | None = None
    phone: str | None = None
    contact: str | None = None

STATUS_MESSAGES = {
    OrderStatus.PROCESSING: "Votre commande {number} est en cours de préparation.",
    OrderStatus.SHIPPED: "Votre commande {number} a été expédiée.",
    OrderStatus.DELIVERED: "Votre commande {number} a été livrée.",
    OrderStatus.CANCELLED: "Votre commande {number} a été annulée.",
    OrderStatus.REFUNDED: "Votre commande {number} a été remboursée.",
}

router = APIRouter(
    prefix="/api/orders",
    tags=["orders"],
    responses={404: {"description": "Not found"}},
)

def get_order_or_404(session: Session, order_id: int) -> Order:
    order = session.get(Order, order_id)
    if not order:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found"
        )
    return order

def order_detail(session: Session, order: Order) -> dict:
    data = serialize_order(session, order)
    customer = session.get(User, order.user_id)
    data["user"] = {
        "id": customer.id,
        "name": customer.name,
        "email": customer.email,
        "phone": customer.phone,
    } if customer else None
    return data

def find_or_create_guest(session: Session, customer: CheckoutCustomer) -> User:
    """Find the buyer by email or phone, creating a CUSTOMER account for new guests"""
    digits = "".join(ch for ch in customer.phone or "" if ch.isdigit())
    email = (customer.email or "").strip().lower() or f"guest_{digits or int(time.time() * 1000)}@sissan-sissan.net"

    conditions = [User.email == email]
    if customer.phone:
        conditions.append(User.phone == customer.phone)
    user = session.exec(select(User).where(or_(*conditions))).first()
    if user:
        return user

    user = User(
        email=email,
        name=f"{customer.first_name} {customer.last_name or ''}".strip(),
        phone=customer.phone,
        role=Role.CUSTOMER,
    )
    session.add(user)
    session.flush()
    logger.info("Created guest customer %s at checkout", email)
    return user

@router.get("", dependencies=[Depends(PermissionChecker("orders", "view"))])
def list_orders(
    session: DbSessionDep,
    user_id: int | None = None,
    order_status: Annotated[OrderStatus | None, Query(alias="status")] = None,
    payment_status: PaymentStatus | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    conditions = []
    if user_id is not None:
        conditions.append(Order.user_id == user_id)
    if order_status:
        conditions.append(Order.status == order_status)
    if payment_status:
        conditions.append(Order.payment_status == payment_status)

    total = session.exec(select(func.count()).select_from(Order).where(*conditions)).one()
    orders = session.exec(
        select(Order)
        .where(*conditions)
        .order_by(Order.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return envelope([order_detail(session, order) for order in orders], pagination={
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit),
    })

@router.post("/bulk-cancel")
def bulk_cancel_orders(session: DbSessionDep, request: Request, current_user: CurrentUserDep, body: BulkCancelRequest):
    """Cancel several orders. Without orders.delete only your own pending orders qualify."""
    if not body.ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No orders selected"
        )
    can_delete = has_permission(session, current_user, "orders", "delete")

    results = []
    for order_id in body.ids:
        order = session.get(Order, order_id)
        if not order:
            results.append({"id": order_id, "success": False, "error": "Order not found"})
            continue
        if not can_delete:
            if order.user_id != current_user.id:
                results.append({"id": order_id, "success": False, "error": "Access denied to this order"})
                continue
            if order.status != OrderStatus.PENDING:
                results.append({"id": order_id, "success": False, "error": "Only pending orders can be cancelled"})
                continue
        if order.status == OrderStatus.CANCELLED:
            results.append({"id": order_id, "success": True})
            continue
        if order.status not in CANCELLABLE_STATUSES:
            results.append({"id": order_id, "success": False, "error": "Cannot cancel order in current status"})
            continue
        cancel_order(session, order)
        results.append({"id": order_id, "success": True})
    session.commit()

    cancelled = [result["id"] for result in results if result["success"]]
    record_audit(session, request, AuditAction.BULK_DELETE, "order",
                 details={"ids": cancelled}, user=current_user)
    failed = [result for result in results if not result["success"]]
    return {"success": not failed, "data": results, "failed": failed}

@router.post("/create", status_code=status.HTTP_201_CREATED)
def create_order(session: DbSessionDep, request: Request, current_user: OptionalUserDep, body: OrderCreate):
    """Checkout. Guests are matched or created by email or phone."""
    if not body.items:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Order has no items"
        )
    if not body.customer.phone and not body.customer.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A phone number or email is required"
        )
    if any(item.quantity < 1 for item in body.items):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Quantities must be positive"
        )

    buyer = current_user or find_or_create_guest(session, body.customer)

    # one line per product so the stock check sees the full quantity
    quantities: dict[int, int] = {}
    for item in body.items:
        quantities[item.product_id] = quantities.get(item.product_id, 0) + item.quantity

    lines = []
    subtotal = 0.0
    for product_id, quantity in quantities.items():
        product = get_purchasable_product(session, product_id, quantity)
        price = product.effective_price
        subtotal += price * quantity
        lines.append((product, quantity, price))

    shipping = shipping_cost_for(session, body.shipping_method, subtotal)
    address = {
        "name": f"{body.customer.first_name} {body.customer.last_name or ''}".strip(),
        "email": body.customer.email or buyer.email,
        "phone": body.customer.phone,
        "address": body.billing_address.address,
        "city": body.billing_address.city,
        "state": body.billing_address.state,
        "zipCode": body.billing_address.zip_code or "",
        "country": body.billing_address.country or "ML",
    }
    order = Order(
        order_number=generate_unique_order_number(session),
        user_id=buyer.id,
        payment_method=body.payment_method.upper(),
        subtotal=round(subtotal, 2),
        shipping=shipping,
        total=round(subtotal + shipping, 2),
        shipping_address=address,
        billing_address=dict(address),
        customer_notes=body.customer_notes,
    )
    session.add(order)
    session.flush()

    for product, quantity, price in lines:
        session.add(OrderItem(
            order_id=order.id,
            product_id=product.id,
            quantity=quantity,
            price=price,
            product_snapshot={
                "name": product.name,
                "slug": product.slug,
                "thumbnail": product.thumbnail,
                "price": price,
                "total": round(price * quantity, 2),
            },
        ))
        product.stock -= quantity
        session.add(product)

    for cart_item in session.exec(select(CartItem).where(CartItem.user_id == buyer.id)).all():
        session.delete(cart_item)
    session.commit()
    logger.info("Order %s created for user %s", order.order_number, buyer.id)

    return envelope(
        {"id": order.id, "order_number": order.order_number, "total": order.total},
        message="Order created",
        order_id=order.id,
        order_number=order.order_number,
    )

@router.post("/track")
def track_order(session: DbSessionDep, body: TrackOrderRequest):
    """Public order lookup, guarded by the phone number given at checkout"""
    order_number = (body.order_number or "").strip()
    phone = (body.phone or body.contact or "").strip()
    if not order_number or not phone:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing order number or phone"
        )

    order = session.exec(select(Order).where(Order.order_number == order_number)).first()
    if not order:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Order not found"
        )

    shipping_phone = (order.shipping_address or {}).get("phone")
    if not phones_match(phone, shipping_phone):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid tracking information"
        )
    return envelope(order_detail(session, order))

@router.get("/{order_id}")
def get_order(session: DbSessionDep, current_user: CurrentUserDep, order_id: int):
    """Get an order. Customers see their own; staff need orders.view."""
    order = get_order_or_404(session, order_id)
    if order.user_id != current_user.id and not has_permission(session, current_user, "orders", "view"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Permission denied: orders.view"
        )
    return envelope(order_detail(session, order))

@router.patch("/{order_id}")
def update_order(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("orders", "edit"))],
    order_id: int,
    order_update: OrderUpdate
):
    order = get_order_or_404(session, order_id)
    update_data = order_update.model_dump(exclude_unset=True)
    old_status = order.status
    new_status = update_data.pop("status", None)

    if new_status is not None and new_status != old_status:
        order.status = new_status
        if new_status == OrderStatus.SHIPPED and not order.shipped_at:
            order.shipped_at = datetime.now(timezone.utc)
        elif new_status == OrderStatus.DELIVERED and not order.delivered_at:
            order.delivered_at = datetime.now(timezone.utc)

        message = STATUS_MESSAGES.get(new_status)
        if message:
            session.add(Notification(
                user_id=order.user_id,
                title="Mise à jour de commande",
                message=message.format(number=order.order_number),
                type="order",
                data={"order_id": order.id, "order_number": order.order_number, "status": new_status.value},
            ))

    for key, value in update_data.items():
        if key == "payment_status" and value is None:
            continue
        setattr(order, key, value)
    session.add(order)
    session.commit()
    session.refresh(order)

    if new_status is not None and new_status != old_status:
        record_audit(session, request, AuditAction.ORDER_STATUS_CHANGE, "order", resource_id=order.id,
                     details={"from": old_status.value, "to": new_status.value}, user=current_user)
    else:
        record_audit(session, request, AuditAction.UPDATE, "order", resource_id=order.id,
                     details={"fields": sorted(update_data)}, user=current_user)
    return envelope(order_detail(session, order), message="Order updated successfully")

@router.delete("/{order_id}")
def delete_order(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("orders", "delete"))],
    order_id: int
):
    """Cancel an order and restore its stock"""
    order = get_order_or_404(session, order_id)
    if order.status not in CANCELLABLE_STATUSES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot cancel order in current status"
        )
    old_status = order.status
    cancel_order(session, order)
    session.commit()
    record_audit(session, request, AuditAction.ORDER_STATUS_CHANGE, "order", resource_id=order.id,
                 details={"from": old_status.value, "to": OrderStatus.CANCELLED.value}, user=current_user)
    return envelope(message="Order cancelled successfully")
