from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlmodel import select

from storefront.auth import PermissionChecker
from storefront.database import DbSessionDep
from storefront.dependencies.orders import serialize_order
from storefront.models.catalog import Product
from storefront.models.order import Order, OrderItem, OrderStatus
from storefront.models.user import Role, User
from storefront.schemas import envelope

REVENUE_STATUSES = (OrderStatus.SHIPPED, OrderStatus.DELIVERED)

router = APIRouter(
    prefix="/api/dashboard",
    tags=["dashboard"],
    responses={404: {"description": "Not found"}},
)

@router.get("/stats", dependencies=[Depends(PermissionChecker("dashboard", "view"))])
def get_stats(session: DbSessionDep):
    """Headline numbers for the back-office dashboard"""
    revenue = session.exec(
        select(func.coalesce(func.sum(Order.total), 0)).where(Order.status.in_(REVENUE_STATUSES))
    ).one()
    total_orders = session.exec(select(func.count()).select_from(Order)).one()
    pending_orders = session.exec(
        select(func.count()).select_from(Order).where(Order.status == OrderStatus.PENDING)
    ).one()
    total_customers = session.exec(
        select(func.count()).select_from(User).where(User.role == Role.CUSTOMER)
    ).one()
    total_products = session.exec(
        select(func.count()).select_from(Product).where(Product.is_active == True)
    ).one()

    recent_orders = session.exec(select(Order).order_by(Order.created_at.desc()).limit(5)).all()

    sold = func.sum(OrderItem.quantity).label("sold")
    top_rows = session.exec(
        select(Product, sold)
        .where(OrderItem.product_id == Product.id, OrderItem.order_id == Order.id,
               Order.status != OrderStatus.CANCELLED)
        .group_by(Product.id)
        .order_by(sold.desc())
        .limit(5)
    ).all()

    return envelope({
        "revenue": revenue,
        "total_orders": total_orders,
        "pending_orders": pending_orders,
        "total_customers": total_customers,
        "total_products": total_products,
        "recent_orders": [serialize_order(session, order) for order in recent_orders],
        "top_products": [{"product": product, "sold": quantity} for product, quantity in top_rows],
    })
