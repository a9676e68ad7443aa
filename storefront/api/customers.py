import math

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import func
from sqlmodel import or_, select
from starlette import status

from storefront.auth import PermissionChecker
from storefront.database import DbSessionDep
from storefront.models.customer import Address
from storefront.models.order import Order
from storefront.models.user import Role, User, UserResponse
from storefront.schemas import envelope

router = APIRouter(
    prefix="/api/customers",
    tags=["customers"],
    responses={404: {"description": "Not found"}},
    dependencies=[Depends(PermissionChecker("customers", "view"))],
)

@router.get("")
def list_customers(
    session: DbSessionDep,
    search: str | None = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    """List customer accounts with their order count and total spent"""
    conditions = [User.role == Role.CUSTOMER]
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(User.name.ilike(pattern), User.email.ilike(pattern), User.phone.ilike(pattern)))

    total = session.exec(select(func.count()).select_from(User).where(*conditions)).one()
    customers = session.exec(
        select(User)
        .where(*conditions)
        .order_by(User.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    data = []
    for customer in customers:
        order_count, total_spent = session.exec(
            select(func.count(Order.id), func.coalesce(func.sum(Order.total), 0))
            .where(Order.user_id == customer.id)
        ).one()
        data.append({
            **UserResponse.model_validate(customer).model_dump(),
            "order_count": order_count,
            "total_spent": total_spent,
        })

    return envelope(data, pagination={
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit),
    })

@router.get("/{customer_id}")
def get_customer(session: DbSessionDep, customer_id: int):
    customer = session.get(User, customer_id)
    if not customer or customer.role != Role.CUSTOMER:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Customer not found"
        )
    addresses = session.exec(select(Address).where(Address.user_id == customer.id)).all()
    orders = session.exec(
        select(Order).where(Order.user_id == customer.id).order_by(Order.created_at.desc()).limit(10)
    ).all()
    return envelope({
        **UserResponse.model_validate(customer).model_dump(),
        "addresses": addresses,
        "orders": orders,
    })
