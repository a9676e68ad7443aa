from fastapi import APIRouter, HTTPException
from sqlmodel import Session, select
from starlette import status

from storefront.auth import CurrentUserDep
from storefront.database import DbSessionDep
from storefront.dependencies.catalog import get_purchasable_product
from storefront.models.catalog import Product
from storefront.models.customer import CartItem
from storefront.models.user import User
from storefront.schemas import RequestModel, envelope

class CartItemCreate(RequestModel):
    product_id: int
    quantity: int = 1

class CartItemUpdate(RequestModel):
    quantity: int

router = APIRouter(
    prefix="/api/cart",
    tags=["cart"],
    responses={404: {"description": "Not found"}},
)

def cart_summary(session: Session, user: User) -> dict:
    rows = session.exec(
        select(CartItem, Product)
        .where(CartItem.user_id == user.id, CartItem.product_id == Product.id)
        .order_by(CartItem.created_at)
    ).all()
    items = [
        {**item.model_dump(), "product": product, "line_total": round(product.effective_price * item.quantity, 2)}
        for item, product in rows
    ]
    return {
        "items": items,
        "subtotal": round(sum(line["line_total"] for line in items), 2),
        "item_count": sum(item.quantity for item, _ in rows),
    }

def get_own_cart_item(session: Session, user: User, item_id: int) -> CartItem:
    item = session.get(CartItem, item_id)
    if not item or item.user_id != user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Cart item not found"
        )
    return item

def check_quantity(quantity: int):
    if quantity < 1:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Quantity must be at least 1"
        )

@router.get("")
def get_cart(session: DbSessionDep, current_user: CurrentUserDep):
    return envelope(cart_summary(session, current_user))

@router.post("")
def add_to_cart(session: DbSessionDep, current_user: CurrentUserDep, body: CartItemCreate):
    """Add a product, merging with an existing line for the same product"""
    check_quantity(body.quantity)
    item = session.exec(
        select(CartItem).where(CartItem.user_id == current_user.id, CartItem.product_id == body.product_id)
    ).first()
    quantity = body.quantity + (item.quantity if item else 0)
    get_purchasable_product(session, body.product_id, quantity)

    if item:
        item.quantity = quantity
    else:
        item = CartItem(user_id=current_user.id, product_id=body.product_id, quantity=quantity)
    session.add(item)
    session.commit()
    return envelope(cart_summary(session, current_user), message="Product added to cart")

@router.put("/{item_id}")
def update_cart_item(session: DbSessionDep, current_user: CurrentUserDep, item_id: int, body: CartItemUpdate):
    check_quantity(body.quantity)
    item = get_own_cart_item(session, current_user, item_id)
    get_purchasable_product(session, item.product_id, body.quantity)
    item.quantity = body.quantity
    session.add(item)
    session.commit()
    return envelope(cart_summary(session, current_user))

@router.delete("/{item_id}")
def remove_cart_item(session: DbSessionDep, current_user: CurrentUserDep, item_id: int):
    session.delete(get_own_cart_item(session, current_user, item_id))
    session.commit()
    return envelope(cart_summary(session, current_user), message="Item removed")

@router.delete("")
def clear_cart(session: DbSessionDep, current_user: CurrentUserDep):
    for item in session.exec(select(CartItem).where(CartItem.user_id == current_user.id)).all():
        session.delete(item)
    session.commit()
    return envelope(cart_summary(session, current_user), message="Cart cleared")
