from fastapi import APIRouter, HTTPException
from sqlmodel import select
from starlette import status

from storefront.auth import CurrentUserDep
from storefront.database import DbSessionDep
from storefront.models.catalog import Product
from storefront.models.customer import WishlistItem
from storefront.schemas import RequestModel, envelope

class WishlistItemCreate(RequestModel):
    product_id: int

router = APIRouter(
    prefix="/api/wishlist",
    tags=["wishlist"],
    responses={404: {"description": "Not found"}},
)

@router.get("")
def get_wishlist(session: DbSessionDep, current_user: CurrentUserDep):
    rows = session.exec(
        select(WishlistItem, Product)
        .where(WishlistItem.user_id == current_user.id, WishlistItem.product_id == Product.id)
        .order_by(WishlistItem.created_at.desc())
    ).all()
    return envelope([{**item.model_dump(), "product": product} for item, product in rows])

@router.post("", status_code=status.HTTP_201_CREATED)
def add_to_wishlist(session: DbSessionDep, current_user: CurrentUserDep, body: WishlistItemCreate):
    if not session.get(Product, body.product_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Product not found"
        )
    existing = session.exec(
        select(WishlistItem).where(WishlistItem.user_id == current_user.id,
                                   WishlistItem.product_id == body.product_id)
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Product already in wishlist"
        )

    item = WishlistItem(user_id=current_user.id, product_id=body.product_id)
    session.add(item)
    session.commit()
    session.refresh(item)
    return envelope(item, message="Product added to wishlist")

@router.delete("/{item_id}")
def remove_from_wishlist(session: DbSessionDep, current_user: CurrentUserDep, item_id: int):
    item = session.get(WishlistItem, item_id)
    if not item or item.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Wishlist item not found"
        )
    session.delete(item)
    session.commit()
    return envelope(message="Product removed from wishlist")
