from fastapi import HTTPException
from sqlmodel import Session, select
from starlette import status

from storefront.models.catalog import Category, Product


def get_category_by_id_or_slug(session: Session, identifier: str) -> Category:
    """Get category by ID (int) or slug (str)"""
    if identifier.isdigit():
        category = session.get(Category, int(identifier))
    else:
        category = session.exec(
            select(Category).where(Category.slug == identifier)
        ).first()

    if not category:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Category not found: {identifier}"
        )
    return category

def get_product_by_id_or_slug(session: Session, identifier: str) -> Product:
    """Get product by ID (int) or slug (str)"""
    if identifier.isdigit():
        product = session.get(Product, int(identifier))
    else:
        product = session.exec(
            select(Product).where(Product.slug == identifier)
        ).first()

    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product not found: {identifier}"
        )
    return product

def get_purchasable_product(session: Session, product_id: int, quantity: int) -> Product:
    """Load a product and make sure it can be bought in the requested quantity"""
    product = session.get(Product, product_id)
    if not product:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Product not found: {product_id}"
        )
    if not product.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Product {product.name} is not available"
        )
    if product.stock < quantity:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Insufficient stock for {product.name}"
        )
    return product
