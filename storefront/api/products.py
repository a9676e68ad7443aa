import math
from typing import Annotated, Literal

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import field_validator
from sqlalchemy import func
from sqlmodel import or_, select
from starlette import status

from storefront.api.categories import slugify
from storefront.audit import record_audit
from storefront.auth import PermissionChecker
from storefront.database import DbSessionDep
from storefront.dependencies.catalog import get_product_by_id_or_slug
from storefront.models.audit import AuditAction
from storefront.models.catalog import Category, Product
from storefront.models.customer import CartItem, WishlistItem
from storefront.models.order import OrderItem
from storefront.models.user import User
from storefront.schemas import RequestModel, envelope, reject_null

class ProductCreate(RequestModel):
    name: str
    slug: str | None = None
    description: str | None = None
    short_desc: str | None = None
    price: float
    discount_price: float | None = None
    sku: str | None = None
    stock: int = 0
    category_id: int
    images: list[str] = []
    thumbnail: str | None = None
    is_new: bool = False
    is_featured: bool = False
    is_active: bool = True
    tags: list[str] = []

class ProductUpdate(RequestModel):
    name: str | None = None
    slug: str | None = None
    description: str | None = None
    short_desc: str | None = None
    price: float | None = None
    discount_price: float | None = None
    sku: str | None = None
    stock: int | None = None
    category_id: int | None = None
    images: list[str] | None = None
    thumbnail: str | None = None
    is_new: bool | None = None
    is_featured: bool | None = None
    is_active: bool | None = None
    tags: list[str] | None = None

    @field_validator("name", "slug", "price", "stock", "category_id", "images",
                     "is_new", "is_featured", "is_active", "tags")
    @classmethod
    def not_null(cls, value):
        return reject_null(value)

router = APIRouter(
    prefix="/api/products",
    tags=["products"],
    responses={404: {"description": "Not found"}},
)

SORT_COLUMNS = {
    "created_at": Product.created_at,
    "price": Product.price,
    "name": Product.name,
}

def check_unique_product_fields(session: DbSessionDep, slug: str | None, sku: str | None, product_id: int | None = None):
    if slug:
        query = select(Product).where(Product.slug == slug)
        if product_id is not None:
            query = query.where(Product.id != product_id)
        if session.exec(query).first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Product slug already exists"
            )
    if sku:
        query = select(Product).where(Product.sku == sku)
        if product_id is not None:
            query = query.where(Product.id != product_id)
        if session.exec(query).first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Product SKU already exists"
            )

def check_category_exists(session: DbSessionDep, category_id: int):
    if not session.get(Category, category_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Category not found"
        )

@router.get("")
def list_products(
    session: DbSessionDep,
    category_id: int | None = None,
    search: str | None = None,
    is_new: bool | None = None,
    is_featured: bool | None = None,
    min_price: float | None = None,
    max_price: float | None = None,
    in_stock: bool | None = None,
    sort_by: Literal["created_at", "price", "name"] = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    """List active products with filters and pagination"""
    conditions = [Product.is_active == True]
    if category_id is not None:
        conditions.append(Product.category_id == category_id)
    if search:
        pattern = f"%{search}%"
        conditions.append(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
    if is_new is not None:
        conditions.append(Product.is_new == is_new)
    if is_featured is not None:
        conditions.append(Product.is_featured == is_featured)
    if min_price is not None:
        conditions.append(Product.price >= min_price)
    if max_price is not None:
        conditions.append(Product.price <= max_price)
    if in_stock:
        conditions.append(Product.stock > 0)

    total = session.exec(select(func.count()).select_from(Product).where(*conditions)).one()
    column = SORT_COLUMNS[sort_by]
    products = session.exec(
        select(Product)
        .where(*conditions)
        .order_by(column.asc() if sort_order == "asc" else column.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()

    return envelope(products, pagination={
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit),
    })

@router.post("", status_code=status.HTTP_201_CREATED)
def create_product(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("products", "create"))],
    product_create: ProductCreate
):
    if not product_create.name.strip() or product_create.price < 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name and a valid price are required"
        )
    slug = slugify(product_create.slug or product_create.name)
    check_unique_product_fields(session, slug, product_create.sku)
    check_category_exists(session, product_create.category_id)

    product = Product(**product_create.model_dump(exclude={"slug"}), slug=slug)
    session.add(product)
    session.commit()
    session.refresh(product)
    record_audit(session, request, AuditAction.CREATE, "product", resource_id=product.id,
                 details={"name": product.name}, user=current_user)
    return envelope(product, message="Product created")

@router.get("/{product_id}")
def get_product(session: DbSessionDep, product_id: str):
    """Get a product by id or slug"""
    product = get_product_by_id_or_slug(session, product_id)
    category = session.get(Category, product.category_id)
    return envelope({**product.model_dump(), "category": category})

@router.put("/{product_id}")
def update_product(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("products", "edit"))],
    product_id: str,
    product_update: ProductUpdate
):
    product = get_product_by_id_or_slug(session, product_id)
    update_data = product_update.model_dump(exclude_unset=True)
    if update_data.get("slug"):
        update_data["slug"] = slugify(update_data["slug"])
    check_unique_product_fields(session, update_data.get("slug"), update_data.get("sku"), product.id)
    if update_data.get("category_id") is not None:
        check_category_exists(session, update_data["category_id"])

    for key, value in update_data.items():
        setattr(product, key, value)
    session.add(product)
    session.commit()
    session.refresh(product)
    record_audit(session, request, AuditAction.UPDATE, "product", resource_id=product.id,
                 details={"fields": sorted(update_data)}, user=current_user)
    return envelope(product, message="Product updated")

@router.delete("/{product_id}")
def delete_product(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("products", "delete"))],
    product_id: str
):
    """Delete a product, or deactivate it when orders still reference it"""
    product = get_product_by_id_or_slug(session, product_id)
    ordered = session.exec(select(OrderItem).where(OrderItem.product_id == product.id)).first()
    deleted_id = product.id

    if ordered:
        product.is_active = False
        session.add(product)
        session.commit()
        record_audit(session, request, AuditAction.UPDATE, "product", resource_id=deleted_id,
                     details={"deactivated": True}, user=current_user)
        return envelope(message="Product is referenced by orders and was deactivated")

    for item in session.exec(select(CartItem).where(CartItem.product_id == product.id)).all():
        session.delete(item)
    for item in session.exec(select(WishlistItem).where(WishlistItem.product_id == product.id)).all():
        session.delete(item)
    session.delete(product)
    session.commit()
    record_audit(session, request, AuditAction.DELETE, "product", resource_id=deleted_id, user=current_user)
    return envelope(message="Product deleted")
