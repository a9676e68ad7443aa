import re
import unicodedata
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import field_validator
from sqlalchemy import func
from sqlmodel import select
from starlette import status

from storefront.audit import record_audit
from storefront.auth import PermissionChecker
from storefront.database import DbSessionDep
from storefront.dependencies.catalog import get_category_by_id_or_slug
from storefront.models.audit import AuditAction
from storefront.models.catalog import Category, Product
from storefront.models.user import User
from storefront.schemas import RequestModel, envelope, reject_null

class CategoryCreate(RequestModel):
    name: str
    slug: str | None = None
    description: str | None = None
    image: str | None = None
    parent_id: int | None = None

class CategoryUpdate(RequestModel):
    name: str | None = None
    slug: str | None = None
    description: str | None = None
    image: str | None = None
    parent_id: int | None = None

    @field_validator("name", "slug")
    @classmethod
    def not_null(cls, value):
        return reject_null(value)

router = APIRouter(
    prefix="/api/categories",
    tags=["categories"],
    responses={404: {"description": "Not found"}},
)

def slugify(value: str) -> str:
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "-", value.strip().lower()).strip("-")

def product_count(session: DbSessionDep, category_id: int) -> int:
    return session.exec(
        select(func.count()).select_from(Product).where(Product.category_id == category_id)
    ).one()

@router.get("")
def list_categories(session: DbSessionDep, parent_only: bool = False):
    """List categories with their product counts"""
    query = select(Category)
    if parent_only:
        query = query.where(Category.parent_id.is_(None))
    categories = session.exec(query.order_by(Category.name)).all()
    return envelope([
        {**category.model_dump(), "product_count": product_count(session, category.id)}
        for category in categories
    ])

@router.post("", status_code=status.HTTP_201_CREATED)
def create_category(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("categories", "create"))],
    category_create: CategoryCreate
):
    if not category_create.name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name is required"
        )
    slug = slugify(category_create.slug or category_create.name)
    existing = session.exec(select(Category).where(Category.slug == slug)).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Category slug already exists"
        )
    if category_create.parent_id is not None and not session.get(Category, category_create.parent_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Parent category not found"
        )

    category = Category(**category_create.model_dump(exclude={"slug"}), slug=slug)
    session.add(category)
    session.commit()
    session.refresh(category)
    record_audit(session, request, AuditAction.CREATE, "category", resource_id=category.id, user=current_user)
    return envelope(category, message="Category created")

@router.get("/{category_id}")
def get_category(session: DbSessionDep, category_id: str):
    """Get a category by id or slug"""
    category = get_category_by_id_or_slug(session, category_id)
    return envelope({**category.model_dump(), "product_count": product_count(session, category.id)})

@router.put("/{category_id}")
def update_category(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("categories", "edit"))],
    category_id: str,
    category_update: CategoryUpdate
):
    category = get_category_by_id_or_slug(session, category_id)
    update_data = category_update.model_dump(exclude_unset=True)

    if update_data.get("slug"):
        update_data["slug"] = slugify(update_data["slug"])
        existing = session.exec(
            select(Category).where(Category.slug == update_data["slug"], Category.id != category.id)
        ).first()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Category slug already exists"
            )
    if update_data.get("parent_id") == category.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A category cannot be its own parent"
        )

    for key, value in update_data.items():
        setattr(category, key, value)
    session.add(category)
    session.commit()
    session.refresh(category)
    record_audit(session, request, AuditAction.UPDATE, "category", resource_id=category.id, user=current_user)
    return envelope(category, message="Category updated")

@router.delete("/{category_id}")
def delete_category(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("categories", "delete"))],
    category_id: str
):
    category = get_category_by_id_or_slug(session, category_id)
    if product_count(session, category.id) > 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Category still has products"
        )
    for child in session.exec(select(Category).where(Category.parent_id == category.id)).all():
        child.parent_id = None
        session.add(child)
    deleted_id = category.id
    session.delete(category)
    session.commit()
    record_audit(session, request, AuditAction.DELETE, "category", resource_id=deleted_id, user=current_user)
    return envelope(message="Category deleted")
