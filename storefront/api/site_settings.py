from typing import Annotated, Any

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import field_validator
from sqlmodel import select
from starlette import status

from storefront.audit import record_audit
from storefront.auth import PermissionChecker
from storefront.database import DbSessionDep
from storefront.dependencies.site_settings import (
    DEFAULT_SHIPPING_SETTINGS, DEFAULT_STORE_SETTINGS, get_merged_setting, get_setting,
    save_setting, update_merged_setting,
)
from storefront.models.audit import AuditAction
from storefront.models.content import PromoBanner
from storefront.models.user import User
from storefront.schemas import RequestModel, envelope, reject_null

class PromoBannerCreate(RequestModel):
    title: str
    subtitle: str | None = None
    image: str | None = None
    link: str | None = None
    order: int = 0
    enabled: bool = True

class PromoBannerUpdate(RequestModel):
    id: int
    title: str | None = None
    subtitle: str | None = None
    image: str | None = None
    link: str | None = None
    order: int | None = None
    enabled: bool | None = None

    @field_validator("title", "order", "enabled")
    @classmethod
    def not_null(cls, value):
        return reject_null(value)

router = APIRouter(
    prefix="/api/settings",
    tags=["settings"],
    responses={404: {"description": "Not found"}},
)

SettingsEditor = Annotated[User, Depends(PermissionChecker("settings", "edit"))]
CustomizationEditor = Annotated[User, Depends(PermissionChecker("customization", "edit"))]

@router.get("/shipping")
def get_shipping_settings(session: DbSessionDep):
    return envelope(get_merged_setting(session, "shipping", DEFAULT_SHIPPING_SETTINGS))

@router.put("/shipping")
def update_shipping_settings(
    session: DbSessionDep,
    request: Request,
    current_user: SettingsEditor,
    changes: Annotated[dict[str, Any], Body()]
):
    """Merge the body over the stored shipping settings"""
    value = update_merged_setting(session, "shipping", DEFAULT_SHIPPING_SETTINGS, changes)
    record_audit(session, request, AuditAction.SETTINGS_CHANGE, "settings", resource_id="shipping",
                 details={"keys": sorted(changes)}, user=current_user)
    return envelope(value, message="Shipping settings updated")

@router.get("/store")
def get_store_settings(session: DbSessionDep):
    return envelope(get_merged_setting(session, "store", DEFAULT_STORE_SETTINGS))

@router.put("/store")
def update_store_settings(
    session: DbSessionDep,
    request: Request,
    current_user: SettingsEditor,
    changes: Annotated[dict[str, Any], Body()]
):
    value = update_merged_setting(session, "store", DEFAULT_STORE_SETTINGS, changes)
    record_audit(session, request, AuditAction.SETTINGS_CHANGE, "settings", resource_id="store",
                 details={"keys": sorted(changes)}, user=current_user)
    return envelope(value, message="Store settings updated")

@router.get("/promo-banners")
def list_promo_banners(session: DbSessionDep):
    banners = session.exec(
        select(PromoBanner).where(PromoBanner.enabled == True).order_by(PromoBanner.order)
    ).all()
    return envelope(banners)

@router.post("/promo-banners", status_code=status.HTTP_201_CREATED)
def create_promo_banner(session: DbSessionDep, request: Request, current_user: CustomizationEditor, body: PromoBannerCreate):
    if not body.title.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Title is required"
        )
    banner = PromoBanner(**body.model_dump())
    session.add(banner)
    session.commit()
    session.refresh(banner)
    record_audit(session, request, AuditAction.CREATE, "promo_banner", resource_id=banner.id, user=current_user)
    return envelope(banner, message="Banner created")

def get_banner_or_404(session: DbSessionDep, banner_id: int) -> PromoBanner:
    banner = session.get(PromoBanner, banner_id)
    if not banner:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Banner not found"
        )
    return banner

@router.put("/promo-banners")
def update_promo_banner(session: DbSessionDep, request: Request, current_user: CustomizationEditor, body: PromoBannerUpdate):
    banner = get_banner_or_404(session, body.id)
    for key, value in body.model_dump(exclude_unset=True, exclude={"id"}).items():
        setattr(banner, key, value)
    session.add(banner)
    session.commit()
    session.refresh(banner)
    record_audit(session, request, AuditAction.UPDATE, "promo_banner", resource_id=banner.id, user=current_user)
    return envelope(banner, message="Banner updated")

@router.delete("/promo-banners")
def delete_promo_banner(session: DbSessionDep, request: Request, current_user: CustomizationEditor, id: int):
    banner = get_banner_or_404(session, id)
    session.delete(banner)
    session.commit()
    record_audit(session, request, AuditAction.DELETE, "promo_banner", resource_id=id, user=current_user)
    return envelope(message="Banner deleted")

@router.get("/{key}")
def read_setting(session: DbSessionDep, key: str):
    """Public read of a stored setting; ``data`` is null when it was never set"""
    setting = get_setting(session, key)
    return envelope(setting.value if setting else None)

@router.post("/{key}")
def write_setting(
    session: DbSessionDep,
    request: Request,
    current_user: SettingsEditor,
    key: str,
    value: Annotated[Any, Body()]
):
    setting = save_setting(session, key, value)
    record_audit(session, request, AuditAction.SETTINGS_CHANGE, "settings", resource_id=key, user=current_user)
    return envelope(setting.value, message="Setting saved")
