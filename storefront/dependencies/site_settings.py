from copy import deepcopy
from datetime import datetime, timezone

from sqlmodel import Session, select

from storefront.models.content import SiteSetting

DEFAULT_SHIPPING_SETTINGS = {
    "freeShippingEnabled": True,
    "freeShippingThreshold": 80,
    "standardShippingCost": 10,
    "expressShippingCost": 20,
    "shippingMethods": [
        {"id": "free", "name": "Livraison gratuite", "cost": 0, "enabled": True},
        {"id": "standard", "name": "Livraison standard", "cost": 10, "enabled": True},
        {"id": "express", "name": "Livraison express", "cost": 20, "enabled": True},
    ],
}

DEFAULT_STORE_SETTINGS = {
    "name": "Sissan Store",
    "email": "contact@sissan.com",
    "phone": "+223 XX XX XX XX",
    "address": "Bamako, Mali",
    "description": "Votre boutique en ligne de confiance",
}


def get_setting(session: Session, key: str) -> SiteSetting | None:
    return session.exec(select(SiteSetting).where(SiteSetting.key == key)).first()

def save_setting(session: Session, key: str, value) -> SiteSetting:
    """Create or replace the value stored under ``key``"""
    setting = get_setting(session, key)
    if setting is None:
        setting = SiteSetting(key=key, value=value)
    else:
        setting.value = value
        setting.updated_at = datetime.now(timezone.utc)
    session.add(setting)
    session.commit()
    session.refresh(setting)
    return setting

def get_merged_setting(session: Session, key: str, defaults: dict) -> dict:
    """Stored value for ``key`` layered over ``defaults``"""
    merged = deepcopy(defaults)
    setting = get_setting(session, key)
    if setting is not None and isinstance(setting.value, dict):
        merged.update(setting.value)
    return merged

def update_merged_setting(session: Session, key: str, defaults: dict, changes: dict) -> dict:
    merged = get_merged_setting(session, key, defaults)
    merged.update(changes)
    return save_setting(session, key, merged).value

def shipping_cost_for(session: Session, method: str | None, subtotal: float) -> float:
    """Shipping cost of ``method`` under the persisted shipping settings"""
    shipping = get_merged_setting(session, "shipping", DEFAULT_SHIPPING_SETTINGS)
    if shipping.get("freeShippingEnabled") and subtotal >= float(shipping.get("freeShippingThreshold") or 0):
        return 0.0
    method = method or "standard"
    for entry in shipping.get("shippingMethods") or []:
        if entry.get("id") == method and entry.get("enabled", True):
            return float(entry.get("cost") or 0)
    if method == "express":
        return float(shipping.get("expressShippingCost") or 0)
    return float(shipping.get("standardShippingCost") or 0)
