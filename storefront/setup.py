import logging

from sqlmodel import Session, select

from .auth import get_password_hash
from .models.user import Permission, Role, User
from .settings import get_settings

logger = logging.getLogger(__name__)

# One catalog row per category; the four capabilities live on UserPermission
PERMISSION_CATALOG = [
    ("dashboard", "Dashboard"),
    ("products", "Products"),
    ("orders", "Orders"),
    ("customers", "Customers"),
    ("categories", "Categories"),
    ("reviews", "Reviews"),
    ("coupons", "Coupons"),
    ("settings", "Settings"),
    ("staff", "Staff management"),
    ("customization", "Storefront customization"),
    ("messages", "Contact messages"),
]


def seed_permissions(session: Session) -> int:
    """Insert missing catalog permissions. Returns how many were created."""
    existing = {p.category for p in session.exec(select(Permission)).all()}
    created = 0
    for category, description in PERMISSION_CATALOG:
        if category in existing:
            continue
        session.add(Permission(name=category, category=category, description=description))
        created += 1
    session.commit()
    return created

def seed_superadmin(session: Session) -> User:
    settings = get_settings()
    email = settings.superadmin_email.strip().lower()
    superadmin = session.exec(select(User).where(User.email == email)).first()
    if superadmin:
        return superadmin

    superadmin = User(
        email=email,
        name="Super Admin",
        role=Role.SUPER_ADMIN,
        hashed_password=get_password_hash(settings.superadmin_password),
        email_verified=True,
    )
    session.add(superadmin)
    session.commit()
    session.refresh(superadmin)
    logger.warning("Created super admin account %s; change its password after first login", email)
    return superadmin

def create_initial_permissions_and_superadmin(engine):
    """Seed the permission catalog and the failsafe super admin on startup."""
    with Session(engine) as session:
        created = seed_permissions(session)
        if created:
            logger.info("Seeded %d permissions", created)
        seed_superadmin(session)
