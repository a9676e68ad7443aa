import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import Depends, HTTPException, Request, Response
from pwdlib import PasswordHash
from sqlmodel import Session, select
from starlette import status

from storefront.database import DbSessionDep
from storefront.models.user import (
    ELEVATED_ROLES, STAFF_ROLES, Permission, User, UserPermission, UserSession,
)
from storefront.settings import get_settings

logger = logging.getLogger(__name__)

password_hash = PasswordHash.recommended()

ACTIONS = ("view", "create", "edit", "delete")

def verify_password(plain_password, hashed_password):
    if not hashed_password:
        return False
    return password_hash.verify(plain_password, hashed_password)

def get_password_hash(password):
    return password_hash.hash(password)

def authenticate_user(session: Session, email: str, password: str):
    user = session.exec(select(User).where(User.email == email.strip().lower())).first()
    if not user:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user

def extract_session_token(request: Request) -> str | None:
    """Return the session token from the Bearer header or the session cookie.

    Mobile clients send ``Authorization: Bearer <token>``; browsers carry the
    cookie, prefixed with ``__Secure-`` when served over HTTPS.
    """
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header[len("Bearer "):].strip()
        if token:
            return token

    settings = get_settings()
    for cookie_name in (settings.secure_session_cookie_name, settings.session_cookie_name):
        token = request.cookies.get(cookie_name)
        if token:
            return token
    return None

def resolve_session(session: Session, token: str | None) -> tuple[UserSession, User] | None:
    """Find the non-expired login session for a token, joined to its user."""
    if not token:
        return None
    result = session.exec(
        select(UserSession, User)
        .where(UserSession.token == token,
               UserSession.expires_at > datetime.now(timezone.utc),
               UserSession.user_id == User.id)
    ).first()
    if result is None:
        return None
    return result[0], result[1]

def create_session(session: Session, user: User, request: Request | None = None) -> UserSession:
    settings = get_settings()
    user_session = UserSession(
        token=secrets.token_urlsafe(48),
        user_id=user.id,
        expires_at=datetime.now(timezone.utc) + timedelta(days=settings.session_ttl_days),
        ip_address=get_client_ip(request) if request else None,
        user_agent=request.headers.get("user-agent") if request else None,
    )
    session.add(user_session)
    session.commit()
    session.refresh(user_session)
    return user_session

def revoke_session(session: Session, token: str) -> None:
    for user_session in session.exec(select(UserSession).where(UserSession.token == token)).all():
        session.delete(user_session)
    session.commit()

def set_session_cookie(response: Response, user_session: UserSession) -> None:
    settings = get_settings()
    response.set_cookie(
        settings.session_cookie_name,
        user_session.token,
        max_age=settings.session_ttl_days * 24 * 3600,
        httponly=True,
        samesite="lax",
    )

def get_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip")

def get_optional_user(request: Request, session: DbSessionDep) -> User | None:
    resolved = resolve_session(session, extract_session_token(request))
    if resolved is None:
        return None
    return resolved[1]

async def get_current_user(user: Annotated[User | None, Depends(get_optional_user)]) -> User:
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user

CurrentUserDep = Annotated[User, Depends(get_current_user)]
OptionalUserDep = Annotated[User | None, Depends(get_optional_user)]

def _flag_name(action: str) -> str:
    if action not in ACTIONS:
        raise ValueError(f"Unknown permission action: {action}")
    return f"can_{action}"

def _get_grant(session: Session, user: User, category: str) -> UserPermission | None:
    return session.exec(
        select(UserPermission)
        .join(Permission, Permission.id == UserPermission.permission_id)
        .where(UserPermission.user_id == user.id, Permission.category == category)
    ).first()

def has_permission(session: Session, user: User, category: str, action: str) -> bool:
    """Decide whether ``user`` may perform ``action`` on ``category``.

    ADMIN and SUPER_ADMIN always pass. Everyone else needs a UserPermission
    row for the category with the matching flag set; no row means denied.
    """
    flag = _flag_name(action)
    if user.role in ELEVATED_ROLES:
        return True
    grant = _get_grant(session, user, category)
    if grant is None:
        return False
    return bool(getattr(grant, flag))

def has_category_access(session: Session, user: User, category: str) -> bool:
    """True when the user holds any of the four capabilities on the category."""
    if user.role in ELEVATED_ROLES:
        return True
    grant = _get_grant(session, user, category)
    if grant is None:
        return False
    return grant.can_view or grant.can_create or grant.can_edit or grant.can_delete

def is_staff(user: User | None) -> bool:
    return user is not None and user.role in STAFF_ROLES

class PermissionChecker:
    def __init__(self, category: str, action: str):
        _flag_name(action)
        self.category = category
        self.action = action

    def __call__(self, session: DbSessionDep, current_user: CurrentUserDep) -> User:
        if not has_permission(session, current_user, self.category, self.action):
            logger.info("Permission denied for user %s on %s.%s",
                        current_user.id, self.category, self.action)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {self.category}.{self.action}",
            )
        return current_user

class StaffChecker:
    def __call__(self, current_user: CurrentUserDep) -> User:
        if not is_staff(current_user):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Staff access only",
            )
        return current_user

require_staff = StaffChecker()
