import logging
import secrets
from datetime import timedelta

from fastapi import APIRouter, HTTPException, Request, Response
from sqlmodel import Session, select
from starlette import status

from storefront.audit import record_audit
from storefront.auth import CurrentUserDep, get_password_hash, is_staff, verify_password
from storefront.database import DbSessionDep
from storefront.dependencies.orders import serialize_order
from storefront.mail import send_verification_code_email
from storefront.models.audit import AuditAction, AuditLog
from storefront.models.base import as_utc, utc_now
from storefront.models.customer import Address, CartItem, WishlistItem
from storefront.models.notification import Notification
from storefront.models.order import Order
from storefront.models.user import (
    Account, Role, User, UserPermission, UserResponse, UserSession, Verification,
)
from storefront.schemas import RequestModel, envelope
from storefront.settings import get_settings

logger = logging.getLogger(__name__)

PUSH_TOKEN_PREFIXES = ("ExponentPushToken[", "ExpoPushToken[")

class ProfileUpdate(RequestModel):
    name: str | None = None
    phone: str | None = None
    image: str | None = None

class PasswordChangeRequest(RequestModel):
    current_password: str
    new_password: str

class ResetCodeRequest(RequestModel):
    email: str

class ResetCodeVerifyRequest(RequestModel):
    code: str | None = None
    new_password: str | None = None
    confirm_password: str | None = None

class PushTokenRequest(RequestModel):
    push_token: str

router = APIRouter(
    prefix="/api/user",
    tags=["user"],
    responses={404: {"description": "Not found"}},
)

@router.get("/profile")
def get_profile(current_user: CurrentUserDep):
    return envelope(UserResponse.model_validate(current_user))

@router.put("/profile")
def update_profile(session: DbSessionDep, current_user: CurrentUserDep, body: ProfileUpdate):
    update_data = body.model_dump(exclude_unset=True)
    if "name" in update_data and not (update_data["name"] or "").strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name cannot be empty"
        )
    for key, value in update_data.items():
        setattr(current_user, key, value.strip() if isinstance(value, str) else value)
    session.add(current_user)
    session.commit()
    session.refresh(current_user)
    return envelope(UserResponse.model_validate(current_user), message="Profile updated")

@router.post("/profile/change-password")
def change_password(session: DbSessionDep, current_user: CurrentUserDep, body: PasswordChangeRequest):
    """Change the password of the current user"""
    if not verify_password(body.current_password, current_user.hashed_password):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Current password is incorrect"
        )
    if len(body.new_password) < 8:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password must be at least 8 characters"
        )
    current_user.hashed_password = get_password_hash(body.new_password)
    session.add(current_user)
    session.commit()
    return envelope(message="Password changed successfully")

@router.post("/reset-password/send-code")
def send_reset_code(session: DbSessionDep, current_user: CurrentUserDep, body: ResetCodeRequest):
    """Email a 6-digit code that lets a signed-in user set a new password"""
    email = body.email.strip().lower()
    if not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is required"
        )
    if email != current_user.email.lower():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email does not match your account"
        )

    for previous in session.exec(select(Verification).where(Verification.identifier == current_user.email)).all():
        session.delete(previous)
    code = str(secrets.randbelow(900000) + 100000)
    session.add(Verification(
        identifier=current_user.email,
        value=code,
        expires_at=utc_now() + timedelta(minutes=get_settings().reset_code_ttl_minutes),
    ))
    session.commit()

    if not send_verification_code_email(current_user.email, code):
        logger.warning("Verification code for user %s was not emailed", current_user.id)
    return envelope(message="Verification code sent")

@router.post("/reset-password/verify")
def verify_reset_code(session: DbSessionDep, current_user: CurrentUserDep, body: ResetCodeVerifyRequest):
    if not body.code or not body.new_password or not body.confirm_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Code and new password are required"
        )
    if body.new_password != body.confirm_password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Passwords do not match"
        )
    if len(body.new_password) < 8:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Password must be at least 8 characters"
        )

    verification = session.exec(
        select(Verification).where(Verification.identifier == current_user.email, Verification.value == body.code.strip())
    ).first()
    if not verification:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid verification code"
        )
    if as_utc(verification.expires_at) < utc_now():
        session.delete(verification)
        session.commit()
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Verification code expired"
        )

    current_user.hashed_password = get_password_hash(body.new_password)
    session.add(current_user)
    session.delete(verification)
    session.commit()
    return envelope(message="Password changed successfully")

@router.post("/push-token")
def register_push_token(session: DbSessionDep, current_user: CurrentUserDep, body: PushTokenRequest):
    token = body.push_token.strip()
    if not token.startswith(PUSH_TOKEN_PREFIXES):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid push token"
        )
    current_user.push_token = token
    session.add(current_user)
    session.commit()
    return envelope(message="Push token registered")

@router.delete("/push-token")
def clear_push_token(session: DbSessionDep, current_user: CurrentUserDep):
    current_user.push_token = None
    session.add(current_user)
    session.commit()
    return envelope(message="Push token removed")

@router.get("/orders")
def list_my_orders(session: DbSessionDep, current_user: CurrentUserDep):
    orders = session.exec(
        select(Order).where(Order.user_id == current_user.id).order_by(Order.created_at.desc())
    ).all()
    return envelope([serialize_order(session, order) for order in orders])

def delete_user_data(session: Session, user: User):
    """Remove the user's personal rows. Orders are kept for bookkeeping. Caller commits."""
    for model in (UserSession, Account, UserPermission, CartItem, WishlistItem, Address, Notification):
        for row in session.exec(select(model).where(model.user_id == user.id)).all():
            session.delete(row)
    for verification in session.exec(select(Verification).where(Verification.identifier == user.email)).all():
        session.delete(verification)
    # audit entries outlive the account and keep the email they were written with
    for entry in session.exec(select(AuditLog).where(AuditLog.user_id == user.id)).all():
        entry.user_email = entry.user_email or user.email
        entry.user_id = None
        session.add(entry)
    session.flush()

def remove_user(session: Session, user: User):
    """Delete a user, or anonymize them when orders still point at the account. Caller commits."""
    delete_user_data(session, user)
    if session.exec(select(Order).where(Order.user_id == user.id)).first():
        user.email = f"deleted_{user.id}@sissan-sissan.net"
        user.name = "Deleted user"
        user.phone = None
        user.image = None
        user.hashed_password = None
        user.push_token = None
        user.role = Role.CUSTOMER
        session.add(user)
    else:
        session.delete(user)

@router.delete("/delete-account")
def delete_account(session: DbSessionDep, request: Request, response: Response, current_user: CurrentUserDep):
    """Delete the current customer's account. Staff accounts are managed by admins."""
    if is_staff(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff accounts cannot be deleted from here"
        )

    user_id = current_user.id
    remove_user(session, current_user)
    session.commit()

    record_audit(session, request, AuditAction.DELETE, "user", resource_id=user_id)
    logger.info("User %s deleted their account", user_id)
    response.delete_cookie(get_settings().session_cookie_name)
    return envelope(message="Account deleted")
