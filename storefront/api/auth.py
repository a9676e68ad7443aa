import logging
import secrets
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, HTTPException, Request, Response
from sqlmodel import select
from starlette import status

from storefront.apple import verify_apple_identity_token
from storefront.audit import record_audit
from storefront.auth import (
    CurrentUserDep, OptionalUserDep, authenticate_user, create_session, extract_session_token,
    get_password_hash, resolve_session, revoke_session, set_session_cookie,
)
from storefront.database import DbSessionDep
from storefront.dependencies.orders import normalize_phone
from storefront.mail import send_password_reset_email, send_welcome_email
from storefront.models.audit import AuditAction
from storefront.models.user import Account, Role, User, UserResponse, UserSession
from storefront.schemas import RequestModel, envelope
from storefront.settings import get_settings

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

class RegisterRequest(RequestModel):
    name: str
    email: str
    password: str

class LoginRequest(RequestModel):
    email: str
    password: str

class SocialSignInRequest(RequestModel):
    provider: str
    id_token: str
    name: str | None = None

class ForgotPasswordRequest(RequestModel):
    email: str

class ResetPasswordRequest(RequestModel):
    token: str
    password: str

class ValidateResetTokenRequest(RequestModel):
    token: str

class PhoneToEmailRequest(RequestModel):
    phone: str

class PhoneUpdateRequest(RequestModel):
    phone: str | None = None

router = APIRouter(
    prefix="/api/auth",
    tags=["auth"],
    responses={404: {"description": "Not found"}},
)

def session_payload(user: User, user_session: UserSession) -> dict:
    return {
        "success": True,
        "user": UserResponse.model_validate(user),
        "token": user_session.token,
        "expires_at": user_session.expires_at,
    }

def check_password_strength(password: str):
    if len(password) < MIN_PASSWORD_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
        )

@router.post("/mobile/register")
def register(session: DbSessionDep, request: Request, response: Response, body: RegisterRequest):
    """Create a customer account with email and password, and open a session"""
    email = body.email.strip().lower()
    if not email or not body.password or not body.name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name, email and password are required"
        )
    check_password_strength(body.password)

    existing_user = session.exec(select(User).where(User.email == email)).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already exists"
        )

    user = User(
        name=body.name.strip(),
        email=email,
        role=Role.CUSTOMER,
        hashed_password=get_password_hash(body.password),
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    user_session = create_session(session, user, request)
    set_session_cookie(response, user_session)
    send_welcome_email(user.email, user.name)
    return session_payload(user, user_session)

@router.post("/mobile/login")
def login(session: DbSessionDep, request: Request, response: Response, body: LoginRequest):
    if not body.email.strip() or not body.password:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email and password are required"
        )

    user = authenticate_user(session, body.email, body.password)
    if not user:
        logger.warning("Failed login for %s", body.email.strip().lower())
        record_audit(session, request, AuditAction.LOGIN_FAILED, "auth",
                     details={"email": body.email.strip().lower()}, success=False,
                     error_message="Invalid credentials")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
        )

    user_session = create_session(session, user, request)
    set_session_cookie(response, user_session)
    record_audit(session, request, AuditAction.LOGIN, "auth", resource_id=user.id, user=user)
    return session_payload(user, user_session)

@router.post("/mobile/logout")
def logout(session: DbSessionDep, request: Request, response: Response):
    """Delete the caller's session row. Always succeeds from the client's point of view."""
    token = extract_session_token(request)
    if token:
        resolved = resolve_session(session, token)
        revoke_session(session, token)
        if resolved:
            record_audit(session, request, AuditAction.LOGOUT, "auth",
                         resource_id=resolved[1].id, user=resolved[1])
    settings = get_settings()
    response.delete_cookie(settings.session_cookie_name)
    return {"success": True}

@router.get("/me")
def me(current_user: OptionalUserDep):
    if current_user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return envelope(UserResponse.model_validate(current_user))

@router.post("/sign-in/social")
def social_sign_in(session: DbSessionDep, request: Request, response: Response, body: SocialSignInRequest):
    """Sign in with Apple: link or create the user, then open a session"""
    if body.provider != "apple":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unsupported provider"
        )

    identity = verify_apple_identity_token(body.id_token)
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Apple token"
        )
    apple_id = identity["sub"]
    email = (identity.get("email") or "").strip().lower() or None

    user = session.exec(
        select(User)
        .join(Account, Account.user_id == User.id)
        .where(Account.provider_id == "apple", Account.account_id == apple_id)
    ).first()

    if user is None and email:
        user = session.exec(select(User).where(User.email == email)).first()
        if user is not None:
            session.add(Account(user_id=user.id, provider_id="apple", account_id=apple_id))
            session.commit()

    if user is None:
        if not email:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Email required to create an account"
            )
        user = User(
            email=email,
            name=body.name or email.split("@")[0],
            email_verified=True,
            role=Role.CUSTOMER,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        session.add(Account(user_id=user.id, provider_id="apple", account_id=apple_id))
        session.commit()
        logger.info("Created user %s via Apple sign-in", email)

    user_session = create_session(session, user, request)
    set_session_cookie(response, user_session)
    record_audit(session, request, AuditAction.LOGIN, "auth", resource_id=user.id,
                 details={"provider": "apple"}, user=user)
    return session_payload(user, user_session)

@router.post("/forgot-password")
def forgot_password(session: DbSessionDep, body: ForgotPasswordRequest):
    """Store a reset token and email the reset link. Never reveals whether the email exists."""
    email = body.email.strip().lower()
    if not email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email is required"
        )

    user = session.exec(select(User).where(User.email == email)).first()
    if user:
        settings = get_settings()
        user.reset_token = secrets.token_hex(32)
        user.reset_token_expiry = datetime.now(timezone.utc) + timedelta(minutes=settings.reset_token_ttl_minutes)
        session.add(user)
        session.commit()
        send_password_reset_email(user.email, user.reset_token)

    return {
        "success": True,
        "message": "If this email exists, a reset link has been sent",
    }

def find_user_by_reset_token(session: DbSessionDep, token: str) -> User | None:
    if not token:
        return None
    return session.exec(
        select(User).where(User.reset_token == token, User.reset_token_expiry > datetime.now(timezone.utc))
    ).first()

@router.post("/validate-reset-token")
def validate_reset_token(session: DbSessionDep, body: ValidateResetTokenRequest):
    return {"success": True, "valid": find_user_by_reset_token(session, body.token) is not None}

@router.post("/reset-password")
def reset_password(session: DbSessionDep, body: ResetPasswordRequest):
    check_password_strength(body.password)
    user = find_user_by_reset_token(session, body.token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired token"
        )

    user.hashed_password = get_password_hash(body.password)
    user.reset_token = None
    user.reset_token_expiry = None
    session.add(user)
    # A password reset signs the user out everywhere
    for user_session in session.exec(select(UserSession).where(UserSession.user_id == user.id)).all():
        session.delete(user_session)
    session.commit()
    return {"success": True, "message": "Password has been reset"}

@router.post("/phone-to-email")
def phone_to_email(session: DbSessionDep, body: PhoneToEmailRequest):
    """Resolve the account email for a phone number, so phone users can sign in"""
    phone = normalize_phone(body.phone)
    if not phone:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Phone is required"
        )

    # Stored numbers keep their original formatting, so compare normalized values
    for candidate in session.exec(select(User).where(User.phone.is_not(None))).all():
        if normalize_phone(candidate.phone) == phone:
            return {"success": True, "email": candidate.email}

    raise HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Account not found"
    )

@router.put("/profile/phone")
def update_phone(session: DbSessionDep, current_user: CurrentUserDep, body: PhoneUpdateRequest):
    """Store the caller's phone in normalized form. A number can belong to one account only."""
    phone = normalize_phone(body.phone)
    if not phone:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Phone is required"
        )

    others = session.exec(select(User).where(User.phone.is_not(None), User.id != current_user.id)).all()
    if any(normalize_phone(other.phone) == phone for other in others):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This phone number is already in use"
        )

    current_user.phone = phone
    session.add(current_user)
    session.commit()
    return {"success": True}
