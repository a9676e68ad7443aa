from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import field_validator
from sqlmodel import Session, select
from starlette import status

from storefront.api.user import remove_user
from storefront.audit import record_audit
from storefront.auth import (
    CurrentUserDep, PermissionChecker, get_password_hash, require_staff, verify_password,
)
from storefront.database import DbSessionDep
from storefront.models.audit import AuditAction, AuditLog
from storefront.models.user import (
    ELEVATED_ROLES, STAFF_ROLES, Permission, Role, StaffResponse, User, UserPermission,
    UserPermissionResponse,
)
from storefront.schemas import RequestModel, envelope, reject_null
from storefront.settings import get_settings

class StaffPermissionInput(RequestModel):
    permission_id: int | None = None
    category: str | None = None
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False

class StaffCreate(RequestModel):
    name: str
    email: str
    password: str
    role: Role = Role.PERSONNEL
    phone: str | None = None
    permissions: list[StaffPermissionInput] = []

class StaffUpdate(RequestModel):
    name: str | None = None
    email: str | None = None
    password: str | None = None
    role: Role | None = None
    phone: str | None = None
    permissions: list[StaffPermissionInput] | None = None

    @field_validator("email", "role")
    @classmethod
    def not_null(cls, value):
        return reject_null(value)

class PasswordChangeRequest(RequestModel):
    current_password: str
    new_password: str

router = APIRouter(
    prefix="/api/admin",
    tags=["admin"],
    responses={404: {"description": "Not found"}},
)

def get_staff_permissions(session: Session, user_id: int) -> list[UserPermissionResponse]:
    rows = session.exec(
        select(UserPermission, Permission)
        .where(UserPermission.user_id == user_id, UserPermission.permission_id == Permission.id)
        .order_by(Permission.category)
    ).all()
    return [
        UserPermissionResponse(
            permission_id=permission.id,
            category=permission.category,
            name=permission.name,
            can_view=grant.can_view,
            can_create=grant.can_create,
            can_edit=grant.can_edit,
            can_delete=grant.can_delete,
        )
        for grant, permission in rows
    ]

def staff_response(session: Session, user: User) -> StaffResponse:
    response = StaffResponse.model_validate(user)
    response.permissions = get_staff_permissions(session, user.id)
    return response

def get_staff_member(session: Session, user_id: int) -> User:
    user = session.get(User, user_id)
    if not user or user.role not in STAFF_ROLES:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Staff member not found"
        )
    return user

def resolve_permissions(session: Session, permissions: list[StaffPermissionInput]) -> dict[int, StaffPermissionInput]:
    """Map each requested grant to its permission id, one entry per category"""
    resolved = {}
    for entry in permissions:
        if entry.permission_id is not None:
            permission = session.get(Permission, entry.permission_id)
        else:
            permission = session.exec(
                select(Permission).where(Permission.category == entry.category)
            ).first()
        if not permission:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown permission: {entry.permission_id or entry.category}"
            )
        if permission.id in resolved:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Permission listed more than once: {permission.category}"
            )
        resolved[permission.id] = entry
    return resolved

def replace_permissions(session: Session, user: User, resolved: dict[int, StaffPermissionInput]):
    """Swap the user's grants for the resolved ones. Caller commits."""
    for grant in session.exec(select(UserPermission).where(UserPermission.user_id == user.id)).all():
        session.delete(grant)
    session.flush()

    for permission_id, entry in resolved.items():
        session.add(UserPermission(
            user_id=user.id,
            permission_id=permission_id,
            can_view=entry.can_view,
            can_create=entry.can_create,
            can_edit=entry.can_edit,
            can_delete=entry.can_delete,
        ))

@router.get("/permissions", dependencies=[Depends(require_staff)])
def list_permissions(session: DbSessionDep):
    """List the permission catalog"""
    permissions = session.exec(select(Permission).order_by(Permission.category, Permission.name)).all()
    return envelope(permissions)

@router.get("/staff", dependencies=[Depends(PermissionChecker("staff", "view"))])
def list_staff(session: DbSessionDep):
    staff = session.exec(
        select(User).where(User.role.in_(STAFF_ROLES)).order_by(User.created_at.desc())
    ).all()
    return envelope([staff_response(session, user) for user in staff])

@router.post("/staff", status_code=status.HTTP_201_CREATED)
def create_staff(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("staff", "create"))],
    staff_create: StaffCreate
):
    """Create a staff account with its permission grants"""
    email = staff_create.email.strip().lower()
    if not email or not staff_create.password or not staff_create.name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Name, email and password are required"
        )
    if staff_create.role not in STAFF_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Role must be a staff role"
        )
    if staff_create.role == Role.SUPER_ADMIN and current_user.role != Role.SUPER_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only a super admin can create another super admin"
        )
    if staff_create.role in ELEVATED_ROLES and current_user.role not in ELEVATED_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only an admin can create an admin account"
        )

    existing_user = session.exec(select(User).where(User.email == email)).first()
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already exists"
        )
    grants = resolve_permissions(session, staff_create.permissions)

    user = User(
        name=staff_create.name.strip(),
        email=email,
        phone=staff_create.phone,
        role=staff_create.role,
        hashed_password=get_password_hash(staff_create.password),
        email_verified=True,
    )
    session.add(user)
    session.flush()
    replace_permissions(session, user, grants)
    session.commit()
    session.refresh(user)

    record_audit(session, request, AuditAction.CREATE, "staff", resource_id=user.id,
                 details={"email": user.email, "role": user.role.value}, user=current_user)
    return envelope(staff_response(session, user), message="Staff member created")

@router.get("/staff/{user_id}", dependencies=[Depends(PermissionChecker("staff", "view"))])
def get_staff(session: DbSessionDep, user_id: int):
    return envelope(staff_response(session, get_staff_member(session, user_id)))

@router.put("/staff/{user_id}")
def update_staff(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("staff", "edit"))],
    user_id: int,
    staff_update: StaffUpdate
):
    user = get_staff_member(session, user_id)
    update_data = staff_update.model_dump(exclude_unset=True, exclude={"permissions", "password"})

    if "email" in update_data:
        update_data["email"] = update_data["email"].strip().lower()
        existing_user = session.exec(
            select(User).where(User.email == update_data["email"], User.id != user.id)
        ).first()
        if existing_user:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email already exists"
            )

    old_role = user.role
    new_role = update_data.get("role")
    if new_role is not None and new_role not in STAFF_ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Role must be a staff role"
        )
    if Role.SUPER_ADMIN in (old_role, new_role) and new_role not in (None, old_role) \
            and current_user.role != Role.SUPER_ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only a super admin can change a super admin role"
        )
    if current_user.role not in ELEVATED_ROLES:
        if new_role not in (None, old_role) and (new_role in ELEVATED_ROLES or old_role in ELEVATED_ROLES):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Only an admin can grant or remove an admin role"
            )
        if user.id == current_user.id and (new_role not in (None, old_role) or staff_update.permissions is not None):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You cannot change your own role or permissions"
            )
    grants = None
    if staff_update.permissions is not None:
        grants = resolve_permissions(session, staff_update.permissions)

    for key, value in update_data.items():
        setattr(user, key, value)
    if staff_update.password:
        user.hashed_password = get_password_hash(staff_update.password)
    session.add(user)
    if grants is not None:
        replace_permissions(session, user, grants)
    session.commit()
    session.refresh(user)

    if new_role is not None and new_role != old_role:
        record_audit(session, request, AuditAction.ROLE_CHANGE, "staff", resource_id=user.id,
                     details={"from": old_role.value, "to": new_role.value}, user=current_user)
    else:
        record_audit(session, request, AuditAction.UPDATE, "staff", resource_id=user.id,
                     details={"fields": sorted(staff_update.model_fields_set)}, user=current_user)
    return envelope(staff_response(session, user), message="Staff member updated")

@router.delete("/staff/{user_id}")
def delete_staff(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("staff", "delete"))],
    user_id: int
):
    user = get_staff_member(session, user_id)
    if user.id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You cannot delete your own account"
        )
    if user.email == get_settings().superadmin_email.strip().lower():
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="The super admin account cannot be deleted"
        )

    email = user.email
    remove_user(session, user)
    session.commit()

    record_audit(session, request, AuditAction.DELETE, "staff", resource_id=user_id,
                 details={"email": email}, user=current_user)
    return envelope(message="Staff member deleted")

@router.get("/audit-logs", dependencies=[Depends(PermissionChecker("staff", "view"))])
def list_audit_logs(
    session: DbSessionDep,
    action: AuditAction | None = None,
    resource: str | None = None,
    user_id: int | None = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
):
    query = select(AuditLog)
    if action:
        query = query.where(AuditLog.action == action)
    if resource:
        query = query.where(AuditLog.resource == resource)
    if user_id is not None:
        query = query.where(AuditLog.user_id == user_id)
    logs = session.exec(query.order_by(AuditLog.created_at.desc()).offset(skip).limit(limit)).all()
    return envelope(logs)

@router.post("/profile/change-password", dependencies=[Depends(require_staff)])
def change_staff_password(session: DbSessionDep, current_user: CurrentUserDep, body: PasswordChangeRequest):
    """Change the password of the logged-in staff member"""
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
