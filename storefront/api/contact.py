import logging
import math
import re
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import field_validator
from sqlalchemy import func
from sqlmodel import Session, select
from starlette import status

from storefront.audit import record_audit
from storefront.auth import PermissionChecker
from storefront.database import DbSessionDep
from storefront.models.audit import AuditAction
from storefront.models.contact import ContactMessage, ContactStatus
from storefront.models.user import User
from storefront.schemas import RequestModel, envelope, reject_null

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

class ContactMessageCreate(RequestModel):
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    phone: str | None = None
    subject: str | None = None
    message: str | None = None

class ContactMessageUpdate(RequestModel):
    status: ContactStatus | None = None
    notes: str | None = None

    @field_validator("status")
    @classmethod
    def not_null(cls, value):
        return reject_null(value)

router = APIRouter(
    prefix="/api/contact",
    tags=["contact"],
    responses={404: {"description": "Not found"}},
)

def get_message_or_404(session: Session, message_id: int) -> ContactMessage:
    message = session.get(ContactMessage, message_id)
    if not message:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Message not found"
        )
    return message

@router.post("")
def submit_contact_message(session: DbSessionDep, body: ContactMessageCreate):
    """Public contact form"""
    first_name = (body.first_name or "").strip()
    email = (body.email or "").strip()
    text = (body.message or "").strip()
    if not first_name or not email or not text:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="First name, email and message are required"
        )
    if not EMAIL_PATTERN.match(email):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid email"
        )

    message = ContactMessage(
        first_name=first_name,
        last_name=(body.last_name or "").strip() or None,
        email=email.lower(),
        phone=(body.phone or "").strip() or None,
        subject=(body.subject or "").strip() or "Contact général",
        message=text,
    )
    session.add(message)
    session.commit()
    session.refresh(message)
    logger.info("Contact message %s received from %s", message.id, message.email)
    return {"success": True, "message": "Message sent", "id": message.id}

@router.get("", dependencies=[Depends(PermissionChecker("messages", "view"))])
def list_contact_messages(
    session: DbSessionDep,
    message_status: Annotated[ContactStatus | None, Query(alias="status")] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
):
    conditions = []
    if message_status:
        conditions.append(ContactMessage.status == message_status)

    total = session.exec(select(func.count()).select_from(ContactMessage).where(*conditions)).one()
    messages = session.exec(
        select(ContactMessage)
        .where(*conditions)
        .order_by(ContactMessage.created_at.desc(), ContactMessage.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
    ).all()
    return envelope(messages, pagination={
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit),
    })

@router.get("/{message_id}", dependencies=[Depends(PermissionChecker("messages", "view"))])
def get_contact_message(session: DbSessionDep, message_id: int):
    return envelope(get_message_or_404(session, message_id))

@router.patch("/{message_id}")
def update_contact_message(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("messages", "edit"))],
    message_id: int,
    body: ContactMessageUpdate
):
    """Change the triage status of a message or its internal notes"""
    message = get_message_or_404(session, message_id)
    for key, value in body.model_dump(exclude_unset=True).items():
        setattr(message, key, value)
    session.add(message)
    session.commit()
    session.refresh(message)
    record_audit(session, request, AuditAction.UPDATE, "contact_message", resource_id=message.id,
                 details={"status": message.status.value}, user=current_user)
    return envelope(message)

@router.delete("/{message_id}")
def delete_contact_message(
    session: DbSessionDep,
    request: Request,
    current_user: Annotated[User, Depends(PermissionChecker("messages", "delete"))],
    message_id: int
):
    session.delete(get_message_or_404(session, message_id))
    session.commit()
    record_audit(session, request, AuditAction.DELETE, "contact_message", resource_id=message_id, user=current_user)
    return envelope(message="Message deleted")
