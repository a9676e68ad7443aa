import logging

from fastapi import Request
from sqlmodel import Session

from storefront.auth import get_client_ip
from storefront.models.audit import AuditAction, AuditLog
from storefront.models.user import User

logger = logging.getLogger(__name__)


def record_audit(
    session: Session,
    request: Request | None,
    action: AuditAction,
    resource: str,
    resource_id=None,
    details: dict | None = None,
    user: User | None = None,
    success: bool = True,
    error_message: str | None = None,
) -> None:
    """Write an audit entry. Failures are logged and never reach the caller."""
    try:
        entry = AuditLog(
            user_id=user.id if user else None,
            user_email=user.email if user else None,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            details=details,
            ip_address=get_client_ip(request) if request else None,
            user_agent=request.headers.get("user-agent") if request else None,
            success=success,
            error_message=error_message,
        )
        session.add(entry)
        session.commit()
    except Exception:
        logger.exception("Failed to record audit log for %s %s", action, resource)
        session.rollback()
