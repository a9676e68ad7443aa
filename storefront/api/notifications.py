from typing import Annotated, Any

from fastapi import APIRouter, Depends, HTTPException
from sqlmodel import select
from starlette import status

from storefront.auth import CurrentUserDep, PermissionChecker, has_permission
from storefront.database import DbSessionDep
from storefront.models.notification import Notification
from storefront.models.user import User
from storefront.schemas import RequestModel, envelope

class NotificationCreate(RequestModel):
    user_id: int
    title: str
    message: str
    type: str = "system"
    data: dict[str, Any] = {}

router = APIRouter(
    prefix="/api/notifications",
    tags=["notifications"],
    responses={404: {"description": "Not found"}},
)

@router.get("")
def list_notifications(session: DbSessionDep, current_user: CurrentUserDep, user_id: int | None = None):
    """The 50 most recent notifications of the current user, or of ``user_id`` for staff"""
    target_id = current_user.id
    if user_id is not None and user_id != current_user.id:
        if not has_permission(session, current_user, "customers", "view"):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Permission denied: customers.view"
            )
        target_id = user_id

    notifications = session.exec(
        select(Notification)
        .where(Notification.user_id == target_id)
        .order_by(Notification.created_at.desc())
        .limit(50)
    ).all()
    unread = sum(1 for notification in notifications if not notification.is_read)
    return envelope(notifications, unread_count=unread)

@router.post("", status_code=status.HTTP_201_CREATED)
def create_notification(
    session: DbSessionDep,
    current_user: Annotated[User, Depends(PermissionChecker("customers", "edit"))],
    body: NotificationCreate
):
    if not body.title.strip() or not body.message.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Title and message are required"
        )
    if not session.get(User, body.user_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    notification = Notification(**body.model_dump())
    session.add(notification)
    session.commit()
    session.refresh(notification)
    return envelope(notification, message="Notification sent")

@router.patch("/read-all")
def mark_all_read(session: DbSessionDep, current_user: CurrentUserDep):
    notifications = session.exec(
        select(Notification).where(Notification.user_id == current_user.id, Notification.is_read == False)
    ).all()
    for notification in notifications:
        notification.is_read = True
        session.add(notification)
    session.commit()
    return envelope({"updated": len(notifications)})

@router.patch("/{notification_id}/read")
def mark_read(session: DbSessionDep, current_user: CurrentUserDep, notification_id: int):
    notification = session.get(Notification, notification_id)
    if not notification or notification.user_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Notification not found"
        )
    notification.is_read = True
    session.add(notification)
    session.commit()
    return envelope(notification)
