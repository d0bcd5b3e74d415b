"""
Notification inbox
"""
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.api.deps import get_current_user
from app.db.database import get_db
from app.db.models import Notification, User
from app.db.schemas import NotificationResponse, UnreadCount
from app.services.audit_service import audit_service
from app.services.visibility_service import can_access_notification, scope_notifications
from app.utils.exceptions import ForbiddenError, NotFoundError
from app.utils.helpers import client_ip

router = APIRouter()


@router.get("", response_model=List[NotificationResponse])
def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    query = scope_notifications(db.query(Notification), current_user)
    if unread_only:
        query = query.filter(Notification.is_read == False)  # noqa: E712
    return query.order_by(Notification.created_at.desc()).limit(limit).all()


@router.get("/unread", response_model=UnreadCount)
def unread_count(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    count = (
        scope_notifications(db.query(Notification), current_user)
        .filter(Notification.is_read == False)  # noqa: E712
        .count()
    )
    return {"unread": count}


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
def mark_read(
    notification_id: UUID,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    notification = db.query(Notification).filter(Notification.id == notification_id).first()
    if not notification:
        raise NotFoundError("Notification", notification_id)
    if not can_access_notification(current_user, notification):
        audit_service.log_denied(
            db, current_user, "notification", notification.id,
            reason="notification owned by another user", ip_address=client_ip(request)
        )
        raise ForbiddenError("You don't have access to this notification")

    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification


@router.post("/mark-all-read", response_model=UnreadCount)
def mark_all_read(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Only touches the caller's notifications"""
    (
        scope_notifications(db.query(Notification), current_user)
        .filter(Notification.is_read == False)  # noqa: E712
        .update({Notification.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return {"unread": 0}
