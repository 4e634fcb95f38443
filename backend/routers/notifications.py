from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List
import logging

from database import get_db
from models import Notification, User
from schemas import NotificationResponse, MessageResponse
from dependencies import get_current_user
from exceptions import NotFoundError
from services.notifications import list_for_user

router = APIRouter(prefix="/api", tags=["notifications"])
logger = logging.getLogger(__name__)


@router.get("/notifications", response_model=List[NotificationResponse])
def get_notifications(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """自分宛ての通知を新しい順に最大50件返す"""
    return list_for_user(db, current_user.id)


# /notifications/{notification_id}/read より先に宣言する
@router.patch("/notifications/read-all", response_model=MessageResponse)
def mark_all_notifications_read(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    try:
        updated = db.query(Notification).filter(
            Notification.user_id == current_user.id,
            Notification.is_read.is_(False)
        ).update({Notification.is_read: True}, synchronize_session=False)
        db.commit()
    except Exception as e:
        logger.error(f"Failed to mark notifications as read for user {current_user.id}: {e}")
        db.rollback()
        raise HTTPException(status_code=500, detail="Failed to update notifications")

    return MessageResponse(message=f"Marked {updated} notification(s) as read")


@router.patch("/notifications/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    notification = db.query(Notification).filter(
        Notification.id == notification_id,
        Notification.user_id == current_user.id
    ).first()
    if notification is None:
        raise NotFoundError("Notification not found")

    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification
