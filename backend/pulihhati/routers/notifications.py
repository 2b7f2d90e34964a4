"""Notification inbox of the authenticated user."""

from fastapi import APIRouter, Depends, Query
from sqlmodel import Session

from .. import models, services
from ..auth import get_current_user
from ..database import get_session

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("")
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: models.User = Depends(get_current_user),
    db: Session = Depends(get_session),
):
    return services.NotificationService(db).list_for_user(user.id, page=page, limit=limit)


@router.get("/unread-count")
def unread_count(user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    return {"count": services.NotificationService(db).unread_count(user.id)}


# Declared before /{notification_id}/read; both are PUT.
@router.put("/mark-all-read")
def mark_all_read(user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    updated = services.NotificationService(db).mark_all_read(user.id)
    return {"message": "All notifications marked as read", "updated_count": updated}


@router.put("/{notification_id}/read")
def mark_read(notification_id: int, user: models.User = Depends(get_current_user), db: Session = Depends(get_session)):
    services.NotificationService(db).mark_read(user.id, notification_id)
    return {"message": "Notification marked as read"}
