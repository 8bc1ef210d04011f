from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from jawara.api.deps import get_current_user, get_current_viewer, get_db, require_roles
from jawara.models.event import Event, EventType
from jawara.models.notification import Notification, NotificationStatus
from jawara.models.user import User, UserRole
from jawara.schemas.event import EventOut
from jawara.schemas.notification import (
    BroadcastOut,
    BroadcastRequest,
    BroadcastStatusUpdate,
    NotificationOut,
)
from jawara.services.audit import log_activity
from jawara.services.broadcasts import create_broadcast
from jawara.services.notifications import publish_realtime_notification
from jawara.services.visibility import Viewer, is_visible

router = APIRouter()

BROADCAST_TYPES = (EventType.broadcast, EventType.urgent_broadcast)


@router.post("/broadcast", response_model=BroadcastOut)
def send_broadcast(
    payload: BroadcastRequest,
    current_user: User = Depends(require_roles(UserRole.admin, UserRole.teacher)),
    db: Session = Depends(get_db),
) -> BroadcastOut:
    event, notifications = create_broadcast(db, actor=current_user, request=payload)
    log_activity(
        db,
        actor=current_user,
        action="broadcast.send",
        entity_type="event",
        entity_id=event.id,
        details={"sent_count": len(notifications), "is_urgent": payload.is_urgent},
    )
    db.commit()
    db.refresh(event)
    return BroadcastOut(
        sent_count=len(notifications),
        broadcast=EventOut.model_validate(event),
        notifications=[NotificationOut.model_validate(item) for item in notifications],
    )


@router.patch("/broadcast/{broadcast_id}/status", response_model=NotificationOut)
def update_broadcast_status(
    broadcast_id: str,
    payload: BroadcastStatusUpdate,
    current_user: User = Depends(get_current_user),
    viewer: Viewer = Depends(get_current_viewer),
    db: Session = Depends(get_db),
) -> NotificationOut:
    broadcast = db.get(Event, broadcast_id)
    if broadcast is None or broadcast.event_type not in BROADCAST_TYPES or not is_visible(viewer, broadcast):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Broadcast not found")

    notification = db.execute(
        select(Notification).where(
            Notification.event_id == broadcast.id,
            Notification.user_id == current_user.id,
        )
    ).scalars().first()
    if notification is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Broadcast was not delivered to you")

    notification.status = NotificationStatus(payload.status)
    db.commit()
    db.refresh(notification)
    publish_realtime_notification(notification, event=f"notification.{payload.status}")
    return notification
