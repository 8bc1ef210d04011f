from __future__ import annotations

from datetime import datetime, timezone
import logging

from anyio import from_thread
from sqlalchemy import select
from sqlalchemy.orm import Session

from jawara.models.event import Event
from jawara.models.notification import Notification, NotificationStatus, NotificationType
from jawara.models.user import User, UserRole
from jawara.services.realtime import realtime_hub

logger = logging.getLogger(__name__)


def _safe_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc).isoformat()
    return value.isoformat()


def notification_to_event_payload(notification: Notification, *, event: str = "notification.created") -> dict:
    return {
        "event": event,
        "notification": {
            "id": notification.id,
            "user_id": notification.user_id,
            "title": notification.title,
            "message": notification.message,
            "notification_type": notification.notification_type.value,
            "status": notification.status.value,
            "event_id": notification.event_id,
            "created_at": _safe_iso(notification.created_at) or datetime.now(timezone.utc).isoformat(),
        },
    }


def calendar_event_payload(record: Event, *, event: str) -> dict:
    return {
        "event": event,
        "calendar_event": {
            "id": record.id,
            "title": record.title,
            "event_type": record.event_type.value,
            "visibility_scope": record.visibility_scope.value,
            "target_class": record.target_class,
            "start_at": _safe_iso(record.start_at),
            "end_at": _safe_iso(record.end_at),
        },
    }


def publish_realtime_notification(notification: Notification, *, event: str = "notification.created") -> None:
    payload = notification_to_event_payload(notification, event=event)
    try:
        from_thread.run(realtime_hub.publish, notification.user_id, payload)
    except Exception:  # pragma: no cover - runtime environment dependent
        logger.debug("Unable to push realtime notification for user %s", notification.user_id, exc_info=True)


def publish_realtime_event(record: Event, *, event: str) -> None:
    payload = calendar_event_payload(record, event=event)
    try:
        from_thread.run(realtime_hub.publish_event, record, payload)
    except Exception:  # pragma: no cover - runtime environment dependent
        logger.debug("Unable to push realtime change for event %s", record.id, exc_info=True)


def create_notification(
    db: Session,
    *,
    user_id: str,
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.notification,
    event_id: str | None = None,
    details: dict | None = None,
    deliver_realtime: bool = True,
) -> Notification:
    record = Notification(
        user_id=user_id,
        title=title,
        message=message,
        notification_type=notification_type,
        status=NotificationStatus.unread,
        event_id=event_id,
        details=details or {},
    )
    db.add(record)
    db.flush()

    if deliver_realtime:
        publish_realtime_notification(record, event="notification.created")
    return record


def notify_users(
    db: Session,
    *,
    user_ids: list[str] | set[str] | tuple[str, ...],
    title: str,
    message: str,
    notification_type: NotificationType = NotificationType.notification,
    event_id: str | None = None,
    details: dict | None = None,
    exclude_user_id: str | None = None,
) -> list[Notification]:
    requested_ids = [item for item in dict.fromkeys(user_ids) if item and item != exclude_user_id]
    if not requested_ids:
        return []

    recipients = list(
        db.execute(
            select(User.id).where(
                User.id.in_(requested_ids),
                User.is_active.is_(True),
            )
        ).scalars()
    )
    return [
        create_notification(
            db,
            user_id=recipient_id,
            title=title,
            message=message,
            notification_type=notification_type,
            event_id=event_id,
            details=details,
        )
        for recipient_id in recipients
    ]


def active_user_ids(
    db: Session,
    *,
    role: UserRole | None = None,
    class_id: str | None = None,
    batch_id: str | None = None,
) -> list[str]:
    query = select(User.id).where(User.is_active.is_(True))
    if role is not None:
        query = query.where(User.role == role)
    if class_id is not None:
        query = query.where(User.class_id == class_id)
    if batch_id is not None:
        query = query.where(User.batch_id == batch_id)
    return list(db.execute(query.order_by(User.created_at, User.id)).scalars())
