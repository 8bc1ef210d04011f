from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from jawara.models.event import Event, EventType
from jawara.models.notification import Notification, NotificationType
from jawara.models.user import User, UserRole
from jawara.services.notifications import create_notification
from jawara.services.scheduling import as_utc

logger = logging.getLogger(__name__)


def start_of_week(moment: datetime) -> datetime:
    """Sunday 00:00 UTC of the week containing ``moment``."""
    moment = as_utc(moment)
    days_since_sunday = (moment.weekday() + 1) % 7
    return (moment - timedelta(days=days_since_sunday)).replace(hour=0, minute=0, second=0, microsecond=0)


def _describe_start(start: datetime, now: datetime) -> str:
    days_ahead = (start.date() - now.date()).days
    clock = start.strftime("%H:%M")
    if days_ahead == 0:
        return f"today at {clock}"
    if days_ahead == 1:
        return f"tomorrow at {clock}"
    return f"{start.strftime('%A %d %B')} at {clock}"


def _existing_recipients(db: Session, event_id: str) -> set[str]:
    return set(
        db.execute(
            select(Notification.user_id).where(
                Notification.event_id == event_id,
                Notification.notification_type == NotificationType.exam_reminder,
            )
        ).scalars()
    )


def generate_exam_reminders(db: Session, *, now: datetime | None = None, window_hours: int = 24) -> int:
    """Remind exam creators and enrolled students of exams starting within ``window_hours``."""
    now = as_utc(now or datetime.now(timezone.utc))
    horizon = now + timedelta(hours=window_hours)
    exams = list(
        db.execute(
            select(Event)
            .where(
                Event.event_type == EventType.exam,
                Event.is_deleted.is_(False),
                Event.start_at >= now,
                Event.start_at <= horizon,
            )
            .order_by(Event.start_at)
        ).scalars()
    )

    created = 0
    for exam in exams:
        recipients = [exam.created_by]
        if exam.target_class:
            recipients.extend(
                db.execute(
                    select(User.id).where(
                        User.class_id == exam.target_class,
                        User.role == UserRole.student,
                        User.is_active.is_(True),
                    )
                ).scalars()
            )

        already_notified = _existing_recipients(db, exam.id)
        when = _describe_start(as_utc(exam.start_at), now)
        for user_id in dict.fromkeys(recipients):
            if user_id in already_notified:
                continue
            create_notification(
                db,
                user_id=user_id,
                title="Exam reminder",
                message=f"Exam reminder: {exam.title} is scheduled for {when}",
                notification_type=NotificationType.exam_reminder,
                event_id=exam.id,
            )
            created += 1

    if created:
        logger.info("Generated %d exam reminder(s) for %d exam(s)", created, len(exams))
    return created


def check_schedule_overload(
    db: Session,
    *,
    user: User,
    now: datetime | None = None,
    threshold: int = 10,
) -> Notification | None:
    """Warn once per week when ``user`` has ``threshold`` or more events in the current week."""
    week_start = start_of_week(now or datetime.now(timezone.utc))
    week_end = week_start + timedelta(days=7)

    ownership = [Event.created_by == user.id]
    if user.class_id:
        ownership.append(Event.target_class == user.class_id)
    week_events = db.execute(
        select(Event.id).where(
            or_(*ownership),
            Event.is_deleted.is_(False),
            Event.start_at >= week_start,
            Event.start_at < week_end,
        )
    ).scalars().all()
    if len(week_events) < threshold:
        return None

    week_key = week_start.date().isoformat()
    previous = db.execute(
        select(Notification.details).where(
            Notification.user_id == user.id,
            Notification.notification_type == NotificationType.overload_warning,
        )
    ).scalars()
    if any((details or {}).get("week_start") == week_key for details in previous):
        return None

    return create_notification(
        db,
        user_id=user.id,
        title="Schedule overload warning",
        message=(
            f"Schedule overload warning: You have {len(week_events)} events scheduled this week. "
            "Consider reviewing your schedule to avoid burnout."
        ),
        notification_type=NotificationType.overload_warning,
        details={"week_start": week_key, "event_count": len(week_events)},
    )
