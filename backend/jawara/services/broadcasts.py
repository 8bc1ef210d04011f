from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging

from sqlalchemy.orm import Session

from jawara.core.exceptions import ValidationError
from jawara.models.event import Event, EventType, VisibilityScope
from jawara.models.notification import Notification, NotificationType
from jawara.models.user import User, UserRole
from jawara.schemas.notification import BroadcastRequest
from jawara.services.notifications import active_user_ids, notify_users, publish_realtime_event

logger = logging.getLogger(__name__)


@dataclass
class BroadcastTargets:
    user_ids: list[str]
    visibility_scope: VisibilityScope
    target_class: str | None = None
    target_user: str | None = None
    metadata: dict = field(default_factory=dict)


def resolve_broadcast_targets(db: Session, request: BroadcastRequest) -> BroadcastTargets:
    """Pick recipients from the most specific target given.

    ``target_class`` wins over ``target_user``, which wins over the legacy
    ``target_batch``/``target_role`` metadata targets; with none of them the
    broadcast goes to everyone.
    """
    if request.target_class:
        targets = BroadcastTargets(
            user_ids=active_user_ids(db, role=UserRole.student, class_id=request.target_class),
            visibility_scope=VisibilityScope.class_,
            target_class=request.target_class,
        )
    elif request.target_user:
        recipient = db.get(User, request.target_user)
        targets = BroadcastTargets(
            user_ids=[recipient.id] if recipient is not None and recipient.is_active else [],
            visibility_scope=VisibilityScope.personal,
            target_user=request.target_user,
        )
    elif request.target_batch:
        targets = BroadcastTargets(
            user_ids=active_user_ids(db, batch_id=request.target_batch),
            visibility_scope=VisibilityScope.batch,
            metadata={"target_batch": request.target_batch},
        )
    elif request.target_role:
        targets = BroadcastTargets(
            user_ids=active_user_ids(db, role=request.target_role),
            visibility_scope=VisibilityScope.role,
            metadata={"target_role": request.target_role.value},
        )
    elif request.visibility_scope in (None, VisibilityScope.all, VisibilityScope.schoolwide):
        targets = BroadcastTargets(
            user_ids=active_user_ids(db),
            visibility_scope=request.visibility_scope or VisibilityScope.all,
        )
    else:
        raise ValidationError(
            "Invalid or missing target configuration. Use target_class, target_user, "
            "target_batch, target_role or visibility_scope: all",
            details={"visibility_scope": request.visibility_scope.value},
        )

    if not targets.user_ids:
        raise ValidationError("No target users found")
    return targets


def create_broadcast(db: Session, *, actor: User, request: BroadcastRequest) -> tuple[Event, list[Notification]]:
    targets = resolve_broadcast_targets(db, request)
    now = datetime.now(timezone.utc)
    full_message = f"{request.title}\n\n{request.message}"
    metadata = {
        **targets.metadata,
        "notification_type": request.notification_type,
        "isUrgent": request.is_urgent,
        "sent_to": len(targets.user_ids),
        "sender_role": actor.role.value,
        "full_message": full_message,
    }

    # Broadcasts are instants on the calendar, so start_at == end_at here.
    event = Event(
        title=request.title,
        description=request.message,
        event_type=EventType.urgent_broadcast if request.is_urgent else EventType.broadcast,
        start_at=now,
        end_at=now,
        created_by=actor.id,
        created_by_role=actor.role,
        target_class=targets.target_class,
        target_user=targets.target_user,
        visibility_scope=targets.visibility_scope,
        event_metadata=metadata,
        is_deleted=False,
    )
    db.add(event)
    db.flush()

    notification_type = (
        NotificationType.announcement if request.notification_type == "alert" else NotificationType.broadcast
    )
    notifications = notify_users(
        db,
        user_ids=targets.user_ids,
        title=request.title,
        message=full_message,
        notification_type=notification_type,
        event_id=event.id,
        details={"isUrgent": request.is_urgent, "sender_role": actor.role.value, "sent_to": len(targets.user_ids)},
    )
    publish_realtime_event(event, event="event.created")
    logger.info(
        "Broadcast %s by %s reached %d recipient(s)",
        event.id,
        actor.id,
        len(notifications),
    )
    return event, notifications
