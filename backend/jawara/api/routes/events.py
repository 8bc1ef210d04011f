from datetime import datetime
import logging
from typing import Any

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from jawara.api.deps import get_current_user, get_current_viewer, get_db
from jawara.core.config import get_settings
from jawara.core.exceptions import ResourceNotFoundError, ValidationError
from jawara.models.event import Event, EventType, VisibilityScope
from jawara.models.user import User
from jawara.schemas.event import (
    ConflictCheckOut,
    ConflictCheckRequest,
    EventCreate,
    EventOut,
    EventUpdate,
    VisibilityUpdate,
)
from jawara.services.alerts import check_schedule_overload
from jawara.services.audit import log_activity
from jawara.services.notifications import publish_realtime_event
from jawara.services.permissions import (
    ensure_can_create,
    ensure_can_modify,
    ensure_teacher_assignment_allowed,
)
from jawara.services.scheduling import (
    conflict_candidates_query,
    ensure_no_conflict,
    ensure_valid_window,
    expand_recurring,
    find_conflict,
    normalize_event_targets,
)
from jawara.services.visibility import ScopeHint, Viewer, build_filter_predicate, is_visible

router = APIRouter()
logger = logging.getLogger(__name__)

settings = get_settings()

EDITABLE_FIELDS = (
    "title",
    "description",
    "start_at",
    "end_at",
    "location",
    "event_type",
    "visibility_scope",
    "target_class",
    "target_user",
    "teacher_id",
    "event_metadata",
)


def _column_values(payload: dict[str, Any]) -> dict[str, Any]:
    values = {key: value for key, value in payload.items() if key not in {"metadata", "is_recurring", "repeat_until"}}
    if "metadata" in payload:
        values["event_metadata"] = payload["metadata"] or {}
    return values


def _get_visible_event(db: Session, viewer: Viewer, event_id: str) -> Event:
    event = db.get(Event, event_id)
    if event is None or not is_visible(viewer, event):
        raise ResourceNotFoundError("Event", event_id)
    return event


def _ensure_series_free(
    db: Session,
    creator_id: str,
    drafts: list[dict[str, Any]],
    exclude_event_id: str | None = None,
) -> None:
    window_start = min(draft["start_at"] for draft in drafts)
    window_end = max(draft["end_at"] for draft in drafts)
    candidates: list[Any] = list(
        db.execute(conflict_candidates_query(creator_id, window_start, window_end, exclude_event_id)).scalars()
    )
    for draft in drafts:
        ensure_no_conflict(creator_id, draft["start_at"], draft["end_at"], candidates, exclude_event_id)
        candidates.append({**draft, "id": None, "created_by": creator_id, "title": draft.get("title")})


@router.get("/events", response_model=list[EventOut])
def list_events(
    scope: ScopeHint | None = Query(default=None),
    event_type: EventType | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    viewer: Viewer = Depends(get_current_viewer),
    db: Session = Depends(get_db),
) -> list[EventOut]:
    query = select(Event).where(build_filter_predicate(viewer, scope))
    if event_type is not None:
        query = query.where(Event.event_type == event_type)
    if start is not None:
        query = query.where(Event.end_at >= start)
    if end is not None:
        query = query.where(Event.start_at <= end)
    query = query.order_by(Event.start_at, Event.id).offset(offset).limit(limit)
    return list(db.execute(query).scalars())


@router.get("/events/{event_id}", response_model=EventOut)
def get_event(
    event_id: str,
    viewer: Viewer = Depends(get_current_viewer),
    db: Session = Depends(get_db),
) -> EventOut:
    return _get_visible_event(db, viewer, event_id)


@router.post("/events", response_model=list[EventOut], status_code=status.HTTP_201_CREATED)
def create_event(
    payload: EventCreate,
    current_user: User = Depends(get_current_user),
    viewer: Viewer = Depends(get_current_viewer),
    db: Session = Depends(get_db),
) -> list[EventOut]:
    values = normalize_event_targets(
        _column_values(payload.model_dump(exclude={"is_recurring", "repeat_until"})),
        creator_id=current_user.id,
    )
    ensure_can_create(viewer, values["event_type"], values.get("target_class"))
    ensure_teacher_assignment_allowed(viewer, values.get("teacher_id"))

    if payload.is_recurring:
        if not payload.repeat_until:
            raise ValidationError("repeat_until is required for recurring events")
        drafts = expand_recurring(
            values,
            payload.repeat_until,
            max_instances=settings.recurrence_max_instances,
        )
    else:
        ensure_valid_window(values["start_at"], values["end_at"])
        drafts = [values]

    if not drafts:
        return []

    _ensure_series_free(db, current_user.id, drafts)

    records = [
        Event(
            **draft,
            created_by=current_user.id,
            created_by_role=current_user.role,
            is_deleted=False,
        )
        for draft in drafts
    ]
    db.add_all(records)
    db.flush()
    log_activity(
        db,
        actor=current_user,
        action="event.create",
        entity_type="event",
        entity_id=records[0].id,
        details={"count": len(records), "is_recurring": payload.is_recurring},
    )
    check_schedule_overload(db, user=current_user, threshold=settings.overload_warning_threshold)
    db.commit()
    for record in records:
        db.refresh(record)
        publish_realtime_event(record, event="event.created")

    logger.info("User %s created %d event(s) of type %s", current_user.id, len(records), values["event_type"].value)
    return records


@router.put("/events/{event_id}", response_model=EventOut)
def update_event(
    event_id: str,
    payload: EventUpdate,
    current_user: User = Depends(get_current_user),
    viewer: Viewer = Depends(get_current_viewer),
    db: Session = Depends(get_db),
) -> EventOut:
    event = _get_visible_event(db, viewer, event_id)
    ensure_can_modify(viewer, event)

    merged = {field: getattr(event, field) for field in EDITABLE_FIELDS}
    merged.update(_column_values(payload.model_dump(exclude_unset=True)))
    merged = normalize_event_targets(merged, creator_id=event.created_by)
    ensure_can_create(viewer, merged["event_type"], merged.get("target_class"))
    ensure_teacher_assignment_allowed(viewer, merged.get("teacher_id"))
    ensure_valid_window(merged["start_at"], merged["end_at"])
    _ensure_series_free(db, event.created_by, [merged], exclude_event_id=event.id)

    for field, value in merged.items():
        setattr(event, field, value)
    log_activity(
        db,
        actor=current_user,
        action="event.update",
        entity_type="event",
        entity_id=event.id,
        details={"fields": sorted(payload.model_dump(exclude_unset=True))},
    )
    db.commit()
    db.refresh(event)
    publish_realtime_event(event, event="event.updated")
    return event


@router.put("/events/{event_id}/visibility", response_model=EventOut)
def update_event_visibility(
    event_id: str,
    payload: VisibilityUpdate,
    current_user: User = Depends(get_current_user),
    viewer: Viewer = Depends(get_current_viewer),
    db: Session = Depends(get_db),
) -> EventOut:
    event = _get_visible_event(db, viewer, event_id)
    ensure_can_modify(viewer, event)

    values = normalize_event_targets(
        {
            "event_type": event.event_type,
            "visibility_scope": VisibilityScope(payload.visibility_scope),
            "target_class": event.target_class,
            "target_user": event.target_user,
            "event_metadata": event.event_metadata,
        },
        creator_id=event.created_by,
    )
    if values["visibility_scope"] != payload.visibility_scope:
        raise ValidationError(
            "Personal events must keep personal visibility",
            details={"visibility_scope": payload.visibility_scope},
        )
    event.visibility_scope = values["visibility_scope"]
    event.target_user = values["target_user"]
    log_activity(
        db,
        actor=current_user,
        action="event.visibility",
        entity_type="event",
        entity_id=event.id,
        details={"visibility_scope": payload.visibility_scope},
    )
    db.commit()
    db.refresh(event)
    publish_realtime_event(event, event="event.updated")
    return event


@router.delete("/events/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(
    event_id: str,
    current_user: User = Depends(get_current_user),
    viewer: Viewer = Depends(get_current_viewer),
    db: Session = Depends(get_db),
) -> Response:
    event = _get_visible_event(db, viewer, event_id)
    ensure_can_modify(viewer, event)

    publish_realtime_event(event, event="event.deleted")
    log_activity(
        db,
        actor=current_user,
        action="event.delete",
        entity_type="event",
        entity_id=event.id,
        details={"title": event.title},
    )
    db.delete(event)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/events/conflicts/check", response_model=ConflictCheckOut)
def check_event_conflict(
    payload: ConflictCheckRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ConflictCheckOut:
    candidates = db.execute(
        conflict_candidates_query(current_user.id, payload.start_at, payload.end_at, payload.exclude_event_id)
    ).scalars()
    existing = find_conflict(current_user.id, payload.start_at, payload.end_at, candidates, payload.exclude_event_id)
    if existing is None:
        return ConflictCheckOut(conflict=False)
    return ConflictCheckOut(
        conflict=True,
        conflicting_event_id=existing.id,
        conflicting_event_title=existing.title,
    )
