from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timedelta, timezone
from typing import Any

from sqlalchemy import Select, and_, or_, select

from jawara.core.exceptions import ConflictError, ValidationError
from jawara.models.event import Event, EventType, VisibilityScope

RECURRENCE_STEP = timedelta(days=7)
# Broadcasts are zero-length markers on the calendar, not time the creator is busy.
NON_BLOCKING_TYPES = (EventType.broadcast, EventType.urgent_broadcast)


def as_utc(value: datetime) -> datetime:
    # SQLite hands back naive values; every stored timestamp is UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _get(record: Any, name: str, default: Any = None) -> Any:
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)


def ensure_valid_window(start_at: datetime, end_at: datetime) -> None:
    if as_utc(start_at) >= as_utc(end_at):
        raise ValidationError(
            "End time must be after start time",
            details={"start_at": start_at.isoformat(), "end_at": end_at.isoformat()},
        )


def intervals_overlap(
    start_a: datetime,
    end_a: datetime,
    start_b: datetime,
    end_b: datetime,
) -> bool:
    """Half-open overlap test; intervals that only touch do not overlap."""
    return as_utc(start_a) < as_utc(end_b) and as_utc(end_a) > as_utc(start_b)


def conflict_candidates_query(
    creator_id: str,
    proposed_start: datetime,
    proposed_end: datetime,
    exclude_event_id: str | None = None,
) -> Select:
    """Coarse store-side pre-filter; ``find_conflict`` does the exact test."""
    query = select(Event).where(
        Event.created_by == creator_id,
        Event.is_deleted.is_(False),
        Event.event_type.not_in(NON_BLOCKING_TYPES),
        or_(Event.start_at <= proposed_end, Event.end_at >= proposed_start),
    )
    if exclude_event_id is not None:
        query = query.where(Event.id != exclude_event_id)
    return query.order_by(Event.start_at)


def find_conflict(
    creator_id: str,
    proposed_start: datetime,
    proposed_end: datetime,
    candidates: Iterable[Any],
    exclude_event_id: str | None = None,
) -> Any | None:
    ensure_valid_window(proposed_start, proposed_end)
    for existing in candidates:
        if _get(existing, "created_by") != creator_id:
            continue
        if _get(existing, "is_deleted", False):
            continue
        if _get(existing, "event_type") in NON_BLOCKING_TYPES:
            continue
        if exclude_event_id is not None and _get(existing, "id") == exclude_event_id:
            continue
        if intervals_overlap(proposed_start, proposed_end, _get(existing, "start_at"), _get(existing, "end_at")):
            return existing
    return None


def check_conflict(
    creator_id: str,
    proposed_start: datetime,
    proposed_end: datetime,
    candidates: Iterable[Any],
    exclude_event_id: str | None = None,
) -> bool:
    return find_conflict(creator_id, proposed_start, proposed_end, candidates, exclude_event_id) is not None


def ensure_no_conflict(
    creator_id: str,
    proposed_start: datetime,
    proposed_end: datetime,
    candidates: Iterable[Any],
    exclude_event_id: str | None = None,
) -> None:
    existing = find_conflict(creator_id, proposed_start, proposed_end, candidates, exclude_event_id)
    if existing is not None:
        raise ConflictError(
            str(_get(existing, "id")),
            _get(existing, "title") or "untitled event",
            details={
                "conflicting_start_at": as_utc(_get(existing, "start_at")).isoformat(),
                "conflicting_end_at": as_utc(_get(existing, "end_at")).isoformat(),
            },
        )


def parse_repeat_until(value: date | datetime | str, *, reference: datetime) -> datetime:
    """Resolve ``repeat_until`` to an inclusive bound.

    A bare date covers the whole day in the timezone of ``reference``.
    """
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            raise ValidationError("repeat_until is required for recurring events")
        try:
            value = date.fromisoformat(raw)
        except ValueError:
            try:
                value = datetime.fromisoformat(raw.replace("Z", "+00:00"))
            except ValueError as exc:
                raise ValidationError(
                    f"Invalid repeat_until value: {raw}",
                    details={"repeat_until": raw},
                ) from exc

    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time.max, tzinfo=reference.tzinfo)
    raise ValidationError(f"Invalid repeat_until value: {value!r}")


def expand_recurring(
    base_event: Mapping[str, Any],
    repeat_until: date | datetime | str,
    *,
    max_instances: int | None = None,
) -> list[dict[str, Any]]:
    """Expand ``base_event`` into weekly copies whose start is on or before ``repeat_until``.

    Returns plain column dicts. A bound earlier than the base start yields an
    empty list. Any failure rejects the whole series.
    """
    base_start: datetime = base_event["start_at"]
    base_end: datetime = base_event["end_at"]
    ensure_valid_window(base_start, base_end)
    bound = parse_repeat_until(repeat_until, reference=base_start)
    limit = as_utc(bound)

    instances: list[dict[str, Any]] = []
    week = 0
    while True:
        start_at = base_start + RECURRENCE_STEP * week
        if as_utc(start_at) > limit:
            break
        if max_instances is not None and len(instances) >= max_instances:
            raise ValidationError(
                f"Recurring series exceeds the limit of {max_instances} instances",
                details={"max_instances": max_instances},
            )
        instances.append(
            {
                **base_event,
                "start_at": start_at,
                "end_at": base_end + RECURRENCE_STEP * week,
                "is_recurring": True,
                "repeat_until": bound,
            }
        )
        week += 1
    return instances


def normalize_event_targets(values: dict[str, Any], *, creator_id: str) -> dict[str, Any]:
    """Apply the scope/target invariants to an event payload before it is written."""
    normalized = dict(values)
    metadata = normalized.get("event_metadata") or {}
    event_type = normalized.get("event_type")
    scope = normalized.get("visibility_scope")

    if event_type == EventType.personal:
        normalized["visibility_scope"] = VisibilityScope.personal
        normalized["target_user"] = creator_id
        normalized["target_class"] = None
        return normalized

    if scope == VisibilityScope.class_ and not normalized.get("target_class"):
        raise ValidationError("target_class is required for class events", details={"visibility_scope": "class"})
    if scope == VisibilityScope.personal and not normalized.get("target_user"):
        normalized["target_user"] = creator_id
    if scope == VisibilityScope.batch and not metadata.get("target_batch"):
        raise ValidationError("metadata.target_batch is required for batch events", details={"visibility_scope": "batch"})
    if scope == VisibilityScope.role and not metadata.get("target_role"):
        raise ValidationError("metadata.target_role is required for role events", details={"visibility_scope": "role"})
    return normalized
