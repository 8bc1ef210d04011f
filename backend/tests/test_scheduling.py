from datetime import date, datetime, timedelta, timezone

import pytest

from jawara.core.exceptions import ConflictError, ValidationError
from jawara.models.event import EventType, VisibilityScope
from jawara.services.scheduling import (
    check_conflict,
    ensure_no_conflict,
    expand_recurring,
    intervals_overlap,
    normalize_event_targets,
    parse_repeat_until,
)


def at(hour: int, minute: int = 0, day: int = 6) -> datetime:
    return datetime(2025, 1, day, hour, minute, tzinfo=timezone.utc)


EXISTING = [
    {"id": "E1", "title": "Math", "created_by": "U", "start_at": at(10), "end_at": at(11), "is_deleted": False},
]


def test_touching_boundaries_do_not_conflict():
    assert check_conflict("U", at(11), at(12), EXISTING) is False
    assert check_conflict("U", at(9), at(10), EXISTING) is False


def test_nested_interval_conflicts():
    assert check_conflict("U", at(10, 30), at(10, 45), EXISTING) is True


def test_conflicts_are_scoped_to_the_creator():
    assert check_conflict("V", at(10, 30), at(10, 45), EXISTING) is False


def test_excluded_and_deleted_events_are_ignored():
    assert check_conflict("U", at(10), at(11), EXISTING, exclude_event_id="E1") is False
    deleted = [{**EXISTING[0], "is_deleted": True}]
    assert check_conflict("U", at(10), at(11), deleted) is False


def test_conflict_error_names_the_existing_event():
    with pytest.raises(ConflictError) as excinfo:
        ensure_no_conflict("U", at(10, 30), at(11, 30), EXISTING)
    assert excinfo.value.status_code == 409
    assert excinfo.value.details["conflicting_event_id"] == "E1"
    assert excinfo.value.details["conflicting_event_title"] == "Math"
    assert "Math" in excinfo.value.message


def test_invalid_window_is_rejected_before_conflict_check():
    with pytest.raises(ValidationError):
        check_conflict("U", at(11), at(10), [])
    with pytest.raises(ValidationError):
        check_conflict("U", at(11), at(11), [])


def test_naive_and_aware_datetimes_compare_as_utc():
    naive = datetime(2025, 1, 6, 10, 0)
    assert intervals_overlap(naive, naive + timedelta(hours=1), at(10, 30), at(12)) is True


def test_weekly_expansion_until_same_weekday_three_weeks_later():
    base = {"title": "Lab", "start_at": at(9), "end_at": at(10)}
    instances = expand_recurring(base, "2025-01-27")

    assert len(instances) == 4
    for week, instance in enumerate(instances):
        assert instance["start_at"] == base["start_at"] + timedelta(days=7 * week)
        assert instance["end_at"] - instance["start_at"] == timedelta(hours=1)
        assert instance["is_recurring"] is True
        assert instance["title"] == "Lab"


def test_datetime_bound_is_inclusive():
    base = {"start_at": at(9), "end_at": at(10)}
    instances = expand_recurring(base, at(9, day=20))
    assert [item["start_at"].day for item in instances] == [6, 13, 20]


def test_bound_before_start_yields_no_instances():
    base = {"start_at": at(9), "end_at": at(10)}
    assert expand_recurring(base, "2025-01-01") == []


def test_unparsable_bound_rejects_the_series():
    base = {"start_at": at(9), "end_at": at(10)}
    with pytest.raises(ValidationError):
        expand_recurring(base, "next tuesday")


def test_series_over_the_cap_is_rejected():
    base = {"start_at": at(9), "end_at": at(10)}
    with pytest.raises(ValidationError) as excinfo:
        expand_recurring(base, "2026-01-01", max_instances=10)
    assert excinfo.value.details["max_instances"] == 10


def test_parse_repeat_until_accepts_dates_and_zulu_timestamps():
    reference = at(9)
    assert parse_repeat_until(date(2025, 2, 1), reference=reference).date() == date(2025, 2, 1)
    parsed = parse_repeat_until("2025-02-01T12:00:00Z", reference=reference)
    assert parsed == datetime(2025, 2, 1, 12, tzinfo=timezone.utc)


def test_personal_events_are_forced_to_their_creator():
    normalized = normalize_event_targets(
        {
            "event_type": EventType.personal,
            "visibility_scope": VisibilityScope.schoolwide,
            "target_class": "C1",
            "target_user": "someone",
        },
        creator_id="S1",
    )
    assert normalized["visibility_scope"] == VisibilityScope.personal
    assert normalized["target_user"] == "S1"
    assert normalized["target_class"] is None


def test_class_scope_requires_target_class():
    with pytest.raises(ValidationError):
        normalize_event_targets(
            {"event_type": EventType.lesson, "visibility_scope": VisibilityScope.class_, "target_class": None},
            creator_id="T1",
        )


def test_batch_and_role_scopes_require_metadata_targets():
    with pytest.raises(ValidationError):
        normalize_event_targets(
            {"event_type": EventType.sports, "visibility_scope": VisibilityScope.batch, "event_metadata": {}},
            creator_id="A1",
        )
    accepted = normalize_event_targets(
        {
            "event_type": EventType.sports,
            "visibility_scope": VisibilityScope.role,
            "event_metadata": {"target_role": "student"},
        },
        creator_id="A1",
    )
    assert accepted["visibility_scope"] == VisibilityScope.role


def test_broadcast_markers_never_conflict():
    broadcasts = [
        {"id": "B1", "title": "Notice", "created_by": "U", "event_type": "broadcast", "start_at": at(10), "end_at": at(10)},
        {"id": "B2", "title": "Alert", "created_by": "U", "event_type": "urgent_broadcast", "start_at": at(10, 30), "end_at": at(10, 30)},
    ]
    assert check_conflict("U", at(9), at(11), broadcasts) is False
    assert check_conflict("U", at(9), at(11), broadcasts + EXISTING) is True
