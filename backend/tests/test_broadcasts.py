from datetime import datetime, timedelta, timezone

from jawara.models.user import UserRole


def inbox(client, headers, **params) -> list[dict]:
    response = client.get("/api/notifications", params=params, headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


def test_class_broadcast_reaches_only_students_of_the_class(client, make_user, make_class, auth_headers):
    class_a = make_class("9A")
    class_b = make_class("9B")
    teacher = make_user(UserRole.teacher)
    first = make_user(UserRole.student, class_id=class_a.id)
    second = make_user(UserRole.student, class_id=class_a.id)
    outsider = make_user(UserRole.student, class_id=class_b.id)
    make_user(UserRole.student, class_id=class_a.id, is_active=False)

    response = client.post(
        "/api/broadcast",
        json={"title": "Field trip", "message": "Bring lunch", "target_class": class_a.id},
        headers=auth_headers(teacher),
    )
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is True
    assert body["sent_count"] == 2
    assert body["broadcast"]["event_type"] == "broadcast"
    assert body["broadcast"]["visibility_scope"] == "class"
    assert body["broadcast"]["metadata"]["sent_to"] == 2

    assert [item["title"] for item in inbox(client, auth_headers(first))] == ["Field trip"]
    assert inbox(client, auth_headers(first))[0]["message"] == "Field trip\n\nBring lunch"
    assert len(inbox(client, auth_headers(second))) == 1
    assert inbox(client, auth_headers(outsider)) == []

    calendar = client.get("/api/events", headers=auth_headers(first)).json()
    assert [item["title"] for item in calendar] == ["Field trip"]
    assert client.get("/api/events", headers=auth_headers(outsider)).json() == []


def test_urgent_schoolwide_alert(client, make_user, auth_headers):
    admin = make_user(UserRole.admin)
    teacher = make_user(UserRole.teacher)
    student = make_user(UserRole.student)

    response = client.post(
        "/api/broadcast",
        json={"title": "Storm", "message": "School closes at noon", "isUrgent": True, "notification_type": "alert"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    body = response.json()
    assert body["broadcast"]["event_type"] == "urgent_broadcast"
    assert body["broadcast"]["visibility_scope"] == "all"
    assert body["sent_count"] == 3

    notes = inbox(client, auth_headers(student), notification_type="announcement")
    assert len(notes) == 1
    assert notes[0]["details"]["isUrgent"] is True
    assert len(inbox(client, auth_headers(teacher))) == 1


def test_direct_broadcast_to_single_user(client, make_user, auth_headers):
    teacher = make_user(UserRole.teacher)
    student = make_user(UserRole.student)
    other = make_user(UserRole.student)

    response = client.post(
        "/api/broadcast",
        json={"title": "See me", "message": "After class", "target_user": student.id},
        headers=auth_headers(teacher),
    )
    assert response.status_code == 200
    assert response.json()["broadcast"]["visibility_scope"] == "personal"
    assert len(inbox(client, auth_headers(student))) == 1
    assert inbox(client, auth_headers(other)) == []


def test_role_broadcast_uses_metadata_targeting(client, make_user, auth_headers):
    admin = make_user(UserRole.admin)
    teacher = make_user(UserRole.teacher)
    student = make_user(UserRole.student)

    response = client.post(
        "/api/broadcast",
        json={"title": "Staff only", "message": "Meeting at 4", "target_role": "teacher"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    assert response.json()["broadcast"]["metadata"]["target_role"] == "teacher"

    assert [item["title"] for item in client.get("/api/events", headers=auth_headers(teacher)).json()] == ["Staff only"]
    assert client.get("/api/events", headers=auth_headers(student)).json() == []


def test_broadcast_without_recipients_is_rejected(client, make_user, make_class, auth_headers):
    empty_class = make_class("Empty")
    admin = make_user(UserRole.admin)

    response = client.post(
        "/api/broadcast",
        json={"title": "Hello", "message": "Anyone?", "target_class": empty_class.id},
        headers=auth_headers(admin),
    )
    assert response.status_code == 422
    assert response.json()["message"] == "No target users found"


def test_students_cannot_broadcast(client, make_user, auth_headers):
    student = make_user(UserRole.student)
    response = client.post(
        "/api/broadcast",
        json={"title": "Party", "message": "Tonight"},
        headers=auth_headers(student),
    )
    assert response.status_code == 403


def test_recipient_marks_broadcast_read_and_dismissed(client, make_user, auth_headers):
    admin = make_user(UserRole.admin)
    student = make_user(UserRole.student)
    broadcast = client.post(
        "/api/broadcast",
        json={"title": "Exams", "message": "Timetable posted", "target_user": student.id},
        headers=auth_headers(admin),
    ).json()["broadcast"]

    read = client.patch(
        f"/api/broadcast/{broadcast['id']}/status",
        json={"status": "read"},
        headers=auth_headers(student),
    )
    assert read.status_code == 200
    assert read.json()["status"] == "read"

    dismissed = client.patch(
        f"/api/broadcast/{broadcast['id']}/status",
        json={"status": "dismissed"},
        headers=auth_headers(student),
    )
    assert dismissed.json()["status"] == "dismissed"
    assert inbox(client, auth_headers(student), status="dismissed")[0]["event_id"] == broadcast["id"]


def test_broadcast_status_hidden_from_non_recipients(client, make_user, auth_headers):
    admin = make_user(UserRole.admin)
    student = make_user(UserRole.student)
    other = make_user(UserRole.student)
    broadcast = client.post(
        "/api/broadcast",
        json={"title": "Private", "message": "Just you", "target_user": student.id},
        headers=auth_headers(admin),
    ).json()["broadcast"]

    response = client.patch(
        f"/api/broadcast/{broadcast['id']}/status",
        json={"status": "read"},
        headers=auth_headers(other),
    )
    assert response.status_code == 404
    invalid = client.patch(
        f"/api/broadcast/{broadcast['id']}/status",
        json={"status": "unread"},
        headers=auth_headers(student),
    )
    assert invalid.status_code == 422


def test_broadcasts_do_not_block_the_senders_calendar(client, make_user, auth_headers):
    admin = make_user(UserRole.admin)
    make_user(UserRole.student)
    headers = auth_headers(admin)
    sent = client.post("/api/broadcast", json={"title": "Hi", "message": "Welcome back"}, headers=headers)
    assert sent.status_code == 200

    now = datetime.now(timezone.utc)
    window = {
        "start_at": (now - timedelta(hours=1)).isoformat(),
        "end_at": (now + timedelta(hours=1)).isoformat(),
    }
    check = client.post("/api/events/conflicts/check", json=window, headers=headers)
    assert check.json()["conflict"] is False

    created = client.post(
        "/api/events",
        json={"title": "Open day", "event_type": "administrative", "visibility_scope": "all", **window},
        headers=headers,
    )
    assert created.status_code == 201, created.text
