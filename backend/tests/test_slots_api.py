import uuid
from datetime import time

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from main import app
from models.audit_log import AuditLog
from models.timetable_slot import TimetableSlot
from schemas.timetable import TimetableSlotUpdate
from services import timetable_service


@pytest.fixture()
def catalog(school):
    return dict(
        t1=school.teacher("T1"),
        t2=school.teacher("T2"),
        c1=school.school_class("10 East"),
        c2=school.school_class("10 West"),
        eng=school.subject("ENG"),
        kis=school.subject("KIS"),
    )


def _slot_body(term, teacher, school_class, subject, start="08:00", end="08:40", day=1, **extra):
    body = {
        "academic_term_id": str(term.id),
        "teacher_id": str(teacher.id),
        "class_id": str(school_class.id),
        "subject_id": str(subject.id),
        "day_of_week": day,
        "start_time": start,
        "end_time": end,
    }
    body.update(extra)
    return body


def _create(client, headers, body):
    return client.post("/api/timetable/slots", json=body, headers=headers)


def test_create_slot(client, admin_headers, term, catalog):
    res = _create(
        client,
        admin_headers,
        _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"], room="  Lab 2 "),
    )

    assert res.status_code == 201, res.text
    body = res.json()
    assert body["start_time"] == "08:00"
    assert body["end_time"] == "08:40"
    assert body["room"] == "Lab 2"
    assert body["teacher_id"] == str(catalog["t1"].id)


def test_teacher_cannot_be_in_two_classes_at_once(client, admin_headers, term, catalog):
    first = _create(client, admin_headers, _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"]))
    res = _create(
        client,
        admin_headers,
        _slot_body(term, catalog["t1"], catalog["c2"], catalog["kis"], start="08:20", end="09:00"),
    )

    assert res.status_code == 409
    body = res.json()
    assert body["code"] == "teacher_conflict"
    assert body["details"]["conflicting_slot_id"] == first.json()["id"]


def test_class_cannot_have_two_lessons_at_once(client, admin_headers, term, catalog):
    _create(client, admin_headers, _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"]))
    res = _create(client, admin_headers, _slot_body(term, catalog["t2"], catalog["c1"], catalog["kis"]))

    assert res.status_code == 409
    assert res.json()["code"] == "class_conflict"


def test_back_to_back_slots_are_allowed(client, admin_headers, term, catalog):
    _create(client, admin_headers, _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"]))
    res = _create(
        client,
        admin_headers,
        _slot_body(term, catalog["t1"], catalog["c1"], catalog["kis"], start="08:40", end="09:20"),
    )

    assert res.status_code == 201


def test_create_rejects_inverted_range(client, admin_headers, term, catalog):
    res = _create(
        client,
        admin_headers,
        _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"], start="09:00", end="08:00"),
    )

    assert res.status_code == 400
    assert res.json()["code"] == "invalid_input"


def test_create_rejects_weekend_day(client, admin_headers, term, catalog):
    res = _create(client, admin_headers, _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"], day=6))

    assert res.status_code == 422
    assert res.json()["code"] == "invalid_input"


def test_create_rejects_times_with_utc_offset(client, admin_headers, term, catalog):
    _create(client, admin_headers, _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"]))

    res = _create(
        client,
        admin_headers,
        _slot_body(term, catalog["t1"], catalog["c2"], catalog["kis"], start="08:20+03:00", end="09:00+03:00"),
    )

    assert res.status_code == 422
    assert res.json()["code"] == "invalid_input"



def test_create_rejects_records_of_another_school(client, admin_headers, term, catalog, other_school):
    foreign_teacher = other_school.teacher("X1")

    res = _create(client, admin_headers, _slot_body(term, foreign_teacher, catalog["c1"], catalog["eng"]))

    assert res.status_code == 400
    assert res.json()["details"]["fields"] == ["teacher_id"]


def test_update_can_shrink_slot_without_self_conflict(client, admin_headers, term, catalog):
    slot = _create(client, admin_headers, _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"])).json()

    res = client.patch(f"/api/timetable/slots/{slot['id']}", json={"end_time": "08:30"}, headers=admin_headers)

    assert res.status_code == 200, res.text
    assert res.json()["end_time"] == "08:30"
    assert res.json()["start_time"] == "08:00"


def test_update_into_overlap_is_rejected(client, admin_headers, term, catalog):
    _create(client, admin_headers, _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"]))
    later = _create(
        client,
        admin_headers,
        _slot_body(term, catalog["t1"], catalog["c2"], catalog["kis"], start="09:00", end="09:40"),
    ).json()

    res = client.patch(
        f"/api/timetable/slots/{later['id']}",
        json={"start_time": "08:30", "end_time": "09:10"},
        headers=admin_headers,
    )

    assert res.status_code == 409
    assert res.json()["code"] == "teacher_conflict"


def test_update_cannot_clear_required_fields(client, admin_headers, term, catalog):
    slot = _create(client, admin_headers, _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"])).json()

    res = client.patch(f"/api/timetable/slots/{slot['id']}", json={"teacher_id": None}, headers=admin_headers)

    assert res.status_code == 400
    assert res.json()["details"]["fields"] == ["teacher_id"]


def test_update_moves_slot_to_another_term(client, admin_headers, school, term, catalog):
    term_two = school.term(term=2)
    slot = _create(client, admin_headers, _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"])).json()
    _create(client, admin_headers, _slot_body(term_two, catalog["t1"], catalog["c2"], catalog["kis"]))

    clash = client.patch(
        f"/api/timetable/slots/{slot['id']}",
        json={"academic_term_id": str(term_two.id)},
        headers=admin_headers,
    )
    assert clash.status_code == 409
    assert clash.json()["code"] == "teacher_conflict"

    res = client.patch(
        f"/api/timetable/slots/{slot['id']}",
        json={"academic_term_id": str(term_two.id), "start_time": "09:00", "end_time": "09:40"},
        headers=admin_headers,
    )
    assert res.status_code == 200, res.text
    assert res.json()["academic_term_id"] == str(term_two.id)

    left = client.get("/api/timetable/slots", params={"academic_term_id": str(term.id)}, headers=admin_headers)
    assert left.json() == []


def test_update_merges_onto_latest_row(client, admin_headers, admin, term, catalog, db_session):
    created = _create(client, admin_headers, _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"])).json()
    slot_id = uuid.UUID(created["id"])
    held = db_session.get(TimetableSlot, slot_id)
    assert held.end_time == time(8, 40)

    # Another request shortens the lesson after this session loaded it.
    client.patch(f"/api/timetable/slots/{created['id']}", json={"end_time": "08:30"}, headers=admin_headers)

    slot = timetable_service.update_slot(
        db_session, actor=admin, slot_id=slot_id, payload=TimetableSlotUpdate(room="Lab 3")
    )

    assert slot.room == "Lab 3"
    assert slot.end_time == time(8, 30)


def test_unexpected_error_returns_json(client, admin_headers, term, monkeypatch):
    def _boom(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(timetable_service, "list_slots", _boom)

    with TestClient(app, raise_server_exceptions=False) as plain_client:
        res = plain_client.get(
            "/api/timetable/slots",
            params={"academic_term_id": str(term.id)},
            headers=admin_headers,
        )

    assert res.status_code == 500
    assert res.json() == {"code": "unknown_error", "message": "Unexpected server error."}



def test_delete_slot_returns_deleted_row(client, admin_headers, term, catalog, db_session):
    slot = _create(client, admin_headers, _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"])).json()

    res = client.delete(f"/api/timetable/slots/{slot['id']}", headers=admin_headers)

    assert res.status_code == 200
    assert res.json()["id"] == slot["id"]
    assert client.delete(f"/api/timetable/slots/{slot['id']}", headers=admin_headers).status_code == 404

    actions = db_session.execute(select(AuditLog.action).order_by(AuditLog.created_at)).scalars().all()
    assert sorted(actions) == ["timetable:create", "timetable:delete"]


def test_slot_of_another_school_is_not_found(client, admin_headers, other_school):
    foreign_admin = other_school.user("admin", role="ADMIN")
    term = other_school.term()
    body = _slot_body(
        term,
        other_school.teacher("X1"),
        other_school.school_class("10 X"),
        other_school.subject("ENG"),
    )
    slot = _create(client, other_school.headers(foreign_admin), body).json()

    res = client.patch(f"/api/timetable/slots/{slot['id']}", json={"room": "B1"}, headers=admin_headers)

    assert res.status_code == 404
    assert res.json()["code"] == "not_found"


def test_list_requires_term_of_own_school(client, admin_headers, other_school):
    res = client.get(
        "/api/timetable/slots",
        params={"academic_term_id": str(other_school.term().id)},
        headers=admin_headers,
    )

    assert res.status_code == 403


def test_teacher_sees_only_own_slots(client, admin_headers, school, term, catalog):
    teacher_user = school.user("t2user", role="TEACHER")
    catalog["t2"].user_id = teacher_user.id
    school.save(catalog["t2"])
    _create(client, admin_headers, _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"]))
    _create(client, admin_headers, _slot_body(term, catalog["t2"], catalog["c2"], catalog["kis"]))

    res = client.get(
        "/api/timetable/slots",
        params={"academic_term_id": str(term.id), "teacher_id": str(catalog["t1"].id)},
        headers=school.headers(teacher_user),
    )

    assert res.status_code == 200
    rows = res.json()
    assert len(rows) == 1
    assert rows[0]["teacher_id"] == str(catalog["t2"].id)


def test_teacher_without_profile_is_forbidden(client, school, term):
    teacher_user = school.user("nobody", role="TEACHER")

    res = client.get(
        "/api/timetable/slots",
        params={"academic_term_id": str(term.id)},
        headers=school.headers(teacher_user),
    )

    assert res.status_code == 403


def test_teacher_cannot_write_slots(client, school, term, catalog):
    teacher_user = school.user("t1user", role="TEACHER")

    res = _create(
        client,
        school.headers(teacher_user),
        _slot_body(term, catalog["t1"], catalog["c1"], catalog["eng"]),
    )

    assert res.status_code == 403
