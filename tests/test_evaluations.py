from fastapi.testclient import TestClient

from perfhub.core.clock import today
from perfhub.main import app
from perfhub.models.company import Company
from perfhub.models.evaluation import Evaluation
from perfhub.services.scheduling import launch

from tests.helpers import (
    count_audit,
    create_appraisal,
    create_company,
    create_group,
    create_template,
    create_user,
    headers,
)


def _launched(db, appraisal_type="questionnaire_based"):
    company = create_company(db)
    hr = create_user(db, "hr@acme.test", company=company, role="hr_manager")
    boss = create_user(db, "boss@acme.test", company=company, role="manager", manager=hr)
    emp = create_user(db, "emp@acme.test", company=company, manager=boss)
    group = create_group(db, company, [emp])
    templates = [create_template(db, company)] if appraisal_type == "questionnaire_based" else []
    a = create_appraisal(db, company, group, templates, appraisal_type=appraisal_type)
    launch(db, a, today())
    db.commit()
    ev = db.query(Evaluation).one()
    return hr, boss, emp, a, ev


def _url(ev, suffix=""):
    return f"/evaluations/{ev.id}{suffix}"


def test_full_review_workflow(db_session):
    hr, boss, emp, a, ev = _launched(db_session)
    client = TestClient(app)

    r = client.get(_url(ev), headers=headers(emp))
    assert r.status_code == 200
    assert r.headers["ETag"] == '"1"'
    body = r.json()
    assert body["status"] == "not_started"
    assert body["version"] == 1
    assert [q["id"] for q in body["questions"]] == ["q1", "q2"]

    # (Employee) save draft
    r = client.put(
        _url(ev, "/self"),
        json={"answers": {"q1": 4}},
        headers={**headers(emp), "If-Match": '"1"'},
    )
    assert r.status_code == 200
    assert r.json()["status"] == "in_progress"
    assert r.json()["version"] == 2
    assert r.headers["ETag"] == '"2"'

    # (Employee) submit; If-Match is optional
    r = client.post(_url(ev, "/self/submit"), json={"answers": {"q2": "Shipped the billing rewrite"}}, headers=headers(emp))
    assert r.status_code == 200
    assert r.json()["status"] == "submitted"
    assert r.json()["self_evaluation_data"] == {"q1": 4, "q2": "Shipped the billing rewrite"}
    assert r.json()["self_evaluation_submitted_at"] is not None

    r = client.put(_url(ev, "/self"), json={"answers": {"q1": 5}}, headers=headers(emp))
    assert r.status_code == 409

    # (Manager) save, then complete with a rating
    r = client.put(_url(ev, "/manager"), json={"answers": {"q1": 3}}, headers=headers(boss))
    assert r.status_code == 200
    assert r.json()["status"] == "submitted"

    r = client.post(_url(ev, "/manager/submit"), json={"answers": {}, "overall_rating": 3.5}, headers=headers(boss))
    assert r.status_code == 200
    assert r.json()["status"] == "completed"
    assert r.json()["manager_evaluation_data"] == {"q1": 3}
    assert r.json()["overall_rating"] == 3.5

    # (Manager) meeting; no calendar or SMTP configured
    r = client.post(
        _url(ev, "/meeting"),
        json={"scheduled_at": "2030-05-01T10:00:00Z", "location": "Room 4", "notes": "Bring goals for next year"},
        headers=headers(boss),
    )
    assert r.status_code == 200
    assert r.json()["provider"] == "ics"
    assert r.json()["event_id"] is None
    assert r.json()["email_sent"] is False
    assert r.json()["evaluation"]["meeting_location"] == "Room 4"

    r = client.post(
        _url(ev, "/meeting/complete"),
        json={"notes": "Strong year, ready for a lead role", "show_notes_to_employee": False},
        headers=headers(boss),
    )
    assert r.status_code == 200
    assert r.json()["meeting_completed_at"] is not None

    r = client.post(_url(ev, "/meeting/complete"), json={}, headers=headers(boss))
    assert r.status_code == 409

    # private notes stay with the manager
    assert client.get(_url(ev), headers=headers(emp)).json()["meeting_notes"] is None
    assert client.get(_url(ev), headers=headers(boss)).json()["meeting_notes"] == "Strong year, ready for a lead role"

    # (HR) finalize
    r = client.post(_url(ev, "/finalize"), headers=headers(hr))
    assert r.status_code == 200
    assert r.json()["status"] == "finalized"
    assert r.json()["finalized_at"] is not None

    r = client.post(_url(ev, "/finalize"), headers=headers(hr))
    assert r.status_code == 409

    for action in (
        "SELF_EVALUATION_SAVED",
        "SELF_EVALUATION_SUBMITTED",
        "MANAGER_EVALUATION_SAVED",
        "MANAGER_EVALUATION_SUBMITTED",
        "MEETING_SCHEDULED",
        "MEETING_COMPLETED",
        "EVALUATION_FINALIZED",
    ):
        assert count_audit(db_session, action, ev.id) == 1, action


def test_shared_meeting_notes_are_visible_to_employee(db_session):
    hr, boss, emp, a, ev = _launched(db_session)
    client = TestClient(app)

    client.post(_url(ev, "/self/submit"), json={"answers": {"q1": 4}}, headers=headers(emp))
    client.post(_url(ev, "/meeting"), json={"scheduled_at": "2030-05-01T10:00:00Z"}, headers=headers(boss))
    client.post(
        _url(ev, "/meeting/complete"),
        json={"notes": "Keep mentoring", "show_notes_to_employee": True},
        headers=headers(boss),
    )

    r = client.get(_url(ev), headers=headers(emp))
    assert r.json()["meeting_notes"] == "Keep mentoring"
    assert r.json()["show_notes_to_employee"] is True


def test_meeting_invitation_carries_ics_attachment(db_session, fake_smtp):
    hr, boss, emp, a, ev = _launched(db_session)
    client = TestClient(app)
    client.post(_url(ev, "/self/submit"), json={"answers": {"q1": 4}}, headers=headers(emp))

    r = client.post(
        _url(ev, "/meeting"),
        json={"scheduled_at": "2030-05-01T10:00:00Z", "duration_minutes": 45},
        headers=headers(boss),
    )
    assert r.json()["email_sent"] is True

    msg = fake_smtp.messages()[-1]
    assert msg["To"] == "emp@acme.test, boss@acme.test"
    assert msg["Subject"] == "Performance review meeting on 2030-05-01 10:00 UTC"
    [attachment] = list(msg.iter_attachments())
    assert attachment.get_filename() == "performance-review.ics"
    assert f"UID:{ev.id}@perfhub" in attachment.get_content()


def test_meeting_time_with_offset_is_shown_in_utc(db_session, fake_smtp):
    hr, boss, emp, a, ev = _launched(db_session)
    client = TestClient(app)
    client.post(_url(ev, "/self/submit"), json={"answers": {"q1": 4}}, headers=headers(emp))

    client.post(_url(ev, "/meeting"), json={"scheduled_at": "2030-01-01T10:00:00+05:30"}, headers=headers(boss))

    msg = fake_smtp.messages()[-1]
    assert msg["Subject"] == "Performance review meeting on 2030-01-01 04:30 UTC"
    [attachment] = list(msg.iter_attachments())
    assert "DTSTART:20300101T043000Z" in attachment.get_content()


def test_stale_if_match_is_rejected(db_session):
    hr, boss, emp, a, ev = _launched(db_session)
    client = TestClient(app)

    r = client.put(_url(ev, "/self"), json={"answers": {"q1": 2}}, headers={**headers(emp), "If-Match": "1"})
    assert r.status_code == 200

    r = client.put(_url(ev, "/self"), json={"answers": {"q1": 3}}, headers={**headers(emp), "If-Match": "1"})
    assert r.status_code == 409
    assert r.json()["detail"] == {"message": "Stale version", "expected": 2, "got": 1}

    r = client.put(_url(ev, "/self"), json={"answers": {"q1": 3}}, headers={**headers(emp), "If-Match": "abc"})
    assert r.status_code == 400


def test_draft_rejects_unknown_key_and_bad_type(db_session):
    hr, boss, emp, a, ev = _launched(db_session)
    client = TestClient(app)

    r = client.put(_url(ev, "/self"), json={"answers": {"q9": "x", "q1": "four"}}, headers=headers(emp))
    assert r.status_code == 400
    detail = r.json()["detail"]
    assert detail["message"] == "Draft validation failed"
    assert {(e["field"], e["code"]) for e in detail["errors"]} == {("q9", "unknown_key"), ("q1", "type")}

    db_session.refresh(ev)
    assert ev.status == "not_started"
    assert ev.self_evaluation_data is None


def test_submit_enforces_questionnaire_rules(db_session):
    hr, boss, emp, a, ev = _launched(db_session)
    client = TestClient(app)

    r = client.post(_url(ev, "/self/submit"), json={"answers": {"q2": "only text"}}, headers=headers(emp))
    assert r.status_code == 400
    assert r.json()["detail"]["message"] == "Submit validation failed"
    assert r.json()["detail"]["errors"] == [{"field": "q1", "code": "required", "message": "Required"}]

    r = client.post(_url(ev, "/self/submit"), json={"answers": {"q1": 7}}, headers=headers(emp))
    assert r.status_code == 400
    assert r.json()["detail"]["errors"][0]["code"] == "max"

    r = client.post(_url(ev, "/self/submit"), json={"answers": {"q1": 5}}, headers=headers(emp))
    assert r.status_code == 200


def test_role_and_state_guards(db_session):
    hr, boss, emp, a, ev = _launched(db_session)
    client = TestClient(app)

    # only the employee edits the self evaluation
    r = client.put(_url(ev, "/self"), json={"answers": {"q1": 3}}, headers=headers(boss))
    assert r.status_code == 403

    # the manager cannot act before the self evaluation is submitted
    r = client.post(_url(ev, "/manager/submit"), json={"overall_rating": 4}, headers=headers(boss))
    assert r.status_code == 409

    r = client.post(_url(ev, "/meeting/complete"), json={}, headers=headers(boss))
    assert r.status_code == 409
    assert r.json()["detail"] == "No meeting has been scheduled"

    client.post(_url(ev, "/self/submit"), json={"answers": {"q1": 3}}, headers=headers(emp))

    r = client.put(_url(ev, "/manager"), json={"answers": {"q1": 3}}, headers=headers(emp))
    assert r.status_code == 403

    r = client.post(_url(ev, "/manager/submit"), json={"overall_rating": 6}, headers=headers(boss))
    assert r.status_code == 422

    r = client.post(_url(ev, "/finalize"), headers=headers(boss))
    assert r.status_code == 403

    r = client.post(_url(ev, "/finalize"), headers=headers(hr))
    assert r.status_code == 409


def test_visibility(db_session):
    hr, boss, emp, a, ev = _launched(db_session)
    company = db_session.get(Company, emp.company_id)
    peer = create_user(db_session, "peer@acme.test", company=company, manager=boss)
    admin = create_user(db_session, "admin@acme.test", company=company, role="admin")
    globex = create_company(db_session, name="Globex", company_url="globex")
    outsider = create_user(db_session, "hr@globex.test", company=globex, role="hr_manager")
    client = TestClient(app)

    assert client.get(_url(ev), headers=headers(peer)).status_code == 404
    assert client.get(_url(ev), headers=headers(outsider)).status_code == 404
    assert client.get(_url(ev), headers=headers(hr)).status_code == 200
    assert client.get(_url(ev), headers=headers(admin)).status_code == 200
    assert client.get("/evaluations/not-a-uuid", headers=headers(hr)).status_code == 404

    assert client.get("/evaluations", headers=headers(peer)).json() == []
    assert [e["id"] for e in client.get("/evaluations", headers=headers(boss)).json()] == [str(ev.id)]
    assert len(client.get("/evaluations?include_pagination=true", headers=headers(hr)).json()["items"]) == 1


def test_my_evaluations_by_part(db_session):
    hr, boss, emp, a, ev = _launched(db_session)
    client = TestClient(app)

    r = client.get("/me/evaluations?role=manager", headers=headers(boss))
    assert [e["employee_id"] for e in r.json()] == [str(emp.id)]

    assert client.get("/me/evaluations?role=employee", headers=headers(boss)).json() == []
    assert len(client.get("/me/evaluations", headers=headers(emp)).json()) == 1


def test_closed_appraisal_freezes_edits_but_allows_finalize(db_session):
    hr, boss, emp, a, ev = _launched(db_session)
    client = TestClient(app)
    client.post(_url(ev, "/self/submit"), json={"answers": {"q1": 4}}, headers=headers(emp))
    client.post(_url(ev, "/manager/submit"), json={"answers": {"q1": 4}, "overall_rating": 4}, headers=headers(boss))

    r = client.post(f"/initiated-appraisals/{a.id}/close", headers=headers(hr))
    assert r.status_code == 200

    r = client.post(_url(ev, "/meeting"), json={"scheduled_at": "2030-05-01T10:00:00Z"}, headers=headers(boss))
    assert r.status_code == 409
    assert r.json()["detail"] == "Appraisal is closed"

    r = client.post(_url(ev, "/finalize"), headers=headers(hr))
    assert r.status_code == 200
    assert r.json()["status"] == "finalized"


def test_kpi_evaluation_has_no_questionnaire(db_session):
    hr, boss, emp, a, ev = _launched(db_session, appraisal_type="kpi_based")
    client = TestClient(app)

    r = client.get(_url(ev), headers=headers(emp))
    assert r.json()["questions"] == []
    assert r.json()["appraisal_type"] == "kpi_based"

    r = client.post(
        _url(ev, "/self/submit"), json={"answers": {"revenue_target_met": True}}, headers=headers(emp)
    )
    assert r.status_code == 200
    assert r.json()["self_evaluation_data"] == {"revenue_target_met": True}
