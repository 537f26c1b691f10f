from datetime import date, timedelta

from fastapi.testclient import TestClient

from perfhub.core.clock import today
from perfhub.main import app
from perfhub.models.evaluation import Evaluation

from tests.helpers import (
    count_audit,
    create_calendar,
    create_company,
    create_group,
    create_template,
    create_user,
    headers,
)


def _org(db):
    company = create_company(db)
    hr = create_user(db, "hr@acme.test", company=company, role="hr_manager")
    boss = create_user(db, "boss@acme.test", company=company, role="manager", roles={"employee"}, manager=hr)
    emp = create_user(db, "emp@acme.test", company=company, manager=boss, date_of_joining=date(2015, 1, 1))
    return company, hr, boss, emp


def _create(client, hr, group, templates, **overrides):
    payload = {
        "appraisal_group_id": str(group.id),
        "appraisal_type": "questionnaire_based",
        "questionnaire_template_ids": [str(t.id) for t in templates],
    }
    payload.update(overrides)
    return client.post("/initiated-appraisals", json=payload, headers=headers(hr))


def test_launch_now_creates_evaluations_and_reports_skips(db_session):
    company, hr, boss, emp = _org(db_session)
    orphan = create_user(db_session, "orphan@acme.test", company=company)
    newbie = create_user(
        db_session, "newbie@acme.test", company=company, manager=boss, date_of_joining=today() - timedelta(days=30)
    )
    excluded = create_user(db_session, "excluded@acme.test", company=company, manager=boss)
    template = create_template(db_session, company)
    group = create_group(db_session, company, [emp, orphan, newbie, excluded])
    client = TestClient(app)

    r = _create(
        client,
        hr,
        group,
        [template],
        days_to_close=14,
        exclude_tenure_less_than_year=True,
        excluded_employee_ids=[str(excluded.id)],
    )
    assert r.status_code == 201
    body = r.json()
    assert body["status"] == "active"
    assert body["launched_at"] is not None
    assert body["launch"]["evaluations_created"] == 1
    assert body["launch"]["emails_sent"] == 0
    skipped = {s["user_id"]: s["reason"] for s in body["launch"]["skipped"]}
    assert skipped == {str(orphan.id): "no_reporting_manager", str(newbie.id): "tenure_less_than_year"}

    ev = db_session.query(Evaluation).one()
    assert ev.employee_id == emp.id
    assert ev.manager_id == boss.id
    assert ev.questionnaire_template_id == template.id
    assert ev.status == "not_started"
    assert ev.initiated_on == today()
    assert ev.due_date == today() + timedelta(days=14)

    assert count_audit(db_session, "APPRAISAL_CREATED") == 1
    assert count_audit(db_session, "APPRAISAL_LAUNCHED") == 1


def test_launch_emails_employees_when_smtp_is_configured(db_session, fake_smtp):
    company, hr, boss, emp = _org(db_session)
    template = create_template(db_session, company)
    group = create_group(db_session, company, [emp])
    client = TestClient(app)

    r = _create(client, hr, group, [template])
    assert r.json()["launch"]["emails_sent"] == 1

    [msg] = fake_smtp.messages()
    assert msg["To"] == "emp@acme.test"
    assert msg["Subject"] == "Your performance appraisal has started"


def test_template_is_chosen_by_applicability(db_session):
    company, hr, boss, emp = _org(db_session)
    for_managers = create_template(db_session, company, name="Managers", applicable_category="manager")
    for_employees = create_template(db_session, company, name="Employees", applicable_category="employee")
    group = create_group(db_session, company, [boss, emp])
    client = TestClient(app)

    r = _create(client, hr, group, [for_managers, for_employees])
    assert r.json()["launch"]["evaluations_created"] == 2

    by_employee = {e.employee_id: e.questionnaire_template_id for e in db_session.query(Evaluation).all()}
    assert by_employee == {boss.id: for_managers.id, emp.id: for_employees.id}


def test_no_applicable_template_is_a_skip(db_session):
    company, hr, boss, emp = _org(db_session)
    only_managers = create_template(db_session, company, name="Managers", applicable_category="manager")
    group = create_group(db_session, company, [emp])
    client = TestClient(app)

    r = _create(client, hr, group, [only_managers])
    assert r.json()["launch"]["skipped"] == [{"user_id": str(emp.id), "reason": "no_applicable_questionnaire"}]


def test_kpi_appraisal_needs_no_template(db_session):
    company, hr, boss, emp = _org(db_session)
    group = create_group(db_session, company, [emp])
    client = TestClient(app)

    r = _create(client, hr, group, [], appraisal_type="kpi_based")
    assert r.status_code == 201
    assert db_session.query(Evaluation).one().questionnaire_template_id is None

    r = _create(client, hr, group, [])
    assert r.status_code == 422


def test_draft_edit_then_launch_once(db_session):
    company, hr, boss, emp = _org(db_session)
    template = create_template(db_session, company)
    group = create_group(db_session, company, [emp])
    client = TestClient(app)

    r = _create(client, hr, group, [template], status="draft")
    assert r.status_code == 201
    draft = r.json()
    assert draft["status"] == "draft"
    assert draft["launch"] is None
    assert db_session.query(Evaluation).count() == 0

    r = client.patch(f"/initiated-appraisals/{draft['id']}", json={"days_to_close": 7}, headers=headers(hr))
    assert r.status_code == 200
    assert r.json()["days_to_close"] == 7

    r = client.post(f"/initiated-appraisals/{draft['id']}/launch", headers=headers(hr))
    assert r.status_code == 200
    assert r.json()["launch"]["evaluations_created"] == 1
    assert db_session.query(Evaluation).one().due_date == today() + timedelta(days=7)

    r = client.post(f"/initiated-appraisals/{draft['id']}/launch", headers=headers(hr))
    assert r.status_code == 409
    assert r.json()["code"] == "CONFLICT"

    r = client.patch(f"/initiated-appraisals/{draft['id']}", json={"days_to_close": 9}, headers=headers(hr))
    assert r.status_code == 409


def test_create_validates_group_and_templates(db_session):
    company, hr, boss, emp = _org(db_session)
    globex = create_company(db_session, name="Globex", company_url="globex")
    foreign = create_template(db_session, globex)
    inactive = create_group(db_session, company, [emp], name="Old", status="inactive")
    group = create_group(db_session, company, [emp])
    client = TestClient(app)

    r = _create(client, hr, inactive, [create_template(db_session, company)])
    assert r.status_code == 422
    assert r.json()["detail"] == "Appraisal group is inactive"

    r = _create(client, hr, group, [foreign])
    assert r.status_code == 422

    r = _create(client, hr, group, [], appraisal_type="okr_based", publish_type="as_per_calendar")
    assert r.status_code == 422


def test_draft_cannot_move_to_an_inactive_group(db_session):
    company, hr, boss, emp = _org(db_session)
    template = create_template(db_session, company)
    group = create_group(db_session, company, [emp])
    inactive = create_group(db_session, company, [emp], name="Old", status="inactive")
    client = TestClient(app)

    draft = _create(client, hr, group, [template], status="draft").json()

    r = client.patch(
        f"/initiated-appraisals/{draft['id']}",
        json={"appraisal_group_id": str(inactive.id)},
        headers=headers(hr),
    )
    assert r.status_code == 422
    assert r.json()["detail"] == "Appraisal group is inactive"

    r = client.get(f"/initiated-appraisals/{draft['id']}", headers=headers(hr))
    assert r.json()["appraisal_group_id"] == str(group.id)


def test_calendar_appraisal_schedules_one_task_per_period(db_session):
    company, hr, boss, emp = _org(db_session)
    template = create_template(db_session, company)
    group = create_group(db_session, company, [emp])
    cal, (q1, q2) = create_calendar(
        db_session,
        company,
        [
            ("Q1 2030", date(2030, 1, 1), date(2030, 3, 31)),
            ("Q2 2030", date(2030, 4, 1), date(2030, 6, 30)),
        ],
    )
    client = TestClient(app)

    r = _create(
        client,
        hr,
        group,
        [template],
        publish_type="as_per_calendar",
        frequency_calendar_id=str(cal.id),
        days_to_initiate=10,
        days_to_close=20,
        number_of_reminders=3,
        detail_timings=[{"frequency_calendar_detail_id": str(q2.id), "days_to_initiate": 0}],
    )
    assert r.status_code == 201
    appraisal = r.json()
    assert appraisal["launch"]["tasks_scheduled"] == 2
    assert appraisal["launch"]["evaluations_created"] == 0
    assert len(appraisal["detail_timings"]) == 1

    r = client.get(f"/initiated-appraisals/{appraisal['id']}/tasks", headers=headers(hr))
    tasks = r.json()
    assert [(t["frequency_calendar_detail_id"], t["scheduled_date"]) for t in tasks] == [
        (str(q1.id), "2030-03-21"),
        (str(q2.id), "2030-06-30"),
    ]
    assert {t["status"] for t in tasks} == {"pending"}

    # first period runs on its initiate day
    r = client.post("/scheduled-tasks/run?run_date=2030-03-21", headers=headers(hr))
    assert r.status_code == 200
    assert r.json()["tasks_executed"] == 1
    assert r.json()["evaluations_created"] == 1

    ev = db_session.query(Evaluation).one()
    assert ev.frequency_calendar_detail_id == q1.id
    assert (ev.initiated_on, ev.due_date) == (date(2030, 3, 21), date(2030, 4, 10))

    r = client.get(f"/initiated-appraisals/{appraisal['id']}/progress", headers=headers(hr))
    progress = r.json()
    assert progress["total_evaluations"] == 1
    assert progress["evaluations_by_status"] == {"not_started": 1}
    assert progress["pending_tasks"] == 1
    assert progress["completion_rate"] == 0.0


def test_detail_timings_must_match_calendar(db_session):
    company, hr, boss, emp = _org(db_session)
    template = create_template(db_session, company)
    group = create_group(db_session, company, [emp])
    cal, (q1,) = create_calendar(db_session, company, [("Q1 2030", date(2030, 1, 1), date(2030, 3, 31))])
    _, (other,) = create_calendar(
        db_session, company, [("H1 2030", date(2030, 1, 1), date(2030, 6, 30))], code="HALF-2030"
    )
    client = TestClient(app)

    r = _create(
        client,
        hr,
        group,
        [template],
        status="draft",
        publish_type="as_per_calendar",
        frequency_calendar_id=str(cal.id),
    )
    draft_id = r.json()["id"]

    r = client.put(
        f"/initiated-appraisals/{draft_id}/detail-timings",
        json=[{"frequency_calendar_detail_id": str(other.id), "days_to_initiate": 5}],
        headers=headers(hr),
    )
    assert r.status_code == 422

    r = client.put(
        f"/initiated-appraisals/{draft_id}/detail-timings",
        json=[{"frequency_calendar_detail_id": str(q1.id), "days_to_initiate": 5, "days_to_close": 10}],
        headers=headers(hr),
    )
    assert r.status_code == 200
    assert r.json()["detail_timings"] == [
        {
            "frequency_calendar_detail_id": str(q1.id),
            "days_to_initiate": 5,
            "days_to_close": 10,
            "number_of_reminders": 3,
        }
    ]


def test_cancel_cancels_pending_tasks(db_session):
    company, hr, boss, emp = _org(db_session)
    template = create_template(db_session, company)
    group = create_group(db_session, company, [emp])
    cal, _ = create_calendar(db_session, company, [("Q1 2030", date(2030, 1, 1), date(2030, 3, 31))])
    client = TestClient(app)

    appraisal = _create(
        client, hr, group, [template], publish_type="as_per_calendar", frequency_calendar_id=str(cal.id)
    ).json()

    r = client.post(f"/initiated-appraisals/{appraisal['id']}/cancel", headers=headers(hr))
    assert r.status_code == 200
    assert r.json()["status"] == "cancelled"

    r = client.get(f"/initiated-appraisals/{appraisal['id']}/tasks", headers=headers(hr))
    assert [t["status"] for t in r.json()] == ["cancelled"]

    r = client.post(f"/initiated-appraisals/{appraisal['id']}/cancel", headers=headers(hr))
    assert r.status_code == 409

    r = client.post(f"/initiated-appraisals/{appraisal['id']}/close", headers=headers(hr))
    assert r.status_code == 409

    # nothing runs for a cancelled appraisal
    r = client.post("/scheduled-tasks/run?run_date=2030-12-31", headers=headers(hr))
    assert r.json()["tasks_executed"] == 0


def test_close_active_appraisal(db_session):
    company, hr, boss, emp = _org(db_session)
    template = create_template(db_session, company)
    group = create_group(db_session, company, [emp])
    client = TestClient(app)

    appraisal = _create(client, hr, group, [template]).json()
    r = client.post(f"/initiated-appraisals/{appraisal['id']}/close", headers=headers(hr))
    assert r.status_code == 200
    assert r.json()["status"] == "closed"
    assert r.json()["closed_at"] is not None


def test_manual_reminder(db_session, fake_smtp):
    company, hr, boss, emp = _org(db_session)
    template = create_template(db_session, company)
    group = create_group(db_session, company, [emp])
    client = TestClient(app)

    appraisal = _create(client, hr, group, [template]).json()
    fake_smtp.connections.clear()

    r = client.post(
        f"/initiated-appraisals/{appraisal['id']}/send-reminder",
        json={"employee_id": str(emp.id)},
        headers=headers(hr),
    )
    assert r.status_code == 200
    assert r.json() == {"sent": True, "skipped": False, "error": None}

    [msg] = fake_smtp.messages()
    assert msg["To"] == "emp@acme.test"
    assert msg["Subject"].startswith("Reminder: appraisal due on")

    ev = db_session.query(Evaluation).one()
    assert ev.last_reminder_at is not None
    assert ev.reminders_sent == 0

    r = client.post(
        f"/initiated-appraisals/{appraisal['id']}/send-reminder",
        json={"employee_id": str(boss.id)},
        headers=headers(hr),
    )
    assert r.status_code == 404
    assert r.json()["detail"] == "No open evaluation for this employee"


def test_list_appraisals_filters_by_status(db_session):
    company, hr, boss, emp = _org(db_session)
    template = create_template(db_session, company)
    group = create_group(db_session, company, [emp])
    client = TestClient(app)

    _create(client, hr, group, [template], status="draft")
    _create(client, hr, group, [template], appraisal_type="kpi_based")

    r = client.get("/initiated-appraisals?status=draft", headers=headers(hr))
    assert [a["status"] for a in r.json()] == ["draft"]

    r = client.get("/initiated-appraisals?include_pagination=true", headers=headers(hr))
    assert r.json()["pagination"]["total"] == 2
