from datetime import date

from fastapi.testclient import TestClient

from perfhub.main import app
from perfhub.models.evaluation import Evaluation
from perfhub.services.scheduling import launch

from tests.helpers import (
    count_audit,
    create_appraisal,
    create_calendar,
    create_company,
    create_group,
    create_template,
    create_user,
    headers,
)


def _tenant(db, name, url):
    company = create_company(db, name=name, company_url=url)
    hr = create_user(db, f"hr@{url}.test", company=company, role="hr_manager")
    boss = create_user(db, f"boss@{url}.test", company=company, role="manager", manager=hr)
    emp = create_user(db, f"emp@{url}.test", company=company, manager=boss)
    group = create_group(db, company, [emp])
    template = create_template(db, company)
    return company, hr, group, template


def _calendar_appraisal(db, company, group, template, periods):
    cal, _ = create_calendar(db, company, periods, code=f"QTR-{company.company_url}")
    a = create_appraisal(
        db, company, group, [template], publish_type="as_per_calendar", frequency_calendar_id=cal.id
    )
    launch(db, a, date(2029, 12, 1))
    db.commit()
    return a


def test_task_listing_is_scoped_to_the_company(db_session):
    acme, acme_hr, acme_group, acme_template = _tenant(db_session, "Acme Corp", "acme")
    globex, globex_hr, globex_group, globex_template = _tenant(db_session, "Globex", "globex")
    root = create_user(db_session, "root@perfhub.test", role="super_admin")
    acme_appraisal = _calendar_appraisal(
        db_session,
        acme,
        acme_group,
        acme_template,
        [
            ("Q1 2030", date(2030, 1, 1), date(2030, 3, 31)),
            ("Q2 2030", date(2030, 4, 1), date(2030, 6, 30)),
        ],
    )
    _calendar_appraisal(
        db_session, globex, globex_group, globex_template, [("Q1 2030", date(2030, 1, 1), date(2030, 3, 31))]
    )
    client = TestClient(app)

    r = client.get("/scheduled-tasks", headers=headers(acme_hr))
    assert r.status_code == 200
    tasks = r.json()
    assert {t["initiated_appraisal_id"] for t in tasks} == {str(acme_appraisal.id)}
    assert [t["scheduled_date"] for t in tasks] == ["2030-03-31", "2030-06-30"]

    r = client.get("/scheduled-tasks", params={"due_on_or_before": "2030-04-01"}, headers=headers(acme_hr))
    assert len(r.json()) == 1

    r = client.get("/scheduled-tasks", params={"include_pagination": True}, headers=headers(root))
    assert r.json()["pagination"]["total"] == 3

    assert client.get("/scheduled-tasks", headers=headers("emp@acme.test")).status_code == 403


def test_tenant_run_only_touches_its_own_company(db_session):
    acme, acme_hr, acme_group, acme_template = _tenant(db_session, "Acme Corp", "acme")
    globex, globex_hr, _, _ = _tenant(db_session, "Globex", "globex")
    a = create_appraisal(db_session, acme, acme_group, [acme_template], days_to_close=30)
    launch(db_session, a, date(2020, 1, 1))
    db_session.commit()
    client = TestClient(app)

    r = client.post("/scheduled-tasks/run", headers=headers(globex_hr))
    assert r.status_code == 200
    assert r.json()["evaluations_closed"] == 0
    assert r.json()["appraisals_closed"] == 0

    db_session.refresh(a)
    assert a.status == "active"
    assert [ev.status for ev in db_session.query(Evaluation).all()] == ["not_started"]

    r = client.post("/scheduled-tasks/run", headers=headers(acme_hr))
    assert r.json()["evaluations_closed"] == 1
    assert r.json()["appraisals_closed"] == 1

    db_session.refresh(a)
    assert a.status == "closed"
    assert count_audit(db_session, "SCHEDULER_RUN") == 2


def test_tenant_run_cannot_jump_ahead(db_session):
    acme, acme_hr, acme_group, acme_template = _tenant(db_session, "Acme Corp", "acme")
    client = TestClient(app)

    r = client.post("/scheduled-tasks/run", params={"run_date": "2099-01-01"}, headers=headers(acme_hr))
    assert r.status_code == 422
    assert r.json()["detail"] == "run_date cannot be in the future"

    r = client.post("/scheduled-tasks/run", params={"run_date": "2020-01-01"}, headers=headers(acme_hr))
    assert r.status_code == 200
    assert r.json()["run_date"] == "2020-01-01"


def test_super_admin_run_covers_every_company(db_session):
    acme, _, acme_group, acme_template = _tenant(db_session, "Acme Corp", "acme")
    globex, _, globex_group, globex_template = _tenant(db_session, "Globex", "globex")
    root = create_user(db_session, "root@perfhub.test", role="super_admin")
    for company, group, template in [(acme, acme_group, acme_template), (globex, globex_group, globex_template)]:
        launch(db_session, create_appraisal(db_session, company, group, [template]), date(2030, 1, 1))
    db_session.commit()
    client = TestClient(app)

    r = client.post("/scheduled-tasks/run", params={"run_date": "2099-01-01"}, headers=headers(root))
    assert r.status_code == 200
    assert r.json()["evaluations_closed"] == 2
    assert r.json()["appraisals_closed"] == 2

    assert client.post("/scheduled-tasks/run", headers=headers("emp@acme.test")).status_code == 403
