from datetime import date

from fastapi.testclient import TestClient

from perfhub.main import app

from tests.helpers import create_calendar, create_company, create_template, create_user, headers

QUESTIONS = [
    {"id": "q1", "text": "Delivery", "type": "rating", "required": True},
    {"id": "q2", "text": "Focus area", "type": "select", "options": ["quality", "speed"]},
]


def test_hr_creates_company_template(db_session):
    company = create_company(db_session)
    hr = create_user(db_session, "hr@acme.test", company=company, role="hr_manager")
    client = TestClient(app)

    r = client.post(
        "/questionnaire-templates",
        json={"name": "Q review", "questions": QUESTIONS, "year": 2030, "applicable_category": "employee"},
        headers=headers(hr),
    )
    assert r.status_code == 201
    body = r.json()
    assert body["company_id"] == str(company.id)
    assert [q["id"] for q in body["questions"]] == ["q1", "q2"]
    assert body["questions"][1]["options"] == ["quality", "speed"]

    r = client.patch(f"/questionnaire-templates/{body['id']}", json={"status": "inactive"}, headers=headers(hr))
    assert r.json()["status"] == "inactive"


def test_question_definitions_are_validated(db_session):
    company = create_company(db_session)
    hr = create_user(db_session, "hr@acme.test", company=company, role="hr_manager")
    client = TestClient(app)

    dup = [{"id": "q1", "text": "A"}, {"id": "q1", "text": "B"}]
    r = client.post("/questionnaire-templates", json={"name": "Dup", "questions": dup}, headers=headers(hr))
    assert r.status_code == 422

    no_options = [{"id": "q1", "text": "Pick", "type": "select"}]
    r = client.post("/questionnaire-templates", json={"name": "Sel", "questions": no_options}, headers=headers(hr))
    assert r.status_code == 422

    bad_range = [{"id": "q1", "text": "Score", "type": "number", "min": 10, "max": 1}]
    r = client.post("/questionnaire-templates", json={"name": "Num", "questions": bad_range}, headers=headers(hr))
    assert r.status_code == 422


def test_global_templates_are_shared_but_read_only(db_session):
    acme = create_company(db_session)
    globex = create_company(db_session, name="Globex", company_url="globex")
    root = create_user(db_session, "root@local.test", role="super_admin")
    acme_hr = create_user(db_session, "hr@acme.test", company=acme, role="hr_manager")
    globex_hr = create_user(db_session, "hr@globex.test", company=globex, role="hr_manager")
    create_template(db_session, globex, name="Globex only")
    client = TestClient(app)

    r = client.post(
        "/questionnaire-templates",
        json={"name": "Platform default", "questions": QUESTIONS},
        headers=headers(root),
    )
    assert r.status_code == 201
    global_id = r.json()["id"]
    assert r.json()["company_id"] is None

    r = client.get("/questionnaire-templates", headers=headers(acme_hr))
    assert [t["name"] for t in r.json()] == ["Platform default"]

    r = client.get("/questionnaire-templates", headers=headers(globex_hr))
    assert [t["name"] for t in r.json()] == ["Globex only", "Platform default"]

    r = client.get("/questionnaire-templates?include_global=false", headers=headers(globex_hr))
    assert [t["name"] for t in r.json()] == ["Globex only"]

    r = client.patch(f"/questionnaire-templates/{global_id}", json={"name": "Mine"}, headers=headers(acme_hr))
    assert r.status_code == 403

    r = client.delete(f"/questionnaire-templates/{global_id}", headers=headers(acme_hr))
    assert r.status_code == 403


def test_publish_questionnaire(db_session):
    company = create_company(db_session)
    hr = create_user(db_session, "hr@acme.test", company=company, role="hr_manager")
    template = create_template(db_session, company)
    cal, _ = create_calendar(db_session, company, [("Q1 2030", date(2030, 1, 1), date(2030, 3, 31))])
    client = TestClient(app)

    r = client.post(
        "/publish-questionnaires",
        json={
            "code": "PUB-1",
            "display_name": "Q1 questionnaire",
            "template_id": str(template.id),
            "publish_type": "as_per_calendar",
        },
        headers=headers(hr),
    )
    assert r.status_code == 422

    r = client.post(
        "/publish-questionnaires",
        json={
            "code": "PUB-1",
            "display_name": "Q1 questionnaire",
            "template_id": str(template.id),
            "publish_type": "as_per_calendar",
            "frequency_calendar_id": str(cal.id),
        },
        headers=headers(hr),
    )
    assert r.status_code == 201
    assert r.json()["frequency_calendar_id"] == str(cal.id)

    r = client.get("/publish-questionnaires?publish_type=as_per_calendar", headers=headers(hr))
    assert [p["code"] for p in r.json()] == ["PUB-1"]


def test_publish_rejects_foreign_template(db_session):
    acme = create_company(db_session)
    globex = create_company(db_session, name="Globex", company_url="globex")
    hr = create_user(db_session, "hr@acme.test", company=acme, role="hr_manager")
    foreign = create_template(db_session, globex)
    client = TestClient(app)

    r = client.post(
        "/publish-questionnaires",
        json={"code": "PUB-2", "display_name": "Nope", "template_id": str(foreign.id)},
        headers=headers(hr),
    )
    assert r.status_code == 404
