import smtplib

from fastapi.testclient import TestClient

from perfhub.main import app
from perfhub.core.config import settings
from perfhub.models.notification import EmailTemplate
from perfhub.services.email import (
    DEFAULT_TEMPLATES,
    get_template,
    render,
    send_email,
    send_templated_email,
)

from tests.helpers import count_audit, create_company, create_user, headers


def _template(db, company, template_type="test", subject="Custom subject"):
    t = EmailTemplate(
        company_id=company.id if company else None,
        name=subject,
        subject=subject,
        body="<p>{{recipient_name}}</p>",
        template_type=template_type,
    )
    db.add(t)
    db.commit()
    return t


def test_render_fills_known_placeholders_and_blanks_the_rest():
    out = render("Hi {{ name }}, due {{due}}.{{missing}}", {"name": "Ana", "due": "2030-01-01"})
    assert out == "Hi Ana, due 2030-01-01."


def test_template_precedence(db_session):
    acme = create_company(db_session)
    globex = create_company(db_session, name="Globex", company_url="globex")

    assert get_template(db_session, acme.id, "test") == DEFAULT_TEMPLATES["test"]

    _template(db_session, None, subject="Platform subject")
    assert get_template(db_session, acme.id, "test")[0] == "Platform subject"

    _template(db_session, acme, subject="Acme subject")
    assert get_template(db_session, acme.id, "test")[0] == "Acme subject"
    assert get_template(db_session, globex.id, "test")[0] == "Platform subject"
    assert get_template(db_session, None, "test")[0] == "Platform subject"


def test_send_is_skipped_without_smtp(db_session):
    result = send_email(db_session, to="ana@acme.test", subject="Hello", html="<p>Hi</p>")
    assert result.sent is False
    assert result.skipped is True
    assert result.error is None
    assert result.recipients == ["ana@acme.test"]

    result = send_email(db_session, to=[], subject="Hello", html="<p>Hi</p>")
    assert result.skipped is True
    assert result.error == "No recipients"


def test_send_through_env_smtp(db_session, fake_smtp):
    result = send_templated_email(
        db_session,
        company_id=None,
        template_type="appraisal_reminder",
        to="ana@acme.test",
        context={"recipient_name": "Ana", "employee_name": "Ana", "status": "in_progress", "due_date": "2030-01-21"},
    )
    assert result.sent is True

    [conn] = fake_smtp.connections
    assert (conn.host, conn.port) == ("smtp.test", 587)
    assert conn.logins == [("mailer", "secret")]

    [msg] = fake_smtp.messages()
    assert msg["Subject"] == "Reminder: appraisal due on 2030-01-21"
    html = msg.get_body(preferencelist=("html",)).get_content()
    assert "Hello Ana" in html
    assert settings.APP_BASE_URL in html
    text = msg.get_body(preferencelist=("plain",)).get_content()
    assert "<p>" not in text


def test_implicit_tls_port_uses_smtp_ssl(db_session, fake_smtp, monkeypatch):
    monkeypatch.setattr(smtplib, "SMTP_SSL", fake_smtp)
    monkeypatch.setattr(settings, "SMTP_PORT", 465)

    assert send_email(db_session, to="ana@acme.test", subject="Hi", html="<p>Hi</p>").sent is True
    assert fake_smtp.connections[0].port == 465


def test_delivery_failure_is_reported_not_raised(db_session, fake_smtp):
    fake_smtp.fail_with = smtplib.SMTPServerDisconnected("connection dropped")

    result = send_email(db_session, to="ana@acme.test", subject="Hi", html="<p>Hi</p>")
    assert result.sent is False
    assert result.skipped is False
    assert result.error == "connection dropped"


def test_email_config_crud_and_test_send(db_session, fake_smtp):
    root = create_user(db_session, "root@perfhub.test", role="super_admin")
    acme = create_company(db_session)
    admin = create_user(db_session, "admin@acme.test", company=acme, role="admin")
    client = TestClient(app)

    assert client.get("/email-config", headers=headers(admin)).status_code == 403

    r = client.post(
        "/email-config",
        json={
            "smtp_host": "mail.perfhub.test",
            "smtp_port": 2525,
            "smtp_username": "ops",
            "smtp_password": "hunter2",
            "from_email": "noreply@perfhub.test",
        },
        headers=headers(root),
    )
    assert r.status_code == 201
    config = r.json()
    assert "smtp_password" not in config
    assert config["from_name"] == "Performance Hub"

    # the stored row wins over the SMTP_* settings
    r = client.post("/email-config/test", json={"to_email": "ops@perfhub.test"}, headers=headers(root))
    assert r.status_code == 200
    assert r.json() == {"sent": True, "skipped": False, "error": None}
    conn = fake_smtp.connections[-1]
    assert (conn.host, conn.port) == ("mail.perfhub.test", 2525)
    assert conn.logins == [("ops", "hunter2")]
    assert fake_smtp.messages()[-1]["Subject"] == "Performance Hub test email (SMTP config check)"

    r = client.patch(f"/email-config/{config['id']}", json={"is_active": False}, headers=headers(root))
    assert r.status_code == 200
    assert r.json()["is_active"] is False

    # inactive row: back to the environment settings
    client.post("/email-config/test", json={"to_email": "ops@perfhub.test"}, headers=headers(root))
    assert fake_smtp.connections[-1].host == "smtp.test"

    r = client.delete(f"/email-config/{config['id']}", headers=headers(root))
    assert r.status_code == 204
    assert client.get("/email-config", headers=headers(root)).json() == []

    r = client.delete(f"/email-config/{config['id']}", headers=headers(root))
    assert r.status_code == 404

    assert count_audit(db_session, "EMAIL_CONFIG_CREATED") == 1
    assert count_audit(db_session, "EMAIL_TEST_SENT") == 2


def test_test_send_is_skipped_when_nothing_is_configured(db_session):
    root = create_user(db_session, "root@perfhub.test", role="super_admin")
    client = TestClient(app)

    r = client.post("/email-config/test", json={"to_email": "ops@perfhub.test"}, headers=headers(root))
    assert r.json() == {"sent": False, "skipped": True, "error": None}


def test_email_templates_api(db_session):
    root = create_user(db_session, "root@perfhub.test", role="super_admin")
    acme = create_company(db_session)
    admin = create_user(db_session, "admin@acme.test", company=acme, role="admin")
    hr = create_user(db_session, "hr@acme.test", company=acme, role="hr_manager")
    client = TestClient(app)

    r = client.get("/email-templates/defaults", headers=headers(admin))
    assert {t["template_type"] for t in r.json()} == set(DEFAULT_TEMPLATES)

    payload = {
        "name": "Acme kickoff",
        "subject": "{{company_name}} appraisal kickoff",
        "body": "<p>Hello {{employee_name}}</p>",
        "template_type": "appraisal_initiated",
    }
    r = client.post("/email-templates", json=payload, headers=headers(admin))
    assert r.status_code == 201
    own = r.json()
    assert own["company_id"] == str(acme.id)

    r = client.post("/email-templates", json=payload, headers=headers(admin))
    assert r.status_code == 409

    r = client.post("/email-templates", json={**payload, "name": "Platform kickoff"}, headers=headers(root))
    assert r.status_code == 201
    platform = r.json()
    assert platform["company_id"] is None

    r = client.get("/email-templates", headers=headers(admin))
    assert sorted(t["name"] for t in r.json()) == ["Acme kickoff", "Platform kickoff"]

    # admins cannot touch platform templates
    r = client.patch(f"/email-templates/{platform['id']}", json={"subject": "x"}, headers=headers(admin))
    assert r.status_code == 404
    r = client.delete(f"/email-templates/{platform['id']}", headers=headers(admin))
    assert r.status_code == 404

    r = client.patch(f"/email-templates/{own['id']}", json={"subject": "Kickoff at {{company_name}}"}, headers=headers(admin))
    assert r.status_code == 200
    assert get_template(db_session, acme.id, "appraisal_initiated")[0] == "Kickoff at {{company_name}}"

    assert client.get("/email-templates", headers=headers(hr)).status_code == 403

    r = client.delete(f"/email-templates/{own['id']}", headers=headers(admin))
    assert r.status_code == 204
    assert get_template(db_session, acme.id, "appraisal_initiated")[0] == "{{company_name}} appraisal kickoff"

    r = client.post("/email-templates", json={**payload, "template_type": "welcome"}, headers=headers(admin))
    assert r.status_code == 422
