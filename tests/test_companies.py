from fastapi.testclient import TestClient

from perfhub.main import app

from tests.helpers import count_audit, create_company, create_user, headers


def test_super_admin_manages_companies(db_session):
    root = create_user(db_session, "root@local.test", role="super_admin")
    client = TestClient(app)

    r = client.post(
        "/companies",
        json={"name": "Initech", "company_url": "initech", "email": "hello@initech.test"},
        headers=headers(root),
    )
    assert r.status_code == 201
    company = r.json()
    assert company["status"] == "active"

    r = client.post("/companies", json={"name": "Other", "company_url": "initech"}, headers=headers(root))
    assert r.status_code == 409

    r = client.patch(f"/companies/{company['id']}", json={"gst_number": "GST-1"}, headers=headers(root))
    assert r.json()["gst_number"] == "GST-1"

    r = client.get("/companies?search=init", headers=headers(root))
    assert [c["name"] for c in r.json()] == ["Initech"]

    assert count_audit(db_session, "COMPANY_CREATED") == 1
    assert count_audit(db_session, "COMPANY_UPDATED") == 1


def test_company_admin_cannot_list_companies(db_session):
    company = create_company(db_session)
    admin = create_user(db_session, "admin@acme.test", company=company, role="admin")
    client = TestClient(app)

    assert client.get("/companies", headers=headers(admin)).status_code == 403


def test_lookup_by_url_is_public_and_active_only(db_session):
    create_company(db_session)
    create_company(db_session, name="Dormant", company_url="dormant", status="inactive")
    client = TestClient(app)

    r = client.get("/companies/by-url/acme")
    assert r.status_code == 200
    assert r.json()["name"] == "Acme Corp"

    assert client.get("/companies/by-url/dormant").status_code == 404
    assert client.get("/companies/by-url/missing").status_code == 404


def test_delete_company(db_session):
    root = create_user(db_session, "root@local.test", role="super_admin")
    company = create_company(db_session)
    client = TestClient(app)

    r = client.delete(f"/companies/{company.id}", headers=headers(root))
    assert r.status_code == 204
    assert client.get(f"/companies/{company.id}", headers=headers(root)).status_code == 404
