from fastapi.testclient import TestClient

from perfhub.main import app
from perfhub.models.org_structure import Department

from tests.helpers import count_audit, create_company, create_user, headers


def test_admin_creates_user_in_own_company(db_session):
    company = create_company(db_session)
    admin = create_user(db_session, "admin@acme.test", company=company, role="admin")
    client = TestClient(app)

    r = client.post(
        "/users",
        json={
            "email": "lead@acme.test",
            "first_name": "Lee",
            "last_name": "Lead",
            "role": "manager",
            "roles": ["employee"],
            "date_of_joining": "2020-02-01",
        },
        headers=headers(admin),
    )
    assert r.status_code == 201
    body = r.json()
    assert body["company_id"] == str(company.id)
    assert body["full_name"] == "Lee Lead"
    assert body["roles"] == ["employee", "manager"]

    r = client.get(f"/users/{body['id']}", headers=headers(admin))
    assert r.status_code == 200

    assert count_audit(db_session, "USER_CREATED") == 1


def test_duplicate_email_is_409(db_session):
    company = create_company(db_session)
    admin = create_user(db_session, "admin@acme.test", company=company, role="admin")
    client = TestClient(app)

    r = client.post("/users", json={"email": "admin@acme.test", "first_name": "Dup"}, headers=headers(admin))
    assert r.status_code == 409


def test_admin_cannot_grant_super_admin(db_session):
    company = create_company(db_session)
    admin = create_user(db_session, "admin@acme.test", company=company, role="admin")
    client = TestClient(app)

    r = client.post(
        "/users",
        json={"email": "x@acme.test", "first_name": "X", "roles": ["super_admin"]},
        headers=headers(admin),
    )
    assert r.status_code == 403


def test_references_must_be_in_same_company(db_session):
    acme = create_company(db_session)
    globex = create_company(db_session, name="Globex", company_url="globex")
    admin = create_user(db_session, "admin@acme.test", company=acme, role="admin")
    dept = Department(company_id=globex.id, code="ENG", description="Globex engineering")
    db_session.add(dept)
    db_session.commit()

    client = TestClient(app)
    r = client.post(
        "/users",
        json={"email": "x@acme.test", "first_name": "X", "department_id": str(dept.id)},
        headers=headers(admin),
    )
    assert r.status_code == 422
    assert r.json()["detail"] == "Department does not belong to this company"


def test_update_manager_and_roles(db_session):
    company = create_company(db_session)
    admin = create_user(db_session, "admin@acme.test", company=company, role="admin")
    boss = create_user(db_session, "boss@acme.test", company=company, role="manager")
    emp = create_user(db_session, "emp@acme.test", company=company)
    client = TestClient(app)

    r = client.patch(
        f"/users/{emp.id}",
        json={"reporting_manager_id": str(boss.id), "roles": ["employee", "hr_manager"]},
        headers=headers(admin),
    )
    assert r.status_code == 200
    body = r.json()
    assert body["reporting_manager_id"] == str(boss.id)
    assert body["roles"] == ["employee", "hr_manager"]

    r = client.patch(f"/users/{emp.id}", json={"reporting_manager_id": str(emp.id)}, headers=headers(admin))
    assert r.status_code == 422


def test_list_users_is_company_scoped(db_session):
    acme = create_company(db_session)
    globex = create_company(db_session, name="Globex", company_url="globex")
    admin = create_user(db_session, "admin@acme.test", company=acme, role="admin")
    create_user(db_session, "emp@acme.test", company=acme)
    create_user(db_session, "emp@globex.test", company=globex)
    root = create_user(db_session, "root@local.test", role="super_admin")
    client = TestClient(app)

    r = client.get("/users", headers=headers(admin))
    assert [u["email"] for u in r.json()] == ["admin@acme.test", "emp@acme.test"]

    r = client.get(f"/users?company_id={globex.id}", headers=headers(root))
    assert [u["email"] for u in r.json()] == ["emp@globex.test"]

    r = client.get("/users?search=globex", headers=headers(admin))
    assert r.json() == []


def test_delete_user(db_session):
    company = create_company(db_session)
    admin = create_user(db_session, "admin@acme.test", company=company, role="admin")
    emp = create_user(db_session, "emp@acme.test", company=company)
    client = TestClient(app)

    r = client.delete(f"/users/{admin.id}", headers=headers(admin))
    assert r.status_code == 409

    r = client.delete(f"/users/{emp.id}", headers=headers(admin))
    assert r.status_code == 204
    assert client.get(f"/users/{emp.id}", headers=headers(admin)).status_code == 404
