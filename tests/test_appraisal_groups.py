from fastapi.testclient import TestClient

from perfhub.main import app

from tests.helpers import count_audit, create_company, create_user, headers


def test_group_lifecycle(db_session):
    company = create_company(db_session)
    hr = create_user(db_session, "hr@acme.test", company=company, role="hr_manager")
    a = create_user(db_session, "a@acme.test", company=company)
    b = create_user(db_session, "b@acme.test", company=company)
    client = TestClient(app)

    r = client.post(
        "/appraisal-groups",
        json={"name": "Engineering", "member_ids": [str(b.id), str(a.id), str(a.id)]},
        headers=headers(hr),
    )
    assert r.status_code == 201
    group = r.json()
    assert group["member_count"] == 2
    assert [m["email"] for m in group["members"]] == ["a@acme.test", "b@acme.test"]

    c = create_user(db_session, "c@acme.test", company=company)
    r = client.post(
        f"/appraisal-groups/{group['id']}/members",
        json={"user_ids": [str(a.id), str(c.id)]},
        headers=headers(hr),
    )
    assert r.status_code == 200
    assert r.json()["member_count"] == 3

    r = client.delete(f"/appraisal-groups/{group['id']}/members/{b.id}", headers=headers(hr))
    assert r.status_code == 200
    assert [m["email"] for m in r.json()["members"]] == ["a@acme.test", "c@acme.test"]

    r = client.delete(f"/appraisal-groups/{group['id']}/members/{b.id}", headers=headers(hr))
    assert r.status_code == 404

    r = client.get("/appraisal-groups", headers=headers(hr))
    assert r.json()[0]["member_count"] == 2
    assert r.json()[0]["members"] == []

    r = client.patch(f"/appraisal-groups/{group['id']}", json={"status": "inactive"}, headers=headers(hr))
    assert r.json()["status"] == "inactive"

    r = client.delete(f"/appraisal-groups/{group['id']}", headers=headers(hr))
    assert r.status_code == 204

    assert count_audit(db_session, "APPRAISAL_GROUP_MEMBERS_ADDED") == 1
    assert count_audit(db_session, "APPRAISAL_GROUP_MEMBER_REMOVED") == 1


def test_only_hr_manages_groups(db_session):
    company = create_company(db_session)
    admin = create_user(db_session, "admin@acme.test", company=company, role="admin")
    client = TestClient(app)

    r = client.post("/appraisal-groups", json={"name": "Sales"}, headers=headers(admin))
    assert r.status_code == 403
