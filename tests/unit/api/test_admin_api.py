"""Tests for /admin endpoints: identity management, analytics, audit log listing and export."""

from httpx import AsyncClient


def _user(email="dana@example.com", role="Manager"):
    return {"name": "Dana Lee", "email": email, "password": "s3cretpass", "role": role, "department": "IT"}


async def test_create_user(async_client: AsyncClient, admin_headers):
    r = await async_client.post("/admin/users", json=_user(), headers=admin_headers)
    assert r.status_code == 201
    data = r.json()["data"]
    assert data["employee_id"] == "EMP-0001"
    assert data["email"] == "dana@example.com"
    assert data["role"] == "Manager"
    assert data["is_active"] is True
    assert "password" not in data
    assert "credential_hash" not in data

    r = await async_client.post("/admin/users", json=_user(email="Dana@Example.com"), headers=admin_headers)
    assert r.status_code == 400
    assert r.json()["message"] == "User with this email already exists"


async def test_user_management_is_admin_only(async_client: AsyncClient, manager_headers):
    r = await async_client.post("/admin/users", json=_user(), headers=manager_headers)
    assert r.status_code == 403
    r = await async_client.get("/admin/users", headers=manager_headers)
    assert r.status_code == 403


async def test_user_lifecycle(async_client: AsyncClient, admin_headers):
    created = (await async_client.post("/admin/users", json=_user(), headers=admin_headers)).json()["data"]
    user_id = created["identity_id"]

    r = await async_client.post(f"/admin/users/{user_id}/deactivate", headers=admin_headers)
    assert r.json()["data"]["is_active"] is False
    r = await async_client.get("/admin/users", params={"is_active": "false"}, headers=admin_headers)
    assert r.json()["data"]["total"] == 1
    r = await async_client.post(f"/admin/users/{user_id}/activate", headers=admin_headers)
    assert r.json()["data"]["is_active"] is True

    r = await async_client.patch(f"/admin/users/{user_id}", json={"department": "Security"}, headers=admin_headers)
    assert r.json()["data"]["department"] == "Security"

    r = await async_client.delete(f"/admin/users/{user_id}", headers=admin_headers)
    assert r.status_code == 200
    r = await async_client.get(f"/admin/users/{user_id}", headers=admin_headers)
    assert r.status_code == 404


async def test_analytics(async_client: AsyncClient, request_payload, employee_headers, admin_headers):
    await async_client.post("/requests/", json=request_payload, headers=employee_headers)
    r = await async_client.get("/admin/analytics", headers=admin_headers)
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["requests"]["total"] == 1
    assert data["requests"]["pending"] == 1

    r = await async_client.get("/admin/analytics", headers=employee_headers)
    assert r.status_code == 403


async def test_audit_logs_and_export(
    async_client: AsyncClient, request_payload, employee_headers, manager_headers, admin_headers
):
    created = await async_client.post("/requests/", json=request_payload, headers=employee_headers)
    request_id = created.json()["data"]["request_id"]
    await async_client.post(f"/requests/{request_id}/approve", headers=manager_headers)

    r = await async_client.get("/admin/audit-logs", headers=admin_headers)
    assert r.status_code == 200
    page = r.json()["data"]
    assert page["total"] == 2
    assert [item["action"] for item in page["items"]] == ["REQUEST_APPROVED", "REQUEST_CREATED"]
    assert page["items"][0]["details"]["to_status"] == "Approved"

    r = await async_client.get("/admin/audit-logs", params={"action": "REQUEST_CREATED"}, headers=admin_headers)
    assert r.json()["data"]["total"] == 1

    r = await async_client.get("/admin/audit-logs/export", headers=admin_headers)
    assert r.status_code == 200
    export = r.json()["data"]
    assert export["count"] == 2
    assert export["rows"][0]["action"] == "REQUEST_APPROVED"
    assert isinstance(export["rows"][0]["details"], str)

    # The export itself is recorded.
    r = await async_client.get("/admin/audit-logs", params={"action": "ADMIN_ACTION"}, headers=admin_headers)
    [entry] = r.json()["data"]["items"]
    assert entry["actor_id"] == "adm-1"
    assert entry["details"]["action"] == "EXPORT_AUDIT_LOGS"


async def test_audit_logs_admin_only(async_client: AsyncClient, manager_headers):
    r = await async_client.get("/admin/audit-logs", headers=manager_headers)
    assert r.status_code == 403
    r = await async_client.get("/admin/audit-logs/export", headers=manager_headers)
    assert r.status_code == 403
