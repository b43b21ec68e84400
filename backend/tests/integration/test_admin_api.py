"""Integration tests for administrator endpoints."""

import pytest
from tests.conftest import auth_headers


@pytest.mark.asyncio
class TestAdminAccess:
    @pytest.mark.parametrize(
        "path",
        ["/api/v1/admin/users", "/api/v1/admin/config", "/api/v1/admin/templates", "/api/v1/audit"],
    )
    async def test_non_admin_forbidden(self, client, publisher_token, path):
        response = await client.get(path, headers=auth_headers(publisher_token))

        assert response.status_code == 403

    async def test_list_users_by_status(self, client, admin_token, pending_user, resident_user):
        response = await client.get(
            "/api/v1/admin/users",
            params={"verification_status": "pending"},
            headers=auth_headers(admin_token),
        )

        assert response.status_code == 200
        assert [u["email"] for u in response.json()] == ["pending@test.com"]


@pytest.mark.asyncio
class TestAdminUsers:
    async def test_update_user_roles(self, client, admin_token, resident_user, committee):
        response = await client.put(
            f"/api/v1/admin/users/{resident_user.id}",
            json={
                "first_name": "Rita",
                "last_name": "Resident",
                "phone": "555-0100",
                "unit_number": "401",
                "roles": ["user", "resident", "publisher"],
                "committees": [committee.id],
            },
            headers=auth_headers(admin_token),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["roles"] == ["publisher", "resident", "user"]
        assert data["committee_ids"] == [committee.id]
        assert data["verification_status"] == "verified"


@pytest.mark.asyncio
class TestAdminCommittees:
    async def test_crud(self, client, admin_token, resident_user):
        headers = auth_headers(admin_token)

        response = await client.post(
            "/api/v1/admin/committees", json={"name": "Pool"}, headers=headers
        )
        assert response.status_code == 201
        committee_id = response.json()["id"]

        response = await client.post(
            f"/api/v1/admin/committees/{committee_id}/members",
            json={"user_id": resident_user.id},
            headers=headers,
        )
        assert response.status_code == 200

        response = await client.get(f"/api/v1/admin/committees/{committee_id}/members", headers=headers)
        assert [u["id"] for u in response.json()] == [resident_user.id]

        response = await client.delete(
            f"/api/v1/admin/committees/{committee_id}/members/{resident_user.id}", headers=headers
        )
        assert response.status_code == 200

        response = await client.delete(f"/api/v1/admin/committees/{committee_id}", headers=headers)
        assert response.status_code == 200

        response = await client.get("/api/v1/admin/committees", headers=headers)
        assert response.json() == []

    async def test_duplicate_name(self, client, admin_token, committee):
        response = await client.post(
            "/api/v1/admin/committees", json={"name": "Finance"}, headers=auth_headers(admin_token)
        )

        assert response.status_code == 400


@pytest.mark.asyncio
class TestAdminConfig:
    async def test_list_and_update(self, client, admin_token):
        headers = auth_headers(admin_token)

        response = await client.get("/api/v1/admin/config", headers=headers)
        entries = {e["key"]: e for e in response.json()}
        assert entries["max_upload_size_mb"]["value"] == "25"
        assert entries["max_upload_size_mb"]["is_numeric"] is True

        response = await client.put(
            "/api/v1/admin/config",
            json={"updates": [{"key": "max_upload_size_mb", "value": "40"}]},
            headers=headers,
        )
        assert response.status_code == 200
        assert response.json()["changes"] == {"max_upload_size_mb": {"from": "25", "to": "40"}}

    async def test_invalid_value(self, client, admin_token):
        response = await client.put(
            "/api/v1/admin/config",
            json={"updates": [{"key": "session_timeout_days", "value": "soon"}]},
            headers=auth_headers(admin_token),
        )

        assert response.status_code == 400
        assert "positive whole number" in response.json()["detail"]


@pytest.mark.asyncio
class TestAdminTemplates:
    async def test_update_template(self, client, admin_token):
        headers = auth_headers(admin_token)
        templates = (await client.get("/api/v1/admin/templates", headers=headers)).json()
        denial = next(t for t in templates if t["key"] == "denial")

        response = await client.put(
            f"/api/v1/admin/templates/{denial['id']}",
            json={"subject": "Registration update", "body": "Sorry {{firstName}}: {{reason}}"},
            headers=headers,
        )

        assert response.status_code == 200
        assert response.json()["subject"] == "Registration update"

    async def test_empty_subject_rejected(self, client, admin_token):
        headers = auth_headers(admin_token)
        templates = (await client.get("/api/v1/admin/templates", headers=headers)).json()

        response = await client.put(
            f"/api/v1/admin/templates/{templates[0]['id']}",
            json={"subject": "", "body": "x"},
            headers=headers,
        )

        assert response.status_code == 422


@pytest.mark.asyncio
class TestAdminBulkUsers:
    async def test_assign_role(self, client, admin_token, resident_user, pending_user):
        response = await client.post(
            "/api/v1/admin/users/bulk",
            json={
                "action": "assign_role",
                "user_ids": [resident_user.id, pending_user.id],
                "role_name": "calendar",
            },
            headers=auth_headers(admin_token),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["message"] == 'Role "calendar" assigned to 2 of 2 users'
        assert all(r["success"] for r in data["results"])

    async def test_empty_user_list_rejected(self, client, admin_token):
        response = await client.post(
            "/api/v1/admin/users/bulk",
            json={"action": "assign_role", "user_ids": [], "role_name": "calendar"},
            headers=auth_headers(admin_token),
        )

        assert response.status_code == 422

    async def test_missing_committee(self, client, admin_token, resident_user):
        response = await client.post(
            "/api/v1/admin/users/bulk",
            json={"action": "add_committee", "user_ids": [resident_user.id], "committee_id": 777},
            headers=auth_headers(admin_token),
        )

        assert response.status_code == 404

    async def test_non_admin_forbidden(self, client, publisher_token, resident_user):
        response = await client.post(
            "/api/v1/admin/users/bulk",
            json={"action": "assign_role", "user_ids": [resident_user.id], "role_name": "dbadmin"},
            headers=auth_headers(publisher_token),
        )

        assert response.status_code == 403
