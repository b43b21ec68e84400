"""Integration tests for audit and monitoring endpoints."""

import csv
import io
from datetime import timedelta

import pytest
from tests.conftest import auth_headers

from portal.models import AuditLog
from portal.models.types import utcnow

BOT_UA = "Mozilla/5.0 (compatible; bingbot/2.0; +http://www.bing.com/bingbot.htm)"
BROWSER_UA = "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_0) AppleWebKit/605.1.15 Safari/605.1.15"


@pytest.mark.asyncio
class TestPageViews:
    async def test_human_view_recorded(self, client, admin_token, resident_token):
        response = await client.post(
            "/api/v1/audit/page-view",
            json={"path": "/documents"},
            headers={**auth_headers(resident_token), "User-Agent": BROWSER_UA},
        )
        assert response.json()["message"] == "recorded"

        response = await client.get(
            "/api/v1/audit", params={"action": "PAGE_VIEW"}, headers=auth_headers(admin_token)
        )
        [log] = response.json()["logs"]
        assert log["actor"] == "Rita Resident (Unit: 401)"
        assert log["entity_id"] == "/documents"

    async def test_bot_view_dropped(self, client, admin_token):
        response = await client.post(
            "/api/v1/audit/page-view", json={"path": "/"}, headers={"User-Agent": BOT_UA}
        )
        assert response.json()["message"] == "ignored"

        response = await client.get("/api/v1/audit", headers=auth_headers(admin_token))
        assert response.json()["total"] == 0

    async def test_anonymous_view_recorded(self, client, admin_token):
        await client.post(
            "/api/v1/audit/page-view",
            json={"path": "/register"},
            headers={"User-Agent": BROWSER_UA, "X-Forwarded-For": "198.51.100.7, 10.0.0.1"},
        )

        response = await client.get("/api/v1/audit", headers=auth_headers(admin_token))
        [log] = response.json()["logs"]
        assert log["actor"] == "anonymous"
        assert log["ip_address"] == "198.51.100.7"


@pytest.mark.asyncio
class TestAuditBrowsing:
    async def test_export_csv(self, client, admin_token):
        await client.post(
            "/api/v1/audit/page-view", json={"path": "/a"}, headers={"User-Agent": BROWSER_UA}
        )

        response = await client.get("/api/v1/audit/export", headers=auth_headers(admin_token))

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0][:5] == ["id", "timestamp", "user_id", "actor", "action"]
        assert rows[1][4] == "PAGE_VIEW"

    async def test_actions(self, client, admin_token):
        await client.post(
            "/api/v1/audit/page-view", json={"path": "/a"}, headers={"User-Agent": BROWSER_UA}
        )

        response = await client.get("/api/v1/audit/actions", headers=auth_headers(admin_token))

        assert response.json() == ["PAGE_VIEW"]

    async def test_cleanup(self, client, test_session, admin_token):
        test_session.add_all([
            AuditLog(timestamp=utcnow() - timedelta(days=400), user_id=1, action="old"),
            AuditLog(timestamp=utcnow() - timedelta(days=100), action="old_anon"),
            AuditLog(timestamp=utcnow() - timedelta(days=10), action="recent_anon"),
        ])
        await test_session.commit()

        response = await client.post("/api/v1/audit/cleanup", headers=auth_headers(admin_token))

        assert response.status_code == 200
        data = response.json()
        assert data["authenticated_deleted"] == 1
        assert data["anonymous_deleted"] == 1

        response = await client.get("/api/v1/audit/actions", headers=auth_headers(admin_token))
        assert response.json() == ["AUDIT_LOG_CLEANUP", "recent_anon"]


@pytest.mark.asyncio
class TestMonitoring:
    async def test_metrics(self, client, admin_token, pending_user):
        response = await client.get("/api/v1/monitoring/metrics", headers=auth_headers(admin_token))

        assert response.status_code == 200
        assert response.json()["pending_verifications"] == 1

    async def test_check_alerts_requires_admin(self, client, verifier_token):
        response = await client.post(
            "/api/v1/monitoring/alerts/check", headers=auth_headers(verifier_token)
        )

        assert response.status_code == 403
