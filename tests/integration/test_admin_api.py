"""
Integration tests for admin endpoints.

Tests /api/admin/sessions, /api/admin/activity, /api/admin/impersonation and
the dashboard.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from activity_audit.database import utcnow
from activity_audit.models.activity import ActivityType
from activity_audit.models.session import SessionStatus, UserSession
from activity_audit.models.user import User
from activity_audit.services.activity_service import ActivityService
from tests.conftest import auth_headers, create_user_session


@pytest.mark.integration
class TestAdminSessionEndpoints:
    """Test admin session management."""

    @pytest.mark.asyncio
    async def test_customer_forbidden(self, client: AsyncClient, customer_session: UserSession):
        response = await client.get("/api/admin/sessions", headers=auth_headers(customer_session))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_list_sessions(
        self,
        client: AsyncClient,
        admin_session: UserSession,
        customer_session: UserSession,
    ):
        """Test admins can list and filter all sessions."""
        response = await client.get("/api/admin/sessions", headers=auth_headers(admin_session))

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert data["page"] == 1
        assert data["total_pages"] == 1

        response = await client.get(
            "/api/admin/sessions",
            params={"user_id": customer_session.user_id, "status": "active"},
            headers=auth_headers(admin_session),
        )
        assert [item["id"] for item in response.json()["items"]] == [customer_session.id]

    @pytest.mark.asyncio
    async def test_revoke_session(
        self, client: AsyncClient, admin_session: UserSession, customer_session: UserSession
    ):
        """Test revoking a session once terminates it and a second time is a no-op."""
        url = f"/api/admin/sessions/{customer_session.id}/revoke"

        first = await client.post(url, headers=auth_headers(admin_session))
        second = await client.post(url, headers=auth_headers(admin_session))

        assert first.status_code == 200
        assert first.json()["terminated"] == 1
        assert customer_session.status == SessionStatus.TERMINATED.value
        assert second.json()["terminated"] == 0

    @pytest.mark.asyncio
    async def test_revoke_unknown_session(self, client: AsyncClient, admin_session: UserSession):
        response = await client.post("/api/admin/sessions/99999/revoke", headers=auth_headers(admin_session))

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_sweep(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_session: UserSession,
        customer_user: User,
    ):
        """Test the manual sweep expires sessions past their expiry."""
        await create_user_session(db_session, customer_user, expires_in=timedelta(minutes=-10))

        response = await client.post("/api/admin/sessions/sweep", headers=auth_headers(admin_session))

        assert response.status_code == 200
        assert response.json()["affected"] == 1


@pytest.mark.integration
class TestAdminActivityEndpoints:
    """Test admin activity endpoints."""

    @pytest.mark.asyncio
    async def test_list_activity(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_session: UserSession,
        customer_user: User,
    ):
        """Test listing with a type filter; sensitive metadata is returned redacted."""
        service = ActivityService(db_session)
        await service.log(ActivityType.PASSWORD_CHANGE, user_id=customer_user.id, metadata={"newPassword": "x"})
        await service.log(ActivityType.VIEW, user_id=customer_user.id)

        response = await client.get(
            "/api/admin/activity",
            params={"activity_type": "password_change"},
            headers=auth_headers(admin_session),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["metadata"] == {"newPassword": "[REDACTED]"}

    @pytest.mark.asyncio
    async def test_activity_stats(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_session: UserSession,
        customer_user: User,
    ):
        await ActivityService(db_session).log(ActivityType.LOGIN, user_id=customer_user.id)

        response = await client.get("/api/admin/activity/stats", headers=auth_headers(admin_session))

        assert response.status_code == 200
        data = response.json()
        assert data["total_events"] == 1
        assert data["by_type"] == {"login": 1}
        assert len(data["by_hour"]) == 24

    @pytest.mark.asyncio
    async def test_activity_stats_invalid_window(self, client: AsyncClient, admin_session: UserSession):
        """Test a window whose start is not before its end is rejected."""
        now = utcnow()
        response = await client.get(
            "/api/admin/activity/stats",
            params={"start": now.isoformat(), "end": (now - timedelta(days=1)).isoformat()},
            headers=auth_headers(admin_session),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_user_status(
        self, client: AsyncClient, admin_session: UserSession, customer_session: UserSession
    ):
        response = await client.get(
            f"/api/admin/activity/users/{customer_session.user_id}/status",
            headers=auth_headers(admin_session),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == customer_session.user_id
        assert data["is_currently_active"] is True
        assert data["session_count"] == 1
        assert data["device_types"] == ["mobile"]

    @pytest.mark.asyncio
    async def test_bulk_user_status(
        self, client: AsyncClient, admin_session: UserSession, customer_session: UserSession
    ):
        """Test one status per requested user, in request order."""
        response = await client.get(
            "/api/admin/activity/users/status",
            params=[("user_ids", customer_session.user_id), ("user_ids", 99999)],
            headers=auth_headers(admin_session),
        )

        assert response.status_code == 200
        data = response.json()
        assert [item["user_id"] for item in data] == [customer_session.user_id, 99999]
        assert data[0]["is_currently_active"] is True
        assert data[1]["session_count"] == 0

    @pytest.mark.asyncio
    async def test_bulk_user_status_too_many(self, client: AsyncClient, admin_session: UserSession):
        response = await client.get(
            "/api/admin/activity/users/status",
            params=[("user_ids", user_id) for user_id in range(1, 102)],
            headers=auth_headers(admin_session),
        )

        assert response.status_code == 400


@pytest.mark.integration
class TestImpersonationEndpoints:
    """Test admin impersonation endpoints."""

    async def _start(self, client: AsyncClient, admin_session: UserSession, target_id: int):
        return await client.post(
            "/api/admin/impersonation/start",
            json={"target_user_id": target_id, "reason": "support ticket"},
            headers=auth_headers(admin_session),
        )

    @pytest.mark.asyncio
    async def test_start_and_end(
        self,
        client: AsyncClient,
        super_admin_session: UserSession,
        customer_user: User,
    ):
        """Test the full impersonation cycle using the impersonation token."""
        response = await self._start(client, super_admin_session, customer_user.id)
        assert response.status_code == 200
        result = response.json()
        impersonation_headers = {"Authorization": f"Bearer {result['access_token']}"}

        sessions = await client.get("/api/sessions", headers=impersonation_headers)
        assert sessions.status_code == 200
        assert sessions.json()[0]["is_impersonation"] is True
        assert sessions.json()[0]["user_id"] == customer_user.id

        active = await client.get("/api/admin/impersonation/active", headers=auth_headers(super_admin_session))
        assert active.json()["id"] == result["impersonation_log_id"]

        ended = await client.post("/api/admin/impersonation/end", headers=impersonation_headers)
        assert ended.status_code == 200
        assert ended.json()["status"] == "ended"

        active = await client.get("/api/admin/impersonation/active", headers=auth_headers(super_admin_session))
        assert active.json() is None

        after = await client.get("/api/sessions", headers=impersonation_headers)
        assert after.status_code == 401

    @pytest.mark.asyncio
    async def test_admin_ends_with_token_in_body(
        self,
        client: AsyncClient,
        super_admin_session: UserSession,
        admin_session: UserSession,
        customer_user: User,
    ):
        """Test the starting admin can end the impersonation from their own session; others cannot."""
        result = (await self._start(client, super_admin_session, customer_user.id)).json()
        body = {"session_token": result["access_token"]}

        other = await client.post("/api/admin/impersonation/end", json=body, headers=auth_headers(admin_session))
        assert other.status_code == 403

        own = await client.post("/api/admin/impersonation/end", json=body, headers=auth_headers(super_admin_session))
        assert own.status_code == 200
        assert own.json()["status"] == "ended"

    @pytest.mark.asyncio
    async def test_end_unknown_token(self, client: AsyncClient, super_admin_session: UserSession):
        response = await client.post(
            "/api/admin/impersonation/end",
            json={"session_token": "unknown"},
            headers=auth_headers(super_admin_session),
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_start_errors(
        self,
        client: AsyncClient,
        super_admin_session: UserSession,
        admin_session: UserSession,
        customer_user: User,
        admin_user: User,
    ):
        """Test domain errors map to HTTP statuses."""
        not_super = await self._start(client, admin_session, customer_user.id)
        assert not_super.status_code == 401

        own = await self._start(client, super_admin_session, super_admin_session.user_id)
        assert own.status_code == 400

        missing = await self._start(client, super_admin_session, 99999)
        assert missing.status_code == 404

        first = await self._start(client, super_admin_session, customer_user.id)
        assert first.status_code == 200
        second = await self._start(client, super_admin_session, admin_user.id)
        assert second.status_code == 409

    @pytest.mark.asyncio
    async def test_logs(
        self,
        client: AsyncClient,
        super_admin_session: UserSession,
        admin_session: UserSession,
        customer_user: User,
    ):
        """Test the audit trail is visible to admins and hides tokens."""
        await self._start(client, super_admin_session, customer_user.id)

        response = await client.get(
            "/api/admin/impersonation/logs",
            params={"status": "active"},
            headers=auth_headers(admin_session),
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["items"][0]["reason"] == "support ticket"
        assert "session_token" not in data["items"][0]


@pytest.mark.integration
class TestDashboardEndpoints:
    """Test the dashboard."""

    @pytest.mark.asyncio
    async def test_dashboard(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        admin_session: UserSession,
        customer_session: UserSession,
    ):
        await ActivityService(db_session).log_login(customer_session.user_id, customer_session.session_token)

        response = await client.get("/api/admin/dashboard", headers=auth_headers(admin_session))

        assert response.status_code == 200
        data = response.json()
        assert data["summary"]["currently_active_users"] == 2
        assert data["sessions"]["total_sessions"] == 2
        assert data["trends"]["logins"]["current"] == 1

    @pytest.mark.asyncio
    async def test_scheduler_jobs(self, client: AsyncClient, admin_session: UserSession):
        """Test the job listing is empty when the scheduler runs out of process."""
        response = await client.get("/api/admin/scheduler/jobs", headers=auth_headers(admin_session))

        assert response.status_code == 200
        assert response.json() == {"jobs": []}
