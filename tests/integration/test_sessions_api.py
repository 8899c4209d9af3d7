"""
Integration tests for self-service session endpoints and request tracking.

Tests the /api/sessions/* endpoints and the activity middleware around them.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from activity_audit.models.activity import ActivityType
from activity_audit.models.session import SessionStatus, UserSession
from activity_audit.models.user import User
from activity_audit.services.activity_service import ActivityService
from activity_audit.services.session_service import SessionService
from tests.conftest import auth_headers, create_user_session


@pytest.mark.integration
class TestHealthEndpoint:
    """Test the health check."""

    @pytest.mark.asyncio
    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


@pytest.mark.integration
class TestSessionEndpoints:
    """Test session API endpoints."""

    @pytest.mark.asyncio
    async def test_list_requires_authentication(self, client: AsyncClient):
        """Test listing sessions without a token."""
        response = await client.get("/api/sessions")

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_list_rejects_unknown_token(self, client: AsyncClient):
        response = await client.get("/api/sessions", headers={"Authorization": "Bearer bogus"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_list_my_sessions(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        customer_user: User,
        customer_session: UserSession,
        admin_session: UserSession,
    ):
        """Test a user sees only their own sessions with the current one flagged."""
        other = await create_user_session(db_session, customer_user)

        response = await client.get("/api/sessions", headers=auth_headers(customer_session))

        assert response.status_code == 200
        data = response.json()
        assert {item["id"] for item in data} == {customer_session.id, other.id}
        current = [item for item in data if item["is_current"]]
        assert [item["id"] for item in current] == [customer_session.id]
        assert current[0]["device_type"] == "mobile"
        assert "session_token" not in current[0]

    @pytest.mark.asyncio
    async def test_cookie_and_header_tokens(self, client: AsyncClient, customer_session: UserSession):
        """Test the session token is accepted from a cookie or the X-Session-Token header."""
        by_header = await client.get(
            "/api/sessions", headers={"X-Session-Token": customer_session.session_token}
        )
        by_cookie = await client.get(
            "/api/sessions", cookies={"session_token": customer_session.session_token}
        )

        assert by_header.status_code == 200
        assert by_cookie.status_code == 200

    @pytest.mark.asyncio
    async def test_logout(self, client: AsyncClient, customer_session: UserSession):
        """Test logout ends the session and the token stops working."""
        response = await client.post("/api/sessions/logout", headers=auth_headers(customer_session))

        assert response.status_code == 200
        assert response.json()["terminated"] == 1
        assert customer_session.status == SessionStatus.LOGGED_OUT.value

        response = await client.get("/api/sessions", headers=auth_headers(customer_session))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_everywhere(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        customer_user: User,
        customer_session: UserSession,
    ):
        """Test logging out everywhere keeps only the current session."""
        await create_user_session(db_session, customer_user)
        await create_user_session(db_session, customer_user)

        response = await client.post("/api/sessions/logout-all", headers=auth_headers(customer_session))

        assert response.status_code == 200
        assert response.json()["terminated"] == 2
        active = await SessionService(db_session).list_for_principal(customer_user.id, active_only=True)
        assert [s.id for s in active] == [customer_session.id]


@pytest.mark.integration
class TestActivityMiddleware:
    """Test request tracking through the HTTP stack."""

    @pytest.mark.asyncio
    async def test_authenticated_request_recorded(
        self, client: AsyncClient, db_session: AsyncSession, customer_session: UserSession
    ):
        """Test an authenticated request produces one activity event."""
        response = await client.get(
            "/api/sessions",
            params={"active_only": "true"},
            headers={**auth_headers(customer_session), "X-Forwarded-For": "198.51.100.4", "User-Agent": "pytest"},
        )
        assert response.status_code == 200

        events = await ActivityService(db_session).query_by_principal(customer_session.user_id)
        assert len(events) == 1
        event = events[0]
        assert event.activity_type == ActivityType.VIEW.value
        assert event.request_path == "/api/sessions"
        assert event.request_method == "GET"
        assert event.response_status == 200
        assert event.session_id == customer_session.session_token
        assert event.ip_address == "198.51.100.4"
        assert event.user_agent == "pytest"
        assert event.event_metadata["input"] == {"active_only": "true"}
        assert "authorization" not in event.event_metadata["requestHeaders"]

    @pytest.mark.asyncio
    async def test_logout_recorded(
        self, client: AsyncClient, db_session: AsyncSession, customer_session: UserSession
    ):
        await client.post("/api/sessions/logout", headers=auth_headers(customer_session))

        events = await ActivityService(db_session).query_by_type(ActivityType.LOGOUT)
        assert len(events) == 1
        assert events[0].description == "User logged out"

    @pytest.mark.asyncio
    async def test_failed_request_recorded(
        self, client: AsyncClient, db_session: AsyncSession, customer_session: UserSession
    ):
        """Test a rejected request is still recorded as unsuccessful."""
        response = await client.get("/api/admin/sessions", headers=auth_headers(customer_session))
        assert response.status_code == 403

        events = await ActivityService(db_session).query_by_principal(customer_session.user_id)
        assert len(events) == 1
        assert events[0].is_successful is False
        assert events[0].response_status == 403
        assert events[0].event_metadata["adminPanel"] is True

    @pytest.mark.asyncio
    async def test_untracked_requests(self, client: AsyncClient, db_session: AsyncSession, customer_session: UserSession):
        """Test anonymous and excluded requests produce no events."""
        await client.get("/api/sessions")
        await client.get("/health", headers=auth_headers(customer_session))

        assert await ActivityService(db_session).list_events() == ([], 0)
