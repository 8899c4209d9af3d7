"""
Unit tests for the activity pipeline.

Tests session validation, context extraction and the completion stage that
records one activity event per request.
"""

from datetime import timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from activity_audit.config import Settings
from activity_audit.database import utcnow
from activity_audit.exceptions import AuthorizationError
from activity_audit.models.activity import ActivityType
from activity_audit.models.session import SessionStatus, UserSession
from activity_audit.models.user import User
from activity_audit.services.activity_service import ActivityService
from activity_audit.services.session_service import SessionService
from activity_audit.tracking.pipeline import ActivityPipeline, TrackedRequest, extract_ip_address
from tests.conftest import create_user_session


class HandlerError(Exception):
    """Error raised by a failing test handler."""


def ok_handler(status_code: int = 200):
    async def handler():
        return SimpleNamespace(status_code=status_code)
    return handler


@pytest.fixture
def pipeline(session_factory: async_sessionmaker, test_settings: Settings) -> ActivityPipeline:
    return ActivityPipeline(session_factory, test_settings)


async def recorded_events(db_session: AsyncSession, user_id: int):
    return await ActivityService(db_session).query_by_principal(user_id)


@pytest.mark.unit
@pytest.mark.asyncio
class TestCompletionStage:
    """Test activity recording around the handler."""

    async def test_success_records_event(
        self, pipeline: ActivityPipeline, db_session: AsyncSession, customer_session: UserSession
    ):
        """Test a successful request returns the handler result and records one event."""
        request = TrackedRequest(
            principal=None,
            claimed_session_token=customer_session.session_token,
            route="/api/products",
            method="GET",
            input={"page": "2"},
            headers={
                "user-agent": "TestAgent/1.0",
                "x-forwarded-for": "203.0.113.7, 10.0.0.1",
                "authorization": f"Bearer {customer_session.session_token}",
            },
            client_host="127.0.0.1",
        )

        result = await pipeline.run(request, ok_handler())

        assert result.status_code == 200
        events = await recorded_events(db_session, customer_session.user_id)
        assert len(events) == 1
        event = events[0]
        assert event.activity_type == ActivityType.VIEW.value
        assert event.description == "GET /api/products"
        assert event.session_id == customer_session.session_token
        assert event.ip_address == "203.0.113.7"
        assert event.user_agent == "TestAgent/1.0"
        assert event.response_status == 200
        assert event.is_successful is True
        assert event.duration_ms >= 0
        assert event.event_metadata["input"] == {"page": "2"}
        assert "authorization" not in event.event_metadata["requestHeaders"]

    async def test_admin_route_flagged(
        self, pipeline: ActivityPipeline, db_session: AsyncSession, admin_session: UserSession
    ):
        """Test admin routes carry the admin panel flag and named actions their type."""
        request = TrackedRequest(
            principal=admin_session.user_id,
            claimed_session_token=admin_session.session_token,
            route="/api/admin/users",
            method="GET",
            action_name="admin.users.export",
        )

        await pipeline.run(request, ok_handler())

        events = await recorded_events(db_session, admin_session.user_id)
        assert events[0].activity_type == ActivityType.EXPORT.value
        assert events[0].event_metadata["adminPanel"] is True
        assert events[0].event_metadata["action"] == "admin.users.export"

    async def test_resource_derived_from_route(
        self, pipeline: ActivityPipeline, db_session: AsyncSession, admin_session: UserSession
    ):
        """Test the addressed resource is recorded when the caller supplies none."""
        request = TrackedRequest(
            principal=admin_session.user_id,
            claimed_session_token=admin_session.session_token,
            route="/api/admin/users/42",
            method="DELETE",
        )

        await pipeline.run(request, ok_handler())

        event = (await recorded_events(db_session, admin_session.user_id))[0]
        assert event.activity_type == ActivityType.DELETE.value
        assert event.description == "Admin deleted user (ID: 42)"
        assert (event.resource_type, event.resource_id) == ("user", "42")

    async def test_explicit_resource_wins(
        self, pipeline: ActivityPipeline, db_session: AsyncSession, admin_session: UserSession
    ):
        request = TrackedRequest(
            principal=admin_session.user_id,
            claimed_session_token=admin_session.session_token,
            route="/api/admin/users/42",
            method="PUT",
            resource_type="account",
            resource_id="acct-1",
        )

        await pipeline.run(request, ok_handler())

        event = (await recorded_events(db_session, admin_session.user_id))[0]
        assert (event.resource_type, event.resource_id) == ("account", "acct-1")

    async def test_handler_error_recorded_and_reraised(
        self, pipeline: ActivityPipeline, db_session: AsyncSession, customer_session: UserSession
    ):
        """Test a failing handler is recorded as unsuccessful and its exception propagates unchanged."""
        error = HandlerError("boom")

        async def failing():
            raise error

        request = TrackedRequest(
            principal=customer_session.user_id,
            claimed_session_token=customer_session.session_token,
            route="/api/orders",
            method="POST",
        )

        with pytest.raises(HandlerError) as exc_info:
            await pipeline.run(request, failing)

        assert exc_info.value is error
        events = await recorded_events(db_session, customer_session.user_id)
        assert len(events) == 1
        assert events[0].activity_type == ActivityType.CREATE.value
        assert events[0].is_successful is False
        assert events[0].error_message == "boom"
        assert events[0].response_status == 500

    async def test_error_status_recorded_as_failure(
        self, pipeline: ActivityPipeline, db_session: AsyncSession, customer_session: UserSession
    ):
        request = TrackedRequest(
            principal=None,
            claimed_session_token=customer_session.session_token,
            route="/api/orders/9",
            method="DELETE",
        )

        await pipeline.run(request, ok_handler(404))

        events = await recorded_events(db_session, customer_session.user_id)
        assert events[0].is_successful is False
        assert events[0].error_message == "Request failed with status 404"

    async def test_failed_requests_not_tracked_when_disabled(
        self, session_factory: async_sessionmaker, db_session: AsyncSession, customer_session: UserSession
    ):
        """Test failures are skipped when failed-request tracking is off."""
        pipeline = ActivityPipeline(session_factory, Settings(ACTIVITY_TRACK_FAILED_REQUESTS=False))
        request = TrackedRequest(
            principal=None,
            claimed_session_token=customer_session.session_token,
            route="/api/orders",
            method="POST",
        )

        await pipeline.run(request, ok_handler(500))

        assert await recorded_events(db_session, customer_session.user_id) == []

    async def test_recorder_failure_does_not_change_result(
        self, pipeline: ActivityPipeline, customer_session: UserSession, mocker
    ):
        """Test a recorder failure is swallowed on both the success and error paths."""
        mocker.patch.object(ActivityService, "log_event", side_effect=RuntimeError("db down"))
        request = TrackedRequest(
            principal=None,
            claimed_session_token=customer_session.session_token,
            route="/api/products",
            method="GET",
        )

        result = await pipeline.run(request, ok_handler(201))
        assert result.status_code == 201

        async def failing():
            raise HandlerError("original")

        with pytest.raises(HandlerError, match="original"):
            await pipeline.run(request, failing)

    async def test_anonymous_request_not_recorded(self, pipeline: ActivityPipeline, db_session: AsyncSession):
        """Test requests without principal or token produce no event."""
        handler_result = await pipeline.run(
            TrackedRequest(principal=None, claimed_session_token=None, route="/api/public", method="GET"),
            ok_handler(),
        )

        assert handler_result.status_code == 200
        assert await ActivityService(db_session).list_events() == ([], 0)

    async def test_principal_without_token(
        self, pipeline: ActivityPipeline, db_session: AsyncSession, customer_user: User
    ):
        """Test a known principal without a session is recorded with no session id."""
        await pipeline.run(
            TrackedRequest(principal=customer_user.id, claimed_session_token=None, route="/api/me", method="GET"),
            ok_handler(),
        )

        events = await recorded_events(db_session, customer_user.id)
        assert len(events) == 1
        assert events[0].session_id is None


@pytest.mark.unit
@pytest.mark.asyncio
class TestSessionValidationStage:
    """Test the session validation stage."""

    async def test_active_session_required(self, pipeline: ActivityPipeline, mocker):
        """Test an invalid token on a protected route fails before the handler runs."""
        handler = mocker.AsyncMock()
        request = TrackedRequest(
            principal=None,
            claimed_session_token="not-a-session",
            route="/api/orders",
            method="GET",
            require_active_session=True,
        )

        with pytest.raises(AuthorizationError):
            await pipeline.run(request, handler)

        handler.assert_not_called()

    async def test_invalid_session_tolerated_when_not_required(self, pipeline: ActivityPipeline, mocker):
        handler = mocker.AsyncMock(return_value="done")
        request = TrackedRequest(
            principal=None, claimed_session_token="not-a-session", route="/api/orders", method="GET"
        )

        assert await pipeline.run(request, handler) == "done"
        handler.assert_awaited_once()

    async def test_expired_session_transitions(
        self, pipeline: ActivityPipeline, db_session: AsyncSession, customer_user: User
    ):
        """Test a claimed session past expiry is marked EXPIRED and rejected when required."""
        expired = await create_user_session(db_session, customer_user, expires_in=timedelta(minutes=-1))
        request = TrackedRequest(
            principal=None,
            claimed_session_token=expired.session_token,
            route="/api/orders",
            method="GET",
            require_active_session=True,
        )

        with pytest.raises(AuthorizationError):
            await pipeline.run(request, ok_handler())

        await db_session.refresh(expired)
        assert expired.status == SessionStatus.EXPIRED.value
        assert expired.logout_at is not None

    async def test_session_of_other_principal_is_invalid(
        self, pipeline: ActivityPipeline, customer_session: UserSession, admin_user: User
    ):
        """Test a token belonging to another principal does not validate."""
        request = TrackedRequest(
            principal=admin_user.id,
            claimed_session_token=customer_session.session_token,
            route="/api/orders",
            method="GET",
            require_active_session=True,
        )

        with pytest.raises(AuthorizationError):
            await pipeline.run(request, ok_handler())

    async def test_last_activity_bumped(
        self, pipeline: ActivityPipeline, db_session: AsyncSession, customer_session: UserSession
    ):
        """Test a valid session has its last activity time refreshed."""
        stale = utcnow() - timedelta(hours=1)
        customer_session.last_activity_at = stale
        await db_session.commit()

        await pipeline.run(
            TrackedRequest(
                principal=customer_session.user_id,
                claimed_session_token=customer_session.session_token,
                route="/api/orders",
                method="GET",
                require_active_session=True,
            ),
            ok_handler(),
        )

        await db_session.refresh(customer_session)
        assert customer_session.last_activity_at > stale

    async def test_validation_errors_treated_as_invalid(
        self, pipeline: ActivityPipeline, customer_session: UserSession, mocker
    ):
        """Test a store failure during validation does not abort unprotected requests."""
        mocker.patch.object(SessionService, "find_by_token", side_effect=RuntimeError("db down"))

        result = await pipeline.run(
            TrackedRequest(
                principal=None,
                claimed_session_token=customer_session.session_token,
                route="/api/orders",
                method="GET",
            ),
            ok_handler(),
        )

        assert result.status_code == 200


@pytest.mark.unit
class TestExtractIpAddress:
    """Test client IP resolution."""

    def test_forwarded_for_first_entry(self):
        headers = {"X-Forwarded-For": "198.51.100.1, 10.0.0.2", "X-Real-IP": "10.0.0.3"}
        assert extract_ip_address(headers, "127.0.0.1") == "198.51.100.1"

    def test_header_order(self):
        assert extract_ip_address({"x-client-ip": "1.1.1.1", "x-real-ip": "2.2.2.2"}) == "2.2.2.2"
        assert extract_ip_address({"x-client-ip": "1.1.1.1"}) == "1.1.1.1"

    def test_fallbacks(self):
        assert extract_ip_address({}, "127.0.0.1") == "127.0.0.1"
        assert extract_ip_address({}) == "unknown"
