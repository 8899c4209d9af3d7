"""
Per-request activity pipeline.

A request passes through an ordered chain of stages before the handler runs:

1. ``validate_session`` checks the claimed session token and bumps its
   last activity time. It only rejects the request when the route requires an
   active session.
2. ``extract_context`` collects the client IP, user agent and request details.

The handler is then wrapped by the completion stage, which writes exactly one
activity event for the request. Tracking is best effort: failures while
validating or recording are logged and never change the handler's result or
the exception it raised.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TypeVar

from sqlalchemy.ext.asyncio import async_sessionmaker

from activity_audit.config import Settings
from activity_audit.database import utcnow
from activity_audit.exceptions import AuthorizationError
from activity_audit.models.session import SessionStatus
from activity_audit.schemas.activity import ActivityEventCreate
from activity_audit.services.activity_service import ActivityService
from activity_audit.services.session_service import SessionService, is_session_valid
from activity_audit.tracking.classifier import classify_activity
from activity_audit.utils.sanitize import sanitize_headers

logger = logging.getLogger(__name__)

T = TypeVar("T")

IP_HEADERS = ("x-forwarded-for", "x-real-ip", "x-client-ip")


@dataclass
class TrackedRequest:
    """Transport-independent view of a request entering the pipeline."""

    principal: Optional[int]  # User ID, None when only a token is known
    claimed_session_token: Optional[str]
    route: str
    method: str
    input: Optional[Dict[str, Any]] = None
    headers: Dict[str, str] = field(default_factory=dict)
    client_host: Optional[str] = None
    require_active_session: bool = False
    action_name: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None


@dataclass
class ActivityContext:
    """State carried from one pipeline stage to the next."""

    principal_id: Optional[int]
    session_id: Optional[int] = None
    session_token: Optional[str] = None
    ip_address: str = "unknown"
    user_agent: Optional[str] = None
    started_at: datetime = field(default_factory=utcnow)
    started_monotonic: float = field(default_factory=time.monotonic)
    session_valid: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)


def extract_ip_address(headers: Mapping[str, str], client_host: Optional[str] = None) -> str:
    """
    Client IP from proxy headers, falling back to the transport peer.

    Checks ``x-forwarded-for`` (first entry), ``x-real-ip`` and ``x-client-ip``
    in that order.
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    for header in IP_HEADERS:
        value = lowered.get(header)
        if value:
            candidate = value.split(",")[0].strip()
            if candidate:
                return candidate
    return client_host or "unknown"


class ActivityPipeline:
    """Runs the tracking stages around a request handler."""

    def __init__(self, session_factory: async_sessionmaker, settings: Settings):
        self.session_factory = session_factory
        self.settings = settings
        self.stages = (self.validate_session, self.extract_context)

    async def run(self, request: TrackedRequest, handler: Callable[[], Awaitable[T]]) -> T:
        """
        Execute the stage chain, then the handler wrapped in the completion stage.

        Raises:
            AuthorizationError: If the route requires an active session and
                the claimed one is not valid; the handler is not called
            Exception: Whatever the handler raised, unchanged
        """
        context = ActivityContext(principal_id=request.principal)
        for stage in self.stages:
            context = await stage(request, context)
        return await self.complete(request, context, handler)

    async def validate_session(self, request: TrackedRequest, context: ActivityContext) -> ActivityContext:
        """Session validation stage."""
        token = request.claimed_session_token
        valid = False

        if token:
            try:
                valid = await self._check_session(request, context, token)
            except Exception as e:
                logger.warning("Session validation failed, treating session as invalid: %s", e)
                valid = False

        context.session_valid = valid

        if request.require_active_session and not valid:
            raise AuthorizationError("An active session is required")

        return context

    async def _check_session(self, request: TrackedRequest, context: ActivityContext, token: str) -> bool:
        async with self.session_factory() as db:
            sessions = SessionService(db)
            user_session = await sessions.find_by_token(token)
            if user_session is None:
                return False

            if request.principal is not None and user_session.user_id != request.principal:
                logger.warning(
                    "Session %s does not belong to user %s", user_session.id, request.principal
                )
                return False

            context.principal_id = user_session.user_id
            context.session_id = user_session.id
            context.session_token = token

            now = utcnow()
            if is_session_valid(user_session, now):
                await sessions.update_last_activity(token)
                return True

            if user_session.status == SessionStatus.ACTIVE.value and user_session.expires_at <= now:
                try:
                    await sessions.terminate(token, SessionStatus.EXPIRED)
                except Exception as e:
                    logger.warning("Failed to expire session %s: %s", user_session.id, e)
                    await db.rollback()

            return False

    async def extract_context(self, request: TrackedRequest, context: ActivityContext) -> ActivityContext:
        """Context extraction stage."""
        context.ip_address = extract_ip_address(request.headers, request.client_host)
        context.user_agent = {k.lower(): v for k, v in request.headers.items()}.get("user-agent")

        metadata: Dict[str, Any] = {
            "requestHeaders": sanitize_headers(request.headers),
        }
        if request.input:
            metadata["input"] = request.input
        if request.action_name:
            metadata["action"] = request.action_name
        context.metadata = metadata

        return context

    async def complete(
        self,
        request: TrackedRequest,
        context: ActivityContext,
        handler: Callable[[], Awaitable[T]]
    ) -> T:
        """Completion stage: run the handler and record its outcome."""
        try:
            result = await handler()
        except Exception as exc:
            await self._record(
                request,
                context,
                response_status=getattr(exc, "status_code", 500),
                error=exc,
            )
            raise

        await self._record(request, context, response_status=getattr(result, "status_code", None))
        return result

    async def _record(
        self,
        request: TrackedRequest,
        context: ActivityContext,
        response_status: Optional[int] = None,
        error: Optional[BaseException] = None
    ) -> None:
        try:
            if context.principal_id is None:
                logger.debug("Skipping activity for anonymous %s %s", request.method, request.route)
                return

            successful = error is None and (response_status is None or response_status < 400)
            if not successful and not self.settings.ACTIVITY_TRACK_FAILED_REQUESTS:
                return

            classification = classify_activity(request.route, request.method, request.action_name)
            metadata = dict(context.metadata)
            if classification.admin_panel:
                metadata["adminPanel"] = True

            error_message = None
            if error is not None:
                error_message = str(getattr(error, "detail", None) or error) or error.__class__.__name__
            elif not successful:
                error_message = f"Request failed with status {response_status}"

            event = ActivityEventCreate(
                user_id=context.principal_id,
                activity_type=classification.activity_type,
                session_id=context.session_token,
                description=classification.description,
                resource_type=request.resource_type or classification.resource_type,
                resource_id=request.resource_id or classification.resource_id,
                ip_address=context.ip_address,
                user_agent=context.user_agent,
                request_path=request.route[:500],
                request_method=request.method.upper()[:10],
                response_status=response_status,
                duration_ms=max(int((time.monotonic() - context.started_monotonic) * 1000), 0),
                metadata=metadata,
                is_successful=successful,
                error_message=error_message,
            )

            async with self.session_factory() as db:
                await ActivityService(db, self.settings).log_event(event)
        except Exception as e:
            logger.error("Failed to record activity for %s %s: %s", request.method, request.route, e)
