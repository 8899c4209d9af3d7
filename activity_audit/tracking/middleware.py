"""HTTP adapter running the activity pipeline around every request."""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from activity_audit.api.utils.request import extract_session_token
from activity_audit.config import Settings
from activity_audit.tracking.classifier import should_track
from activity_audit.tracking.pipeline import ActivityPipeline, TrackedRequest

logger = logging.getLogger(__name__)


class ActivityTrackingMiddleware(BaseHTTPMiddleware):
    """
    Activity tracking middleware for FastAPI/Starlette.

    Requests carrying a session token are validated and recorded as one
    activity event each. Requests without a token pass through untouched.
    """

    def __init__(
        self,
        app,
        settings: Settings,
        session_factory: Optional[async_sessionmaker] = None,
    ):
        """
        Initialize activity tracking middleware.

        Args:
            app: The ASGI application
            settings: Tracking switches, excluded paths and metadata limits
            session_factory: Session factory for tracking writes; defaults to
                the one stored on ``app.state`` at startup
        """
        super().__init__(app)
        self.settings = settings
        self.session_factory = session_factory

    def _is_exempt(self, path: str) -> bool:
        return not should_track(path, self.settings.ACTIVITY_EXCLUDE_PATHS)

    async def dispatch(self, request: Request, call_next) -> Response:
        """Process request through the activity pipeline."""
        if not self.settings.ACTIVITY_TRACKING_ENABLED or self._is_exempt(request.url.path):
            return await call_next(request)

        token = extract_session_token(request)
        if not token:
            return await call_next(request)

        session_factory = self.session_factory or getattr(request.app.state, "session_factory", None)
        if session_factory is None:
            logger.warning("Activity tracking skipped: no session factory configured")
            return await call_next(request)

        tracked = TrackedRequest(
            principal=None,
            claimed_session_token=token,
            route=request.url.path,
            method=request.method,
            input=dict(request.query_params) or None,
            headers=dict(request.headers),
            client_host=request.client.host if request.client else None,
        )

        pipeline = ActivityPipeline(session_factory, self.settings)
        return await pipeline.run(tracked, lambda: call_next(request))
