"""Self-service session routes."""
import logging
from typing import List

from fastapi import APIRouter, Depends, Query, Response

from activity_audit.api.utils.request import SESSION_COOKIE_NAME
from activity_audit.dependencies import get_current_session, get_current_user, get_session_service
from activity_audit.models.session import SessionStatus, UserSession
from activity_audit.models.user import User
from activity_audit.schemas.session import SessionResponse, SessionTerminateResponse
from activity_audit.services.session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/sessions",
    tags=["sessions"],
)


@router.get("", response_model=List[SessionResponse])
async def list_my_sessions(
    active_only: bool = Query(False, description="Only sessions that are still active"),
    limit: int = Query(50, ge=1, le=200),
    current_session: UserSession = Depends(get_current_session),
    current_user: User = Depends(get_current_user),
    session_service: SessionService = Depends(get_session_service),
):
    """
    List the current user's sessions, newest first.

    The session used for this request is flagged with ``is_current``.
    """
    sessions = await session_service.list_for_principal(
        current_user.id, active_only=active_only, limit=limit
    )

    items = []
    for s in sessions:
        item = SessionResponse.model_validate(s)
        item.is_current = s.id == current_session.id
        items.append(item)
    return items


@router.post("/logout", response_model=SessionTerminateResponse)
async def logout(
    response: Response,
    current_session: UserSession = Depends(get_current_session),
    session_service: SessionService = Depends(get_session_service),
):
    """End the session used for this request."""
    terminated = await session_service.terminate(current_session.session_token, SessionStatus.LOGGED_OUT)
    response.delete_cookie(SESSION_COOKIE_NAME)

    return SessionTerminateResponse(
        message="Logged out successfully",
        terminated=1 if terminated else 0,
    )


@router.post("/logout-all", response_model=SessionTerminateResponse)
async def logout_everywhere(
    current_session: UserSession = Depends(get_current_session),
    session_service: SessionService = Depends(get_session_service),
):
    """End every other active session of the current user."""
    count = await session_service.terminate_all_for_principal(
        current_session.user_id, except_token=current_session.session_token
    )
    logger.info("User %s logged out %d other sessions", current_session.user_id, count)

    return SessionTerminateResponse(
        message=f"Logged out of {count} other sessions",
        terminated=count,
    )
