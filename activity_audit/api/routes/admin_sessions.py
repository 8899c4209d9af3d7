"""Admin session management routes."""
import logging
import time
from typing import Optional

from fastapi import APIRouter, Depends, Query

from activity_audit.api.exceptions import not_found
from activity_audit.api.utils.pagination import calculate_pagination
from activity_audit.dependencies import get_current_admin_user, get_session_service
from activity_audit.models.session import SessionStatus
from activity_audit.models.user import User
from activity_audit.schemas.session import (
    SessionListResponse,
    SessionResponse,
    SessionTerminateResponse,
    SweepResponse,
)
from activity_audit.services.session_service import SessionService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/sessions",
    tags=["admin-sessions"],
)


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    user_id: Optional[int] = Query(None, description="Filter by user"),
    session_status: Optional[SessionStatus] = Query(None, alias="status", description="Filter by status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_admin_user),
    session_service: SessionService = Depends(get_session_service),
):
    """List sessions across all users (admin only)."""
    sessions, total = await session_service.list_sessions(
        user_id=user_id,
        status=session_status,
        page=page,
        page_size=page_size,
    )
    _, total_pages = calculate_pagination(total, page, page_size)

    return SessionListResponse(
        items=[SessionResponse.model_validate(s) for s in sessions],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@router.post("/{session_id}/revoke", response_model=SessionTerminateResponse)
async def revoke_session(
    session_id: int,
    current_user: User = Depends(get_current_admin_user),
    session_service: SessionService = Depends(get_session_service),
):
    """Terminate any user's session (admin only). Revoking an ended session is a no-op."""
    user_session = await session_service.find_by_id(session_id)
    if not user_session:
        raise not_found("Session", session_id)

    terminated = await session_service.terminate(user_session.session_token, SessionStatus.TERMINATED)
    if terminated:
        logger.info("Admin %s revoked session %s of user %s", current_user.id, session_id, user_session.user_id)

    return SessionTerminateResponse(
        message="Session revoked" if terminated else "Session already ended",
        terminated=1 if terminated else 0,
    )


@router.post("/sweep", response_model=SweepResponse)
async def sweep_expired_sessions(
    current_user: User = Depends(get_current_admin_user),
    session_service: SessionService = Depends(get_session_service),
):
    """Run the expired-session sweep now (admin only)."""
    start = time.monotonic()
    count = await session_service.sweep_expired()
    logger.info(
        "Manual session sweep by admin %s: %d expired in %.2f seconds",
        current_user.id, count, time.monotonic() - start
    )

    return SweepResponse(message=f"Expired {count} sessions", affected=count)
