"""Admin impersonation routes."""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from activity_audit.api.exceptions import forbidden, not_found
from activity_audit.api.utils.pagination import calculate_pagination
from activity_audit.api.utils.request import extract_client_metadata
from activity_audit.dependencies import (
    get_current_admin_user,
    get_current_session,
    get_current_user,
    get_impersonation_service,
)
from activity_audit.models.impersonation import ImpersonationStatus
from activity_audit.models.session import UserSession
from activity_audit.models.user import User
from activity_audit.schemas.impersonation import (
    ImpersonationEndRequest,
    ImpersonationLogListResponse,
    ImpersonationLogResponse,
    ImpersonationMeta,
    ImpersonationResult,
    ImpersonationStartRequest,
)
from activity_audit.services.impersonation_service import ImpersonationService

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/impersonation",
    tags=["admin-impersonation"],
)


@router.post("/start", response_model=ImpersonationResult)
async def start_impersonation(
    data: ImpersonationStartRequest,
    request: Request,
    current_user: User = Depends(get_current_admin_user),
    impersonation_service: ImpersonationService = Depends(get_impersonation_service),
):
    """
    Start impersonating a user (super admin only).

    Returns a fresh token pair for the target user. The admin's own session
    stays active.
    """
    ip_address, user_agent = extract_client_metadata(request)
    return await impersonation_service.start_impersonation(
        current_user,
        data.target_user_id,
        ImpersonationMeta(ip_address=ip_address, user_agent=user_agent, reason=data.reason),
    )


@router.post("/end", response_model=ImpersonationLogResponse)
async def end_impersonation(
    request: Request,
    data: Optional[ImpersonationEndRequest] = None,
    current_session: UserSession = Depends(get_current_session),
    current_user: User = Depends(get_current_user),
    impersonation_service: ImpersonationService = Depends(get_impersonation_service),
):
    """
    End an impersonation.

    Called with the impersonation token itself, or by the admin who started
    it passing that token in the body.
    """
    session_token = (data.session_token if data else None) or current_session.session_token

    if session_token != current_session.session_token:
        impersonation_log = await impersonation_service.get_by_session_token(session_token)
        if not impersonation_log:
            raise not_found("Impersonation session")
        if impersonation_log.admin_user_id != current_user.id:
            raise forbidden("Only the admin who started this impersonation can end it")

    ip_address, user_agent = extract_client_metadata(request)
    return await impersonation_service.end_impersonation(
        session_token, ip_address=ip_address, user_agent=user_agent
    )


@router.get("/active", response_model=Optional[ImpersonationLogResponse])
async def get_active_impersonation(
    current_user: User = Depends(get_current_admin_user),
    impersonation_service: ImpersonationService = Depends(get_impersonation_service),
):
    """The caller's active impersonation, or null."""
    return await impersonation_service.get_active_for_admin(current_user.id)


@router.get("/logs", response_model=ImpersonationLogListResponse)
async def list_impersonation_logs(
    admin_user_id: Optional[int] = Query(None),
    log_status: Optional[ImpersonationStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_admin_user),
    impersonation_service: ImpersonationService = Depends(get_impersonation_service),
):
    """Impersonation audit trail (admin only)."""
    logs, total = await impersonation_service.list_logs(
        admin_user_id=admin_user_id,
        status=log_status,
        page=page,
        page_size=page_size,
    )
    _, total_pages = calculate_pagination(total, page, page_size)

    return ImpersonationLogListResponse(
        items=[ImpersonationLogResponse.model_validate(log) for log in logs],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )
