"""Admin activity audit routes."""
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from activity_audit.api.exceptions import bad_request
from activity_audit.api.utils.pagination import calculate_pagination
from activity_audit.database import utcnow
from activity_audit.dependencies import (
    get_activity_service,
    get_current_admin_user,
    get_statistics_service,
)
from activity_audit.models.activity import ActivityType
from activity_audit.models.user import User
from activity_audit.schemas.activity import ActivityEventResponse, ActivityFilters, ActivityListResponse
from activity_audit.schemas.statistics import ActivityStatistics, UserActivityStatus
from activity_audit.services.activity_service import ActivityService
from activity_audit.services.statistics_service import StatisticsService

logger = logging.getLogger(__name__)

MAX_BULK_STATUS_USERS = 100

router = APIRouter(
    prefix="/api/admin/activity",
    tags=["admin-activity"],
)


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


@router.get("", response_model=ActivityListResponse)
async def list_activity(
    user_id: Optional[int] = Query(None),
    session_id: Optional[str] = Query(None),
    activity_type: Optional[ActivityType] = Query(None),
    is_successful: Optional[bool] = Query(None),
    start_date: Optional[datetime] = Query(None, description="Inclusive lower bound"),
    end_date: Optional[datetime] = Query(None, description="Exclusive upper bound"),
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_admin_user),
    activity_service: ActivityService = Depends(get_activity_service),
):
    """List activity events with filters, newest first (admin only)."""
    filters = ActivityFilters(
        user_id=user_id,
        session_id=session_id,
        activity_type=activity_type,
        is_successful=is_successful,
        start_date=start_date,
        end_date=end_date,
    )
    events, total = await activity_service.list_events(filters, page=page, page_size=page_size)
    _, total_pages = calculate_pagination(total, page, page_size)

    return ActivityListResponse(
        items=[ActivityEventResponse.model_validate(e) for e in events],
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
    )


@router.get("/stats", response_model=ActivityStatistics)
async def get_activity_stats(
    start: Optional[datetime] = Query(None, description="Window start, defaults to 7 days ago"),
    end: Optional[datetime] = Query(None, description="Window end (exclusive), defaults to now"),
    current_user: User = Depends(get_current_admin_user),
    statistics_service: StatisticsService = Depends(get_statistics_service),
):
    """Activity totals by type, hour of day and calendar day (admin only)."""
    end = _as_utc(end) if end else utcnow()
    start = _as_utc(start) if start else end - timedelta(days=7)
    if start >= end:
        raise bad_request("start must be before end")

    return await statistics_service.get_activity_statistics(start, end)


@router.get("/users/{user_id}/status", response_model=UserActivityStatus)
async def get_user_status(
    user_id: int,
    current_user: User = Depends(get_current_admin_user),
    statistics_service: StatisticsService = Depends(get_statistics_service),
):
    """Whether a user is currently active and on which devices (admin only)."""
    return await statistics_service.get_user_activity_status(user_id)


@router.get("/users/status", response_model=List[UserActivityStatus])
async def get_bulk_user_status(
    user_ids: List[int] = Query(..., description="Users to report on, repeat the parameter per user"),
    current_user: User = Depends(get_current_admin_user),
    statistics_service: StatisticsService = Depends(get_statistics_service),
):
    """Activity status of several users at once (admin only)."""
    if len(user_ids) > MAX_BULK_STATUS_USERS:
        raise bad_request(f"At most {MAX_BULK_STATUS_USERS} users per request")

    return await statistics_service.get_bulk_user_activity_status(user_ids)
