"""Admin dashboard routes."""
from datetime import timedelta

from fastapi import APIRouter, Depends, Query

from activity_audit.database import utcnow
from activity_audit.dependencies import get_current_admin_user, get_statistics_service
from activity_audit.models.user import User
from activity_audit.schemas.statistics import DashboardResponse
from activity_audit.services.statistics_service import StatisticsService
from activity_audit.tasks.scheduler import list_jobs

router = APIRouter(
    prefix="/api/admin",
    tags=["admin-dashboard"],
)


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    days: int = Query(30, ge=1, le=365, description="Session statistics window in days"),
    current_user: User = Depends(get_current_admin_user),
    statistics_service: StatisticsService = Depends(get_statistics_service),
):
    """Live activity summary, session statistics and month-over-month trends."""
    now = utcnow()
    return DashboardResponse(
        summary=await statistics_service.get_activity_summary(now),
        sessions=await statistics_service.get_session_statistics(now - timedelta(days=days), now),
        trends=await statistics_service.get_monthly_trends(now),
    )


@router.get("/scheduler/jobs")
async def get_scheduled_jobs(current_user: User = Depends(get_current_admin_user)):
    """Get list of scheduled background jobs."""
    return {"jobs": list_jobs()}
