"""Pydantic schemas for dashboard statistics."""
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel


class SessionStatistics(BaseModel):
    """Session statistics for a window."""

    total_sessions: int
    active_sessions: int
    average_session_duration: float  # minutes
    sessions_by_status: Dict[str, int]
    sessions_by_device: Dict[str, int]
    sessions_by_browser: Dict[str, int]


class ActivityStatistics(BaseModel):
    """Activity statistics for a [start, end) window."""

    start: datetime
    end: datetime
    total_events: int
    failed_events: int
    by_type: Dict[str, int]
    by_hour: Dict[int, int]
    by_day: Dict[str, int]


class TopActiveUser(BaseModel):
    user_id: int
    activity_count: int
    last_activity_at: datetime


class ActivitySummary(BaseModel):
    """Live dashboard summary."""

    currently_active_users: int
    recently_active_users: int
    total_active_sessions: int
    average_session_duration: float  # minutes, over active sessions
    top_active_users: List[TopActiveUser]


class UserActivityStatus(BaseModel):
    """Activity status of one principal."""

    user_id: int
    is_currently_active: bool
    last_activity_at: Optional[datetime]
    session_count: int
    device_types: List[str]


class TrendValue(BaseModel):
    current: int
    previous: int
    percentage: Optional[int]


class MonthlyTrends(BaseModel):
    """Month-over-month counts."""

    logins: TrendValue
    active_users: TrendValue
    activities: TrendValue
    new_sessions: TrendValue


class DashboardResponse(BaseModel):
    """Admin dashboard payload."""

    summary: ActivitySummary
    sessions: SessionStatistics
    trends: MonthlyTrends
