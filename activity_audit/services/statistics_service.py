"""Statistics aggregator for the admin dashboard."""
import logging
import math
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from activity_audit.config import Settings
from activity_audit.database import utcnow
from activity_audit.models.activity import ActivityEvent, ActivityType
from activity_audit.models.session import SessionStatus, UserSession
from activity_audit.schemas.statistics import (
    ActivityStatistics,
    ActivitySummary,
    MonthlyTrends,
    SessionStatistics,
    TopActiveUser,
    TrendValue,
    UserActivityStatus,
)

logger = logging.getLogger(__name__)

# A principal counts as "currently active" if a session was used this recently
CURRENTLY_ACTIVE_MINUTES = 15
TOP_ACTIVE_USERS_LIMIT = 10


def calc_trend(current: int, previous: int) -> Optional[int]:
    """
    Percentage change from previous to current, rounded half up.

    Returns None when both are zero and 100 when growing from zero.
    """
    if previous == 0:
        return None if current == 0 else 100
    return int(math.floor((current - previous) / previous * 100 + 0.5))


def _minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


def _month_start(moment: datetime) -> datetime:
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def _build_status(
    user_id: int,
    sessions: List[UserSession],
    last_event_at: Optional[datetime],
    cutoff: datetime
) -> UserActivityStatus:
    # Latest event wins; session activity only when there are no events
    last_activity_at = last_event_at
    if last_activity_at is None and sessions:
        last_activity_at = max(s.last_activity_at for s in sessions)

    device_types: List[str] = []
    for s in sessions:
        if s.device_type and s.device_type not in device_types:
            device_types.append(s.device_type)

    return UserActivityStatus(
        user_id=user_id,
        is_currently_active=any(s.last_activity_at >= cutoff for s in sessions),
        last_activity_at=last_activity_at,
        session_count=len(sessions),
        device_types=device_types,
    )


class StatisticsService:
    """Read-only aggregates over sessions and activity events."""

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        """Initialize statistics service."""
        self.session = session
        self.recently_active_hours = settings.RECENTLY_ACTIVE_HOURS if settings else 24

    async def _scalar(self, query) -> int:
        return (await self.session.execute(query)).scalar() or 0

    async def count_currently_active(self, now: Optional[datetime] = None) -> int:
        """Distinct principals with an ACTIVE session used in the last 15 minutes."""
        cutoff = (now or utcnow()) - timedelta(minutes=CURRENTLY_ACTIVE_MINUTES)
        return await self._scalar(
            select(func.count(distinct(UserSession.user_id))).where(
                UserSession.status == SessionStatus.ACTIVE.value,
                UserSession.last_activity_at >= cutoff,
            )
        )

    async def count_recently_active(self, now: Optional[datetime] = None) -> int:
        """Distinct principals with any activity event in the recent window."""
        cutoff = (now or utcnow()) - timedelta(hours=self.recently_active_hours)
        return await self._scalar(
            select(func.count(distinct(ActivityEvent.user_id))).where(
                ActivityEvent.created_at >= cutoff
            )
        )

    async def _count_sessions_by(self, column, conditions) -> Dict[str, int]:
        label = func.coalesce(column, "unknown")
        result = await self.session.execute(
            select(label, func.count(UserSession.id))
            .where(*conditions)
            .group_by(label)
        )
        return {key: count for key, count in result.all()}

    async def get_session_statistics(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None
    ) -> SessionStatistics:
        """
        Session statistics for sessions that started in ``[start, end)``.

        Average duration is in minutes, measured from login to logout, or to
        the last activity for sessions that have not ended.
        """
        conditions = []
        if start is not None:
            conditions.append(UserSession.login_at >= start)
        if end is not None:
            conditions.append(UserSession.login_at < end)

        result = await self.session.execute(
            select(
                UserSession.status,
                UserSession.login_at,
                UserSession.logout_at,
                UserSession.last_activity_at,
            ).where(*conditions)
        )
        rows = result.all()

        durations = [
            _minutes_between(login_at, logout_at or last_activity_at)
            for _, login_at, logout_at, last_activity_at in rows
        ]
        average = round(sum(durations) / len(durations), 2) if durations else 0.0

        return SessionStatistics(
            total_sessions=len(rows),
            active_sessions=sum(1 for row in rows if row[0] == SessionStatus.ACTIVE.value),
            average_session_duration=average,
            sessions_by_status=await self._count_sessions_by(UserSession.status, conditions),
            sessions_by_device=await self._count_sessions_by(UserSession.device_type, conditions),
            sessions_by_browser=await self._count_sessions_by(UserSession.browser, conditions),
        )

    async def get_activity_statistics(self, start: datetime, end: datetime) -> ActivityStatistics:
        """
        Activity totals for ``[start, end)``.

        Hours and days are bucketed in UTC.
        """
        window = (ActivityEvent.created_at >= start, ActivityEvent.created_at < end)

        result = await self.session.execute(
            select(ActivityEvent.activity_type, func.count(ActivityEvent.id))
            .where(*window)
            .group_by(ActivityEvent.activity_type)
        )
        by_type = {activity_type: count for activity_type, count in result.all()}

        failed = await self._scalar(
            select(func.count(ActivityEvent.id)).where(
                *window, ActivityEvent.is_successful.is_(False)
            )
        )

        by_hour = {hour: 0 for hour in range(24)}
        by_day: Dict[str, int] = {}
        timestamps = await self.session.execute(select(ActivityEvent.created_at).where(*window))
        for (created_at,) in timestamps.all():
            by_hour[created_at.hour] += 1
            day = created_at.strftime("%Y-%m-%d")
            by_day[day] = by_day.get(day, 0) + 1

        return ActivityStatistics(
            start=start,
            end=end,
            total_events=sum(by_type.values()),
            failed_events=failed,
            by_type=by_type,
            by_hour=by_hour,
            by_day=dict(sorted(by_day.items())),
        )

    async def get_top_active_users(
        self,
        now: Optional[datetime] = None,
        limit: int = TOP_ACTIVE_USERS_LIMIT
    ) -> List[TopActiveUser]:
        """Principals with the most activity events in the recent window."""
        cutoff = (now or utcnow()) - timedelta(hours=self.recently_active_hours)
        activity_count = func.count(ActivityEvent.id).label("activity_count")
        result = await self.session.execute(
            select(
                ActivityEvent.user_id,
                activity_count,
                func.max(ActivityEvent.created_at).label("last_activity_at"),
            )
            .where(ActivityEvent.created_at >= cutoff)
            .group_by(ActivityEvent.user_id)
            .order_by(activity_count.desc(), ActivityEvent.user_id.asc())
            .limit(limit)
        )
        return [
            TopActiveUser(user_id=user_id, activity_count=count, last_activity_at=last_activity_at)
            for user_id, count, last_activity_at in result.all()
        ]

    async def get_activity_summary(self, now: Optional[datetime] = None) -> ActivitySummary:
        """Live summary: who is online, session load and the most active users."""
        now = now or utcnow()

        result = await self.session.execute(
            select(UserSession.login_at, UserSession.last_activity_at).where(
                UserSession.status == SessionStatus.ACTIVE.value
            )
        )
        active_sessions = result.all()
        durations = [
            _minutes_between(login_at, last_activity_at)
            for login_at, last_activity_at in active_sessions
        ]

        return ActivitySummary(
            currently_active_users=await self.count_currently_active(now),
            recently_active_users=await self.count_recently_active(now),
            total_active_sessions=len(active_sessions),
            average_session_duration=round(sum(durations) / len(durations), 2) if durations else 0.0,
            top_active_users=await self.get_top_active_users(now),
        )

    async def get_user_activity_status(
        self,
        user_id: int,
        now: Optional[datetime] = None
    ) -> UserActivityStatus:
        """Activity status of a single principal based on their ACTIVE sessions."""
        cutoff = (now or utcnow()) - timedelta(minutes=CURRENTLY_ACTIVE_MINUTES)

        result = await self.session.execute(
            select(UserSession).where(
                UserSession.user_id == user_id,
                UserSession.status == SessionStatus.ACTIVE.value,
            )
        )
        sessions = list(result.scalars().all())

        last_event_at = (await self.session.execute(
            select(func.max(ActivityEvent.created_at)).where(ActivityEvent.user_id == user_id)
        )).scalar()

        return _build_status(user_id, sessions, last_event_at, cutoff)

    async def get_bulk_user_activity_status(
        self,
        user_ids: List[int],
        now: Optional[datetime] = None
    ) -> List[UserActivityStatus]:
        """
        Activity status of several principals.

        Uses one session query and one event query for the whole batch.

        Returns:
            One status per distinct user ID, in request order
        """
        user_ids = list(dict.fromkeys(user_ids))
        if not user_ids:
            return []
        cutoff = (now or utcnow()) - timedelta(minutes=CURRENTLY_ACTIVE_MINUTES)

        result = await self.session.execute(
            select(UserSession).where(
                UserSession.user_id.in_(user_ids),
                UserSession.status == SessionStatus.ACTIVE.value,
            )
        )
        sessions_by_user: Dict[int, List[UserSession]] = {}
        for s in result.scalars().all():
            sessions_by_user.setdefault(s.user_id, []).append(s)

        rows = await self.session.execute(
            select(ActivityEvent.user_id, func.max(ActivityEvent.created_at))
            .where(ActivityEvent.user_id.in_(user_ids))
            .group_by(ActivityEvent.user_id)
        )
        last_events = {user_id: last_at for user_id, last_at in rows.all()}

        return [
            _build_status(user_id, sessions_by_user.get(user_id, []), last_events.get(user_id), cutoff)
            for user_id in user_ids
        ]

    async def _month_counts(self, start: datetime, end: datetime) -> Tuple[int, int, int, int]:
        window = (ActivityEvent.created_at >= start, ActivityEvent.created_at < end)
        logins = await self._scalar(
            select(func.count(ActivityEvent.id)).where(
                *window, ActivityEvent.activity_type == ActivityType.LOGIN.value
            )
        )
        active_users = await self._scalar(
            select(func.count(distinct(ActivityEvent.user_id))).where(*window)
        )
        activities = await self._scalar(select(func.count(ActivityEvent.id)).where(*window))
        new_sessions = await self._scalar(
            select(func.count(UserSession.id)).where(
                UserSession.login_at >= start, UserSession.login_at < end
            )
        )
        return logins, active_users, activities, new_sessions

    async def get_monthly_trends(self, now: Optional[datetime] = None) -> MonthlyTrends:
        """
        Month-over-month comparison.

        The current month runs from its first day up to ``now``; the previous
        month is the whole calendar month before it.
        """
        now = now or utcnow()
        current_start = _month_start(now)
        previous_start = _month_start(current_start - timedelta(days=1))

        current = await self._month_counts(current_start, now)
        previous = await self._month_counts(previous_start, current_start)

        def trend(index: int) -> TrendValue:
            return TrendValue(
                current=current[index],
                previous=previous[index],
                percentage=calc_trend(current[index], previous[index]),
            )

        return MonthlyTrends(
            logins=trend(0),
            active_users=trend(1),
            activities=trend(2),
            new_sessions=trend(3),
        )
