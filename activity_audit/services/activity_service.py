"""Activity recorder: append-only audit trail of user actions."""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from activity_audit.config import Settings
from activity_audit.database import utcnow
from activity_audit.models.activity import ActivityEvent, ActivityType
from activity_audit.schemas.activity import ActivityEventCreate, ActivityFilters
from activity_audit.utils.sanitize import (
    DEFAULT_PATTERNS,
    compile_patterns,
    limit_metadata_size,
    sanitize_metadata,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_METADATA_BYTES = 10240


class ActivityService:
    """Service for writing and querying activity events."""

    def __init__(self, session: AsyncSession, settings: Optional[Settings] = None):
        """Initialize activity service."""
        self.session = session
        if settings is not None:
            self.patterns = compile_patterns(settings.ACTIVITY_SENSITIVE_FIELDS)
            self.max_metadata_bytes = settings.ACTIVITY_MAX_METADATA_BYTES
        else:
            self.patterns = DEFAULT_PATTERNS
            self.max_metadata_bytes = DEFAULT_MAX_METADATA_BYTES

    def sanitize(self, metadata: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        """Redact sensitive keys with this service's denylist."""
        return sanitize_metadata(metadata, self.patterns)

    def _build_event(self, data: ActivityEventCreate) -> ActivityEvent:
        metadata = limit_metadata_size(self.sanitize(data.metadata), self.max_metadata_bytes)
        return ActivityEvent(
            user_id=data.user_id,
            session_id=data.session_id,
            activity_type=ActivityType(data.activity_type).value,
            description=data.description,
            resource_type=data.resource_type,
            resource_id=data.resource_id,
            ip_address=data.ip_address,
            user_agent=data.user_agent,
            request_path=data.request_path,
            request_method=data.request_method,
            response_status=data.response_status,
            duration_ms=data.duration_ms,
            event_metadata=metadata,
            is_successful=data.is_successful,
            error_message=data.error_message,
            created_at=data.created_at or utcnow(),
        )

    async def log_event(self, data: ActivityEventCreate) -> ActivityEvent:
        """
        Write one activity event.

        Metadata is sanitized here even if the caller already did so, then
        size-limited.

        Args:
            data: Event to record

        Returns:
            Created ActivityEvent
        """
        activity = self._build_event(data)

        self.session.add(activity)
        await self.session.commit()

        return activity

    async def log(
        self,
        activity_type: ActivityType,
        user_id: int,
        session_id: Optional[str] = None,
        description: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        is_successful: bool = True,
        error_message: Optional[str] = None
    ) -> ActivityEvent:
        """
        Log an activity event.

        Args:
            activity_type: Kind of action (LOGIN, CREATE, ADMIN_ACTION, ...)
            user_id: Principal the event is recorded against
            session_id: Session token the action was made with
            description: Human readable summary
            resource_type: Type of resource affected
            resource_id: ID of the affected resource
            metadata: Additional details; sanitized before storage
            ip_address: IP address of the request
            user_agent: User agent string
            is_successful: Outcome of the action
            error_message: Failure message when unsuccessful

        Returns:
            Created ActivityEvent
        """
        return await self.log_event(ActivityEventCreate(
            user_id=user_id,
            activity_type=activity_type,
            session_id=session_id,
            description=description,
            resource_type=resource_type,
            resource_id=resource_id,
            metadata=self.sanitize(metadata),
            ip_address=ip_address,
            user_agent=user_agent,
            is_successful=is_successful,
            error_message=error_message,
        ))

    async def log_login(
        self,
        user_id: int,
        session_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        success: bool = True,
        metadata: Optional[Dict[str, Any]] = None
    ) -> ActivityEvent:
        """Log a login attempt."""
        return await self.log(
            ActivityType.LOGIN,
            user_id=user_id,
            session_id=session_id,
            description="User logged in" if success else "Login failed",
            ip_address=ip_address,
            user_agent=user_agent,
            is_successful=success,
            metadata=metadata
        )

    async def log_logout(
        self,
        user_id: int,
        session_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> ActivityEvent:
        """Log a logout event."""
        return await self.log(
            ActivityType.LOGOUT,
            user_id=user_id,
            session_id=session_id,
            description="User logged out",
            ip_address=ip_address,
            user_agent=user_agent
        )

    async def log_impersonation_start(
        self,
        admin_user_id: int,
        target_user_id: int,
        session_id: Optional[str] = None,
        reason: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> ActivityEvent:
        """Log the start of an impersonation against the impersonated user."""
        return await self.log(
            ActivityType.IMPERSONATION_START,
            user_id=target_user_id,
            session_id=session_id,
            description=f"Impersonation started by admin {admin_user_id}",
            resource_type="user",
            resource_id=str(target_user_id),
            metadata={"adminId": admin_user_id, "reason": reason},
            ip_address=ip_address,
            user_agent=user_agent
        )

    async def log_impersonation_end(
        self,
        admin_user_id: int,
        target_user_id: int,
        duration_minutes: int,
        session_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> ActivityEvent:
        """Log the end of an impersonation with its duration."""
        return await self.log(
            ActivityType.IMPERSONATION_END,
            user_id=target_user_id,
            session_id=session_id,
            description=f"Impersonation ended by admin {admin_user_id}",
            resource_type="user",
            resource_id=str(target_user_id),
            metadata={"adminId": admin_user_id, "durationMinutes": duration_minutes},
            ip_address=ip_address,
            user_agent=user_agent
        )

    async def log_batch(self, events: Sequence[ActivityEventCreate]) -> List[ActivityEvent]:
        """
        Write several events in a single transaction.

        Returns:
            Created events, in input order
        """
        activities = [self._build_event(data) for data in events]
        if not activities:
            return []

        self.session.add_all(activities)
        await self.session.commit()

        logger.debug("Logged batch of %d activity events", len(activities))
        return activities

    async def query_by_principal(
        self,
        user_id: int,
        limit: int = 50,
        offset: int = 0
    ) -> List[ActivityEvent]:
        """Events of one principal, newest first."""
        result = await self.session.execute(
            select(ActivityEvent)
            .where(ActivityEvent.user_id == user_id)
            .order_by(ActivityEvent.created_at.desc(), ActivityEvent.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def query_by_type(
        self,
        activity_type: ActivityType,
        limit: int = 50,
        offset: int = 0
    ) -> List[ActivityEvent]:
        """Events of one type, newest first."""
        result = await self.session.execute(
            select(ActivityEvent)
            .where(ActivityEvent.activity_type == ActivityType(activity_type).value)
            .order_by(ActivityEvent.created_at.desc(), ActivityEvent.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def query_by_date_range(
        self,
        start: datetime,
        end: datetime,
        limit: Optional[int] = None
    ) -> List[ActivityEvent]:
        """Events with ``start <= created_at < end``, oldest first."""
        query = (
            select(ActivityEvent)
            .where(ActivityEvent.created_at >= start, ActivityEvent.created_at < end)
            .order_by(ActivityEvent.created_at.asc(), ActivityEvent.id.asc())
        )
        if limit is not None:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_events(
        self,
        filters: Optional[ActivityFilters] = None,
        page: int = 1,
        page_size: int = 50
    ) -> Tuple[List[ActivityEvent], int]:
        """
        Filtered, paginated listing for the admin API.

        Returns:
            Tuple of (events newest first, total matching count)
        """
        filters = filters or ActivityFilters()
        conditions = []
        if filters.user_id is not None:
            conditions.append(ActivityEvent.user_id == filters.user_id)
        if filters.session_id:
            conditions.append(ActivityEvent.session_id == filters.session_id)
        if filters.activity_type is not None:
            conditions.append(ActivityEvent.activity_type == ActivityType(filters.activity_type).value)
        if filters.is_successful is not None:
            conditions.append(ActivityEvent.is_successful == filters.is_successful)
        if filters.start_date is not None:
            conditions.append(ActivityEvent.created_at >= filters.start_date)
        if filters.end_date is not None:
            conditions.append(ActivityEvent.created_at < filters.end_date)

        count_query = select(func.count(ActivityEvent.id)).where(*conditions)
        total = (await self.session.execute(count_query)).scalar() or 0

        result = await self.session.execute(
            select(ActivityEvent)
            .where(*conditions)
            .order_by(ActivityEvent.created_at.desc(), ActivityEvent.id.desc())
            .offset((max(page, 1) - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total

    async def sweep_old(self, retention_days: int = 90, now: Optional[datetime] = None) -> int:
        """
        Retention sweep: delete events older than the cutoff.

        Returns:
            Number of events deleted
        """
        cutoff = (now or utcnow()) - timedelta(days=retention_days)
        result = await self.session.execute(
            delete(ActivityEvent).where(ActivityEvent.created_at < cutoff)
        )
        await self.session.commit()
        return result.rowcount or 0
