"""Session store: persistence and lifecycle of user sessions."""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from activity_audit.database import utcnow
from activity_audit.exceptions import ConflictError, NotFoundError, ValidationError
from activity_audit.models.session import SessionStatus, UserSession
from activity_audit.schemas.session import SessionCreate
from activity_audit.utils.user_agent import parse_user_agent

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (
    SessionStatus.EXPIRED,
    SessionStatus.TERMINATED,
    SessionStatus.LOGGED_OUT,
)


def is_session_valid(session: Optional[UserSession], now: Optional[datetime] = None) -> bool:
    """
    Session validity predicate.

    A session is valid iff it is ACTIVE, not yet expired and has no logout
    time. ``expires_at == now`` counts as expired.
    """
    if session is None:
        return False
    now = now or utcnow()
    return (
        session.status == SessionStatus.ACTIVE.value
        and session.expires_at > now
        and session.logout_at is None
    )


class SessionService:
    """Service for creating, looking up and terminating sessions."""

    def __init__(self, session: AsyncSession):
        """Initialize session service."""
        self.session = session

    async def create_session(self, data: SessionCreate, commit: bool = True) -> UserSession:
        """
        Persist a new ACTIVE session.

        Args:
            data: Token, expiry and client metadata from the login
            commit: Commit immediately; when False the row is only flushed so the
                caller can add more rows to the same transaction

        Returns:
            Created UserSession

        Raises:
            ConflictError: If the session or refresh token already exists
        """
        device = parse_user_agent(data.user_agent)
        now = utcnow()

        user_session = UserSession(
            user_id=data.user_id,
            session_token=data.session_token,
            refresh_token=data.refresh_token,
            status=SessionStatus.ACTIVE.value,
            device_type=data.device_type or device.device_type,
            browser=data.browser or device.browser,
            operating_system=data.operating_system or device.operating_system,
            ip_address=data.ip_address,
            user_agent=data.user_agent,
            login_at=now,
            last_activity_at=now,
            expires_at=data.expires_at,
            is_remember_me=data.is_remember_me,
            session_data=data.session_data,
            created_at=now,
        )

        self.session.add(user_session)
        try:
            if commit:
                await self.session.commit()
            else:
                await self.session.flush()
        except IntegrityError:
            await self.session.rollback()
            logger.warning("Session token collision for user %s", data.user_id)
            raise ConflictError("Session token already exists")

        logger.debug("Session created for user %s", data.user_id)
        return user_session

    async def find_by_token(self, session_token: str) -> Optional[UserSession]:
        """Look up a session by its access token."""
        result = await self.session.execute(
            select(UserSession).where(UserSession.session_token == session_token)
        )
        return result.scalar_one_or_none()

    async def find_by_refresh_token(self, refresh_token: str) -> Optional[UserSession]:
        """Look up a session by its refresh token."""
        result = await self.session.execute(
            select(UserSession).where(UserSession.refresh_token == refresh_token)
        )
        return result.scalar_one_or_none()

    async def find_by_id(self, session_id: int) -> Optional[UserSession]:
        result = await self.session.execute(
            select(UserSession).where(UserSession.id == session_id)
        )
        return result.scalar_one_or_none()

    async def list_for_principal(
        self,
        user_id: int,
        active_only: bool = False,
        limit: int = 50
    ) -> List[UserSession]:
        """
        Session history for a principal, newest first.

        Args:
            user_id: Principal ID
            active_only: Only sessions that are ACTIVE and not past expiry
            limit: Maximum rows returned
        """
        query = select(UserSession).where(UserSession.user_id == user_id)
        if active_only:
            query = query.where(
                UserSession.status == SessionStatus.ACTIVE.value,
                UserSession.expires_at > utcnow(),
            )
        query = query.order_by(UserSession.login_at.desc()).limit(limit)

        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def list_sessions(
        self,
        user_id: Optional[int] = None,
        status: Optional[SessionStatus] = None,
        page: int = 1,
        page_size: int = 50
    ) -> Tuple[List[UserSession], int]:
        """Filtered, paginated session listing for the admin console."""
        query = select(UserSession).order_by(UserSession.login_at.desc())
        count_query = select(func.count(UserSession.id))

        if user_id is not None:
            query = query.where(UserSession.user_id == user_id)
            count_query = count_query.where(UserSession.user_id == user_id)

        if status is not None:
            query = query.where(UserSession.status == SessionStatus(status).value)
            count_query = count_query.where(UserSession.status == SessionStatus(status).value)

        total = (await self.session.execute(count_query)).scalar() or 0
        result = await self.session.execute(query.offset((max(page, 1) - 1) * page_size).limit(page_size))
        return list(result.scalars().all()), total

    async def update_last_activity(self, session_token: str) -> bool:
        """
        Bump ``last_activity_at`` for a session.

        Best effort: failures are logged and swallowed so the caller's request
        is never aborted by activity bookkeeping.

        Returns:
            True if a row was updated
        """
        try:
            result = await self.session.execute(
                update(UserSession)
                .where(UserSession.session_token == session_token)
                .values(last_activity_at=utcnow())
            )
            await self.session.commit()
            return (result.rowcount or 0) > 0
        except Exception as e:
            logger.warning("Failed to update session activity: %s", e)
            try:
                await self.session.rollback()
            except Exception as rollback_error:
                logger.warning("Rollback after session activity failure failed: %s", rollback_error)
            return False

    async def terminate(
        self,
        session_token: str,
        reason: SessionStatus = SessionStatus.LOGGED_OUT
    ) -> bool:
        """
        End a session.

        Idempotent: terminating a session that is no longer ACTIVE leaves it
        untouched.

        Args:
            session_token: Session to end
            reason: Terminal status to record (LOGGED_OUT, TERMINATED or EXPIRED)

        Returns:
            True if the session transitioned, False if it was already ended

        Raises:
            ValidationError: If reason is not a terminal status
            NotFoundError: If no session has this token
        """
        reason = SessionStatus(reason)
        if reason not in TERMINAL_STATUSES:
            raise ValidationError(f"Cannot terminate a session with status '{reason.value}'")

        user_session = await self.find_by_token(session_token)
        if not user_session:
            raise NotFoundError("Session not found")

        if user_session.status != SessionStatus.ACTIVE.value:
            logger.debug("Session %s already %s", user_session.id, user_session.status)
            return False

        session_id, user_id = user_session.id, user_session.user_id
        result = await self.session.execute(
            update(UserSession)
            .where(
                UserSession.id == session_id,
                UserSession.status == SessionStatus.ACTIVE.value,
            )
            .values(status=reason.value, logout_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        await self.session.refresh(user_session)

        if not result.rowcount:
            # Ended concurrently; the stored terminal state wins
            logger.debug("Session %s already %s", session_id, user_session.status)
            return False

        logger.info("Session %s for user %s ended (%s)", session_id, user_id, reason.value)
        return True

    async def terminate_all_for_principal(
        self,
        user_id: int,
        except_token: Optional[str] = None
    ) -> int:
        """
        Terminate every ACTIVE session of a principal ("log out everywhere").

        Args:
            user_id: Principal ID
            except_token: Session to keep (typically the caller's current one)

        Returns:
            Number of sessions terminated
        """
        stmt = (
            update(UserSession)
            .where(
                UserSession.user_id == user_id,
                UserSession.status == SessionStatus.ACTIVE.value,
            )
            .values(status=SessionStatus.TERMINATED.value, logout_at=utcnow())
        )
        if except_token:
            stmt = stmt.where(UserSession.session_token != except_token)

        result = await self.session.execute(stmt)
        await self.session.commit()

        count = result.rowcount or 0
        logger.info("Terminated %d sessions for user %s", count, user_id)
        return count

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Transition ACTIVE sessions past their expiry to EXPIRED.

        ``logout_at`` is set to the session's own expiry time so session
        durations are not stretched to the sweep time.

        Returns:
            Number of sessions expired
        """
        now = now or utcnow()
        result = await self.session.execute(
            update(UserSession)
            .where(
                UserSession.status == SessionStatus.ACTIVE.value,
                UserSession.expires_at < now,
            )
            .values(status=SessionStatus.EXPIRED.value, logout_at=UserSession.expires_at)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount or 0

    async def delete_old_sessions(self, retention_days: int = 30, now: Optional[datetime] = None) -> int:
        """
        Retention sweep: delete ended sessions older than the cutoff.

        ACTIVE sessions are never deleted.

        Returns:
            Number of sessions deleted
        """
        cutoff = (now or utcnow()) - timedelta(days=retention_days)
        result = await self.session.execute(
            delete(UserSession).where(
                UserSession.created_at < cutoff,
                UserSession.status != SessionStatus.ACTIVE.value,
            )
        )
        await self.session.commit()
        return result.rowcount or 0
