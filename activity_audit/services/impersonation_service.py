"""Impersonation controller: super admins acting as another user."""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from activity_audit.config import Settings
from activity_audit.database import utcnow
from activity_audit.exceptions import (
    AuthorizationError,
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    ValidationError,
)
from activity_audit.models.impersonation import ImpersonationLog, ImpersonationStatus
from activity_audit.models.session import SessionStatus, UserSession
from activity_audit.models.user import User
from activity_audit.schemas.impersonation import ImpersonationMeta, ImpersonationResult
from activity_audit.schemas.session import SessionCreate
from activity_audit.services.activity_service import ActivityService
from activity_audit.services.session_service import SessionService
from activity_audit.services.token_service import OpaqueTokenIssuer, TokenIssuer

logger = logging.getLogger(__name__)

ALREADY_ACTIVE_MESSAGE = "An impersonation is already active for this admin"
TOKEN_IN_USE_MESSAGE = "Impersonation session token already in use"


class ImpersonationService:
    """Service for starting, ending and expiring impersonations."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        token_issuer: Optional[TokenIssuer] = None
    ):
        """
        Initialize impersonation service.

        Args:
            session: Database session
            settings: Application settings (session lifetime, max duration)
            token_issuer: Token minting strategy, opaque random tokens by default
        """
        self.session = session
        self.settings = settings
        self.token_issuer = token_issuer or OpaqueTokenIssuer()
        self.sessions = SessionService(session)
        self.activities = ActivityService(session, settings)

    async def get_active_for_admin(self, admin_user_id: int) -> Optional[ImpersonationLog]:
        """The ACTIVE impersonation of an admin, if any."""
        result = await self.session.execute(
            select(ImpersonationLog).where(
                ImpersonationLog.admin_user_id == admin_user_id,
                ImpersonationLog.status == ImpersonationStatus.ACTIVE.value,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_session_token(self, session_token: str) -> Optional[ImpersonationLog]:
        result = await self.session.execute(
            select(ImpersonationLog).where(ImpersonationLog.session_token == session_token)
        )
        return result.scalar_one_or_none()

    async def start_impersonation(
        self,
        admin: Optional[User],
        target_user_id: Optional[int],
        meta: Optional[ImpersonationMeta] = None
    ) -> ImpersonationResult:
        """
        Start impersonating a user.

        The impersonation session and its ACTIVE log are committed together,
        so the returned token is never usable without an audit row.

        Args:
            admin: Acting principal, must be a super admin
            target_user_id: User to impersonate
            meta: Request IP, user agent and free-text reason

        Returns:
            ImpersonationResult with the token pair and log ID

        Raises:
            AuthorizationError: If the actor is not a super admin
            ValidationError: If no target is given
            InvalidArgumentError: If the admin targets themselves
            NotFoundError: If the target does not exist
            ForbiddenError: If the target is a super admin
            ConflictError: If the admin already has an active impersonation, or
                the minted token is already in use
        """
        meta = meta or ImpersonationMeta()

        if admin is None or not admin.is_super_admin:
            raise AuthorizationError("Only super admins can impersonate users")

        if target_user_id is None:
            raise ValidationError("Target user ID is required")

        admin_id = admin.id
        if target_user_id == admin_id:
            raise InvalidArgumentError("Cannot impersonate yourself")

        target = await self.session.get(User, target_user_id)
        if not target:
            raise NotFoundError("Target user not found")

        if target.is_super_admin:
            raise ForbiddenError("Cannot impersonate another super admin")

        if await self.get_active_for_admin(admin_id):
            raise ConflictError(ALREADY_ACTIVE_MESSAGE)

        tokens = self.token_issuer.issue_token_pair(
            target,
            expires_in_hours=self.settings.IMPERSONATION_SESSION_HOURS,
        )

        # Logs outlive their sessions, so the session store alone misses reuse
        if await self.get_by_session_token(tokens.access_token):
            logger.warning("Impersonation token collision for admin %s", admin_id)
            raise ConflictError(TOKEN_IN_USE_MESSAGE)

        await self.sessions.create_session(
            SessionCreate(
                user_id=target.id,
                session_token=tokens.access_token,
                refresh_token=tokens.refresh_token,
                expires_at=tokens.expires_at,
                ip_address=meta.ip_address,
                user_agent=meta.user_agent,
                session_data={
                    "isImpersonating": True,
                    "originalAdminId": admin_id,
                },
            ),
            commit=False,
        )

        impersonation_log = ImpersonationLog(
            admin_user_id=admin_id,
            impersonated_user_id=target.id,
            started_at=utcnow(),
            ip_address=meta.ip_address,
            user_agent=meta.user_agent,
            reason=meta.reason,
            session_token=tokens.access_token,
            status=ImpersonationStatus.ACTIVE.value,
        )
        self.session.add(impersonation_log)

        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            if await self.get_by_session_token(tokens.access_token):
                logger.warning("Impersonation token collision for admin %s", admin_id)
                raise ConflictError(TOKEN_IN_USE_MESSAGE)
            logger.warning("Concurrent impersonation start rejected for admin %s", admin_id)
            raise ConflictError(ALREADY_ACTIVE_MESSAGE)

        target_id, log_id = target.id, impersonation_log.id
        logger.info("Admin %s started impersonating user %s (log %s)", admin_id, target_id, log_id)

        try:
            await self.activities.log_impersonation_start(
                admin_user_id=admin_id,
                target_user_id=target_id,
                session_id=tokens.access_token,
                reason=meta.reason,
                ip_address=meta.ip_address,
                user_agent=meta.user_agent,
            )
        except Exception as e:
            logger.error("Failed to record impersonation start event: %s", e)
            await self.session.rollback()

        return ImpersonationResult(
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            impersonation_log_id=log_id,
            expires_at=tokens.expires_at,
        )

    async def end_impersonation(
        self,
        session_token: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> ImpersonationLog:
        """
        End an impersonation by its session token.

        Ending an impersonation that is no longer ACTIVE returns the log
        unchanged.

        Raises:
            NotFoundError: If no impersonation used this token
        """
        impersonation_log = await self.get_by_session_token(session_token)
        if not impersonation_log:
            raise NotFoundError("Impersonation session not found")

        if impersonation_log.status != ImpersonationStatus.ACTIVE.value:
            return impersonation_log

        now = utcnow()
        log_id = impersonation_log.id
        result = await self.session.execute(
            update(ImpersonationLog)
            .where(
                ImpersonationLog.id == log_id,
                ImpersonationLog.status == ImpersonationStatus.ACTIVE.value,
            )
            .values(status=ImpersonationStatus.ENDED.value, ended_at=now)
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            # Expired or ended concurrently; the stored terminal state wins
            await self.session.commit()
            await self.session.refresh(impersonation_log)
            logger.info("Impersonation %s already %s", log_id, impersonation_log.status)
            return impersonation_log

        await self.session.execute(
            update(UserSession)
            .where(
                UserSession.session_token == session_token,
                UserSession.status == SessionStatus.ACTIVE.value,
            )
            .values(status=SessionStatus.TERMINATED.value, logout_at=now)
        )
        await self.session.commit()
        await self.session.refresh(impersonation_log)

        duration_minutes = int((now - impersonation_log.started_at).total_seconds() // 60)
        logger.info(
            "Admin %s stopped impersonating user %s after %d minutes",
            impersonation_log.admin_user_id, impersonation_log.impersonated_user_id, duration_minutes
        )

        try:
            await self.activities.log_impersonation_end(
                admin_user_id=impersonation_log.admin_user_id,
                target_user_id=impersonation_log.impersonated_user_id,
                duration_minutes=duration_minutes,
                session_id=session_token,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        except Exception as e:
            logger.error("Failed to record impersonation end event: %s", e)
            await self.session.rollback()
            await self.session.refresh(impersonation_log)

        return impersonation_log

    async def cleanup_expired(
        self,
        max_duration_hours: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> int:
        """
        Expire impersonations that outlived the maximum duration.

        Their sessions, if still ACTIVE, are expired as well.

        Returns:
            Number of impersonation logs expired
        """
        if max_duration_hours is None:
            max_duration_hours = self.settings.IMPERSONATION_MAX_DURATION_HOURS
        now = now or utcnow()
        cutoff = now - timedelta(hours=max_duration_hours)

        result = await self.session.execute(
            select(ImpersonationLog.id, ImpersonationLog.session_token).where(
                ImpersonationLog.status == ImpersonationStatus.ACTIVE.value,
                ImpersonationLog.started_at < cutoff,
            )
        )
        stale = result.all()
        if not stale:
            return 0

        # Rows ended since the select keep their terminal state
        expired = await self.session.execute(
            update(ImpersonationLog)
            .where(
                ImpersonationLog.id.in_([row.id for row in stale]),
                ImpersonationLog.status == ImpersonationStatus.ACTIVE.value,
            )
            .values(status=ImpersonationStatus.EXPIRED.value, ended_at=now)
            .execution_options(synchronize_session=False)
        )
        count = expired.rowcount or 0
        tokens = [row.session_token for row in stale]

        await self.session.execute(
            update(UserSession)
            .where(
                UserSession.session_token.in_(tokens),
                UserSession.status == SessionStatus.ACTIVE.value,
            )
            .values(status=SessionStatus.EXPIRED.value, logout_at=now)
        )
        await self.session.commit()

        logger.info("Expired %d impersonations older than %d hours", count, max_duration_hours)
        return count

    async def list_logs(
        self,
        admin_user_id: Optional[int] = None,
        status: Optional[ImpersonationStatus] = None,
        page: int = 1,
        page_size: int = 50
    ) -> Tuple[List[ImpersonationLog], int]:
        """Impersonation history, newest first, with total count."""
        conditions = []
        if admin_user_id is not None:
            conditions.append(ImpersonationLog.admin_user_id == admin_user_id)
        if status is not None:
            conditions.append(ImpersonationLog.status == ImpersonationStatus(status).value)

        total = (await self.session.execute(
            select(func.count(ImpersonationLog.id)).where(*conditions)
        )).scalar() or 0

        result = await self.session.execute(
            select(ImpersonationLog)
            .where(*conditions)
            .order_by(ImpersonationLog.started_at.desc(), ImpersonationLog.id.desc())
            .offset((max(page, 1) - 1) * page_size)
            .limit(page_size)
        )
        return list(result.scalars().all()), total
