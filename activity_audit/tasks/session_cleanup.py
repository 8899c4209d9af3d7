"""Session expiry background job - marks sessions past their expiry as EXPIRED."""
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import async_sessionmaker

from activity_audit.config import Settings
from activity_audit.services.session_service import SessionService


logger = logging.getLogger(__name__)


async def session_expiry_job(session_factory: async_sessionmaker) -> int:
    """
    Expire ACTIVE sessions whose expiry time has passed.

    Returns:
        Number of sessions expired (0 if the sweep failed)
    """
    logger.debug("Starting session expiry job...")
    start_time = datetime.now(timezone.utc)

    try:
        async with session_factory() as session:
            expired = await SessionService(session).sweep_expired()

        duration = (datetime.now(timezone.utc) - start_time).total_seconds()
        if expired > 0:
            logger.info(
                "Session expiry completed: %d sessions expired in %.2f seconds",
                expired, duration
            )
        else:
            logger.debug("No expired sessions found")
        return expired

    except Exception as e:
        logger.error("Session expiry job failed: %s", e)
        return 0


def schedule_session_expiry_job(
    scheduler: AsyncIOScheduler,
    session_factory: async_sessionmaker,
    settings: Settings
):
    """Register the session expiry job with the scheduler."""
    scheduler.add_job(
        session_expiry_job,
        'interval',
        minutes=settings.SESSION_SWEEP_INTERVAL_MINUTES,
        kwargs={"session_factory": session_factory},
        id='session_expiry',
        name='Session Expiry',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    logger.info(
        "Scheduled session expiry job to run every %d minutes",
        settings.SESSION_SWEEP_INTERVAL_MINUTES
    )
