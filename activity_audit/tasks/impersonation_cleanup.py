"""Impersonation cleanup background job - expires impersonations past the maximum duration."""
import logging
from datetime import datetime, timezone

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import async_sessionmaker

from activity_audit.config import Settings
from activity_audit.services.impersonation_service import ImpersonationService


logger = logging.getLogger(__name__)


async def impersonation_cleanup_job(session_factory: async_sessionmaker, settings: Settings) -> int:
    """
    Expire ACTIVE impersonations older than IMPERSONATION_MAX_DURATION_HOURS.

    Returns:
        Number of impersonations expired (0 if the sweep failed)
    """
    logger.debug("Starting impersonation cleanup job...")
    start_time = datetime.now(timezone.utc)

    try:
        async with session_factory() as session:
            service = ImpersonationService(session, settings)
            expired = await service.cleanup_expired(settings.IMPERSONATION_MAX_DURATION_HOURS)

        if expired > 0:
            duration = (datetime.now(timezone.utc) - start_time).total_seconds()
            logger.info(
                "Impersonation cleanup completed: %d impersonations expired in %.2fs",
                expired, duration
            )
        return expired

    except Exception as e:
        logger.error("Impersonation cleanup job failed: %s", e)
        return 0


def schedule_impersonation_cleanup_job(
    scheduler: AsyncIOScheduler,
    session_factory: async_sessionmaker,
    settings: Settings
):
    """Register the impersonation cleanup job with the scheduler."""
    scheduler.add_job(
        impersonation_cleanup_job,
        'interval',
        minutes=settings.SWEEP_INTERVAL_MINUTES,
        kwargs={"session_factory": session_factory, "settings": settings},
        id='impersonation_cleanup',
        name='Impersonation Cleanup',
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    logger.info(
        "Scheduled impersonation cleanup job to run every %d minutes",
        settings.SWEEP_INTERVAL_MINUTES
    )
