"""Retention background job - deletes old activity events and ended sessions."""
import logging
from datetime import datetime, timezone
from typing import Dict

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import async_sessionmaker

from activity_audit.config import Settings
from activity_audit.services.activity_service import ActivityService
from activity_audit.services.session_service import SessionService


logger = logging.getLogger(__name__)


async def retention_job(session_factory: async_sessionmaker, settings: Settings) -> Dict[str, int]:
    """
    Apply the retention policy.

    Removes:
    - activity events older than ACTIVITY_RETENTION_DAYS
    - non-active sessions older than SESSION_RETENTION_DAYS

    The two sweeps run independently; one failing does not stop the other.

    Returns:
        Deleted counts keyed by "activities" and "sessions"
    """
    logger.info("Starting retention job...")
    start_time = datetime.now(timezone.utc)
    deleted = {"activities": 0, "sessions": 0}

    try:
        async with session_factory() as session:
            deleted["activities"] = await ActivityService(session, settings).sweep_old(
                settings.ACTIVITY_RETENTION_DAYS
            )
    except Exception as e:
        logger.error("Activity retention sweep failed: %s", e)

    try:
        async with session_factory() as session:
            deleted["sessions"] = await SessionService(session).delete_old_sessions(
                settings.SESSION_RETENTION_DAYS
            )
    except Exception as e:
        logger.error("Session retention sweep failed: %s", e)

    duration = (datetime.now(timezone.utc) - start_time).total_seconds()
    logger.info(
        "Retention completed: %d activities and %d sessions deleted in %.2f seconds",
        deleted["activities"], deleted["sessions"], duration
    )
    return deleted


def schedule_retention_job(
    scheduler: AsyncIOScheduler,
    session_factory: async_sessionmaker,
    settings: Settings
):
    """Register the retention job with the scheduler."""
    scheduler.add_job(
        retention_job,
        'interval',
        minutes=settings.SWEEP_INTERVAL_MINUTES,
        kwargs={"session_factory": session_factory, "settings": settings},
        id='retention',
        name='Retention Sweep',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    logger.info("Scheduled retention job to run every %d minutes", settings.SWEEP_INTERVAL_MINUTES)
