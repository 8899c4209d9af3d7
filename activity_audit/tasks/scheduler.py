"""Background job scheduler using APScheduler."""
import logging

from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.ext.asyncio import async_sessionmaker

from activity_audit.config import Settings
from activity_audit.tasks.impersonation_cleanup import schedule_impersonation_cleanup_job
from activity_audit.tasks.retention import schedule_retention_job
from activity_audit.tasks.session_cleanup import schedule_session_expiry_job


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler: AsyncIOScheduler | None = None


def get_scheduler() -> AsyncIOScheduler | None:
    """Get the global scheduler instance, if one was created."""
    return scheduler


def create_scheduler(settings: Settings, session_factory: async_sessionmaker) -> AsyncIOScheduler:
    """
    Create the global scheduler and register the sweep jobs.

    Args:
        settings: Sweep intervals and retention periods
        session_factory: Factory each job opens its own database session from

    Returns:
        The (not yet started) scheduler
    """
    global scheduler

    # Configure job stores and executors
    jobstores = {
        'default': MemoryJobStore()
    }
    executors = {
        'default': AsyncIOExecutor()
    }
    job_defaults = {
        'coalesce': True,  # Combine missed job runs into one
        'max_instances': 1,  # Only one instance of a job at a time
        'misfire_grace_time': 300  # 5 minutes grace period for misfired jobs
    }

    scheduler = AsyncIOScheduler(
        jobstores=jobstores,
        executors=executors,
        job_defaults=job_defaults,
        timezone='UTC'
    )

    schedule_session_expiry_job(scheduler, session_factory, settings)
    schedule_impersonation_cleanup_job(scheduler, session_factory, settings)
    schedule_retention_job(scheduler, session_factory, settings)

    logger.info("Scheduler created with %d jobs", len(scheduler.get_jobs()))
    return scheduler


async def start_scheduler():
    """Start the global scheduler."""
    if scheduler is None:
        logger.warning("Scheduler has not been created")
        return

    if scheduler.running:
        logger.warning("Scheduler is already running")
        return

    scheduler.start()
    logger.info("Scheduler started with %d jobs", len(scheduler.get_jobs()))

    for job in scheduler.get_jobs():
        logger.info("  - Job: %s, Next run: %s", job.id, job.next_run_time)


async def stop_scheduler():
    """Stop the scheduler gracefully."""
    global scheduler
    if scheduler is not None and scheduler.running:
        scheduler.shutdown(wait=True)
        logger.info("Scheduler stopped")
    scheduler = None


def list_jobs() -> list[dict]:
    """List all scheduled jobs and their status."""
    if scheduler is None:
        return []

    jobs = []
    for job in scheduler.get_jobs():
        next_run_time = getattr(job, "next_run_time", None)
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run_time": str(next_run_time) if next_run_time else None,
            "trigger": str(job.trigger),
        })
    return jobs
