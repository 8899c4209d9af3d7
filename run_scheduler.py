#!/usr/bin/env python3
"""Entry point for running the background sweep scheduler as its own worker."""
import asyncio
import logging
import sys

from activity_audit.config import get_settings
from activity_audit.database import create_engine, create_session_factory
from activity_audit.tasks.scheduler import create_scheduler, start_scheduler, stop_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)

# Silence SQLAlchemy query logging (too verbose)
logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)
logging.getLogger('sqlalchemy.pool').setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


async def main():
    """Main async function to start scheduler and keep it running."""
    logger.info("Starting background worker scheduler...")

    settings = get_settings()
    engine = create_engine(settings)
    create_scheduler(settings, create_session_factory(engine))

    # Start the scheduler
    await start_scheduler()

    # Keep the process running
    try:
        logger.info("Scheduler is running. Press Ctrl+C to stop.")
        # Wait forever - scheduler runs in background
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Received shutdown signal")
    finally:
        await stop_scheduler()
        await engine.dispose()


if __name__ == "__main__":
    # Run the main async function
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        sys.exit(0)
