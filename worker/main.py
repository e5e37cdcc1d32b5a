"""
Maintenance worker.
Creates reminders, delivers notifications and prunes old records once a day.
"""

import asyncio
import logging
import signal

from upkeep.models.notification import NotificationChannel
from upkeep.services.database import close_db, init_db
from upkeep.services.periodic_scheduler import PeriodicScheduler

from worker.config import settings

# Configure logging
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_scheduler(session_factory) -> PeriodicScheduler:
    """Wire the maintenance scheduler from worker settings."""
    channels = [NotificationChannel(value) for value in settings.REMINDER_NOTIFICATION_CHANNELS]
    return PeriodicScheduler(
        session_factory=session_factory,
        cron=settings.MAINTENANCE_CRON_SCHEDULE,
        interval_hours=settings.TICK_INTERVAL_HOURS,
        channels=channels,
    )


async def main():
    """Initialize and run the maintenance scheduler."""
    logger.info("Starting maintenance worker...")

    session_factory = await init_db(settings.DATABASE_URL)
    scheduler = build_scheduler(session_factory)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.stop)
        except NotImplementedError:
            # Windows event loops have no signal handler support
            pass

    try:
        await scheduler.run()
    finally:
        logger.info("Shutting down worker...")
        await close_db()


def run():
    """Console entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
