"""
Periodic maintenance driver.

Runs the daily maintenance pass: create reminders, turn them into
notifications, deliver what is due, then prune old records. The first pass
happens at the next cron boundary (midnight UTC by default) and subsequent
passes follow on a fixed interval until stop() is called.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, TypeVar

from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from upkeep.models.notification import NotificationChannel
from upkeep.services.database import session_scope
from upkeep.services.delivery import DeliveryProvider, build_default_providers
from upkeep.services.notification_dispatcher import NotificationDispatcher
from upkeep.services.reminder_manager import ReminderManager
from upkeep.utils.clock import Clock, as_naive_utc, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CRON = "0 0 * * *"


@dataclass
class TickReport:
    """Outcome of one maintenance pass. Steps that failed are listed in errors."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    reminders_created: int = 0
    notifications_created: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    reminders_pruned: int = 0
    notifications_pruned: int = 0
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


class PeriodicScheduler:
    """Single background driver for the daily maintenance pass."""

    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        cron: str = DEFAULT_CRON,
        interval_hours: float = 24,
        clock: Clock = utcnow,
        channels: Iterable[NotificationChannel] = (NotificationChannel.IN_APP,),
        providers: Optional[Dict[NotificationChannel, DeliveryProvider]] = None,
        reminder_retention_days: Optional[int] = None,
        notification_retention_days: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.trigger = CronTrigger.from_crontab(cron, timezone=timezone.utc)
        self.interval = timedelta(hours=interval_hours)
        self.clock = clock
        self.channels = list(channels)
        self.providers = providers if providers is not None else build_default_providers()
        self.reminder_retention_days = reminder_retention_days
        self.notification_retention_days = notification_retention_days
        self._stop_event = asyncio.Event()

    # ------------------------------------------------------------------
    # Timing
    # ------------------------------------------------------------------

    def first_run_time(self, now: datetime) -> datetime:
        """Next cron boundary at or after now (naive UTC)."""
        aware_now = now.replace(tzinfo=timezone.utc)
        fire_time = self.trigger.get_next_fire_time(None, aware_now)
        return as_naive_utc(fire_time)

    def next_run_after(self, previous: datetime, now: datetime) -> datetime:
        """Advance by whole intervals past now; missed slots are skipped, not replayed."""
        next_run = previous + self.interval
        while next_run <= now:
            next_run += self.interval
        return next_run

    async def _wait(self, seconds: float) -> bool:
        """Sleep up to seconds. Returns True if stop() was called meanwhile."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=max(seconds, 0))
            return True
        except asyncio.TimeoutError:
            return self._stop_event.is_set()

    # ------------------------------------------------------------------
    # Tick
    # ------------------------------------------------------------------

    async def _step(
        self,
        name: str,
        report: TickReport,
        work: Callable[[AsyncSession], Awaitable[T]],
    ) -> Optional[T]:
        try:
            async with session_scope(self.session_factory) as db:
                return await work(db)
        except Exception as e:
            report.errors[name] = str(e)
            logger.error(f"Maintenance step '{name}' failed: {e}", exc_info=True)
            return None

    async def _scan(self, db: AsyncSession) -> List[int]:
        created = await ReminderManager(db, clock=self.clock).scan_and_create_reminders()
        return [reminder.id for reminder in created]

    async def _notify(self, db: AsyncSession) -> int:
        """
        Create the missing channel notifications for every pending reminder.

        Reminders left without notifications by an earlier failed tick are
        picked up here as well as the ones this tick created.
        """
        reminders = await ReminderManager(db, clock=self.clock).list_pending_with_notifications()
        dispatcher = NotificationDispatcher(db, self.providers, clock=self.clock)
        created = 0
        for reminder in reminders:
            existing = {notification.channel for notification in reminder.notifications}
            for channel in self.channels:
                if channel in existing:
                    continue
                await dispatcher.from_reminder(reminder.id, channel)
                created += 1
        return created

    async def _dispatch(self, db: AsyncSession):
        return await NotificationDispatcher(db, self.providers, clock=self.clock).dispatch_pending()

    async def _prune_reminders(self, db: AsyncSession) -> int:
        return await ReminderManager(db, clock=self.clock).prune_old(self.reminder_retention_days)

    async def _prune_notifications(self, db: AsyncSession) -> int:
        dispatcher = NotificationDispatcher(db, self.providers, clock=self.clock)
        return await dispatcher.prune_old(self.notification_retention_days)

    async def run_tick(self) -> TickReport:
        """
        Run one maintenance pass.

        Steps run in order, each in its own session. A failing step is logged
        and recorded on the report; later steps still run.

        Returns:
            TickReport with per-step counts and errors
        """
        report = TickReport(started_at=self.clock())
        logger.info("Running maintenance tick...")

        reminder_ids = await self._step("scan", report, self._scan)
        report.reminders_created = len(reminder_ids or [])
        report.notifications_created = await self._step("notify", report, self._notify) or 0

        dispatched = await self._step("dispatch", report, self._dispatch)
        if dispatched is not None:
            report.notifications_sent = dispatched.sent
            report.notifications_failed = dispatched.failed

        report.reminders_pruned = await self._step("prune_reminders", report, self._prune_reminders) or 0
        report.notifications_pruned = (
            await self._step("prune_notifications", report, self._prune_notifications) or 0
        )

        report.finished_at = self.clock()
        logger.info(
            f"Maintenance tick complete: {report.reminders_created} reminders, "
            f"{report.notifications_created} notifications created, "
            f"{report.notifications_sent} sent, {report.notifications_failed} failed, "
            f"pruned {report.reminders_pruned} reminders / {report.notifications_pruned} notifications"
        )
        if report.errors:
            logger.warning(f"Maintenance tick finished with errors in: {', '.join(report.errors)}")
        return report

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Run ticks until stop() is called."""
        next_run = self.first_run_time(self.clock())
        logger.info(f"Maintenance scheduler started; first run at {next_run.isoformat()}Z")

        while not self._stop_event.is_set():
            delay = (next_run - self.clock()).total_seconds()
            if await self._wait(delay):
                break

            try:
                await self.run_tick()
            except Exception as e:
                logger.error(f"Maintenance tick failed: {e}", exc_info=True)

            next_run = self.next_run_after(next_run, self.clock())

        logger.info("Maintenance scheduler stopped")

    def stop(self) -> None:
        """Stop waiting immediately and exit the loop after any in-flight tick."""
        self._stop_event.set()

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()
