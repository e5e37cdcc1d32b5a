"""Tests for the periodic maintenance driver."""

import asyncio
from datetime import datetime, timedelta

import pytest
from sqlalchemy import select

from upkeep.models import Notification, NotificationChannel, NotificationStatus, Reminder
from upkeep.models.reminder import ReminderStatus
from upkeep.services.delivery import InAppProvider
from upkeep.services.notification_dispatcher import NotificationDispatcher
from upkeep.services.periodic_scheduler import PeriodicScheduler


def make_scheduler(session_factory, clock, **kwargs) -> PeriodicScheduler:
    kwargs.setdefault("providers", {NotificationChannel.IN_APP: InAppProvider()})
    return PeriodicScheduler(session_factory=session_factory, clock=clock, **kwargs)


class TestTiming:
    """Cron boundary and fixed cadence."""

    def test_first_run_is_next_midnight_utc(self, session_factory, clock):
        scheduler = make_scheduler(session_factory, clock)

        assert scheduler.first_run_time(datetime(2026, 3, 1, 12, 0)) == datetime(2026, 3, 2, 0, 0)
        assert scheduler.first_run_time(datetime(2026, 3, 2, 0, 0)) == datetime(2026, 3, 2, 0, 0)

    def test_custom_cron(self, session_factory, clock):
        scheduler = make_scheduler(session_factory, clock, cron="30 6 * * *")

        assert scheduler.first_run_time(datetime(2026, 3, 1, 12, 0)) == datetime(2026, 3, 2, 6, 30)

    def test_missed_slots_are_skipped(self, session_factory, clock):
        scheduler = make_scheduler(session_factory, clock)
        previous = datetime(2026, 3, 2, 0, 0)

        assert scheduler.next_run_after(previous, previous + timedelta(minutes=5)) == datetime(2026, 3, 3)
        assert scheduler.next_run_after(previous, datetime(2026, 3, 5, 1, 0)) == datetime(2026, 3, 6)


class TestTick:
    """One maintenance pass."""

    @pytest.mark.asyncio
    async def test_tick_creates_and_delivers(self, session_factory, make_schedule, clock):
        await make_schedule(last_completed_mileage=40000, interval_kilometers=10000)
        await make_schedule(task_name="Tires", last_completed_mileage=54000, interval_kilometers=10000)
        scheduler = make_scheduler(session_factory, clock)

        report = await scheduler.run_tick()

        assert report.ok
        assert report.reminders_created == 1
        assert report.notifications_created == 1
        assert report.notifications_sent == 1

        async with session_factory() as db:
            reminder = (await db.execute(select(Reminder))).scalar_one()
            notification = (await db.execute(select(Notification))).scalar_one()
        assert reminder.status == ReminderStatus.SENT
        assert notification.status == NotificationStatus.SENT
        assert notification.reminder_id == reminder.id

        # Second tick on unchanged data creates nothing new
        again = await scheduler.run_tick()
        assert again.reminders_created == 0
        assert again.notifications_sent == 0

    @pytest.mark.asyncio
    async def test_one_notification_per_channel(self, session_factory, make_schedule, clock):
        await make_schedule(last_completed_mileage=40000, interval_kilometers=10000)
        scheduler = make_scheduler(
            session_factory,
            clock,
            channels=[NotificationChannel.IN_APP, NotificationChannel.EMAIL],
        )

        report = await scheduler.run_tick()

        # No e-mail provider registered: that delivery fails, the tick still completes
        assert report.notifications_created == 2
        assert report.notifications_sent == 1
        assert report.notifications_failed == 1
        assert report.ok

    @pytest.mark.asyncio
    async def test_failing_step_does_not_stop_later_steps(self, session_factory, make_schedule, clock):
        await make_schedule(last_completed_mileage=40000, interval_kilometers=10000)
        scheduler = make_scheduler(session_factory, clock)
        calls = []

        async def broken_scan(db):
            raise RuntimeError("database went away")

        async def prune(db):
            calls.append("prune")
            return 0

        scheduler._scan = broken_scan
        scheduler._prune_reminders = prune

        report = await scheduler.run_tick()

        assert not report.ok
        assert report.errors == {"scan": "database went away"}
        assert report.reminders_created == 0
        assert calls == ["prune"]

    @pytest.mark.asyncio
    async def test_next_tick_notifies_reminder_left_without_notification(
        self, session_factory, make_schedule, clock, monkeypatch
    ):
        await make_schedule(last_completed_mileage=40000, interval_kilometers=10000)
        scheduler = make_scheduler(session_factory, clock)

        async def broken_from_reminder(self, reminder_id, channel=NotificationChannel.IN_APP):
            raise RuntimeError("database went away")

        monkeypatch.setattr(NotificationDispatcher, "from_reminder", broken_from_reminder)
        first = await scheduler.run_tick()

        assert first.reminders_created == 1
        assert first.notifications_created == 0
        assert set(first.errors) == {"notify"}

        monkeypatch.undo()
        clock.advance(days=1)
        second = await scheduler.run_tick()

        assert second.ok
        assert second.reminders_created == 0
        assert second.notifications_created == 1
        assert second.notifications_sent == 1

        async with session_factory() as db:
            reminder = (await db.execute(select(Reminder))).scalar_one()
            notification = (await db.execute(select(Notification))).scalar_one()
        assert reminder.status == ReminderStatus.SENT
        assert notification.reminder_id == reminder.id

    @pytest.mark.asyncio
    async def test_failed_notification_is_not_recreated(self, session_factory, make_schedule, clock):
        await make_schedule(last_completed_mileage=40000, interval_kilometers=10000)
        # No in-app provider: delivery fails and the reminder stays pending
        scheduler = make_scheduler(
            session_factory, clock, providers={NotificationChannel.EMAIL: InAppProvider()}
        )

        first = await scheduler.run_tick()
        assert first.notifications_created == 1
        assert first.notifications_failed == 1

        clock.advance(days=1)
        second = await scheduler.run_tick()

        assert second.notifications_created == 0
        async with session_factory() as db:
            reminder = (await db.execute(select(Reminder))).scalar_one()
            notification = (await db.execute(select(Notification))).scalar_one()
        assert reminder.status == ReminderStatus.PENDING
        assert notification.status == NotificationStatus.FAILED


class TestLoop:
    """Run loop and shutdown."""

    @pytest.mark.asyncio
    async def test_runs_at_boundary_then_stops(self, session_factory, clock):
        clock.now = datetime(2026, 3, 2, 0, 0)
        scheduler = make_scheduler(session_factory, clock)
        ticks = []

        async def tick():
            ticks.append(clock())
            scheduler.stop()

        scheduler.run_tick = tick

        await asyncio.wait_for(scheduler.run(), timeout=5)

        assert ticks == [datetime(2026, 3, 2, 0, 0)]
        assert scheduler.stopped

    @pytest.mark.asyncio
    async def test_stop_interrupts_long_wait(self, session_factory, clock):
        scheduler = make_scheduler(session_factory, clock)
        ticks = []

        async def tick():
            ticks.append(clock())

        scheduler.run_tick = tick

        task = asyncio.create_task(scheduler.run())
        await asyncio.sleep(0.05)
        scheduler.stop()
        await asyncio.wait_for(task, timeout=5)

        assert ticks == []

    @pytest.mark.asyncio
    async def test_tick_exception_keeps_loop_alive(self, session_factory, clock):
        clock.now = datetime(2026, 3, 2, 0, 0)
        scheduler = make_scheduler(session_factory, clock, interval_hours=0.0001)
        attempts = []

        async def tick():
            attempts.append(clock())
            clock.advance(seconds=1)
            if len(attempts) == 1:
                raise RuntimeError("boom")
            scheduler.stop()

        scheduler.run_tick = tick

        await asyncio.wait_for(scheduler.run(), timeout=5)

        assert len(attempts) == 2
