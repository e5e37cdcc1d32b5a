"""Tests for reminder scanning, lifecycle and retention."""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from upkeep.exceptions import NotFoundError, ValidationFailure
from upkeep.models import Reminder, Vehicle
from upkeep.models.maintenance_schedule import MaintenanceSchedule
from upkeep.models.reminder import ReminderStatus, ReminderType
from upkeep.services.due_state import Dimension, TriggerState
from upkeep.services.interval_calculator import Remaining
from upkeep.services.reminder_manager import (
    ReminderManager,
    build_reminder_message,
    classify_reminder_type,
)

ALL_OK = {d: TriggerState.UNCONFIGURED for d in Dimension}


def states(**overrides):
    result = dict(ALL_OK)
    for name, state in overrides.items():
        result[Dimension[name.upper()]] = state
    return result


LEADS = MaintenanceSchedule(reminder_days_before=30, reminder_km_before=1000, reminder_hours_before=10.0)


class TestClassification:
    """Reminder type decision table."""

    def test_single_overdue_dimension(self):
        fired = states(time=TriggerState.OK, distance=TriggerState.OVERDUE)
        assert classify_reminder_type(fired, Remaining(), LEADS) == ReminderType.MILEAGE

    def test_multiple_overdue_is_compound(self):
        fired = states(time=TriggerState.OVERDUE, distance=TriggerState.OVERDUE)
        assert classify_reminder_type(fired, Remaining(), LEADS) == ReminderType.COMPOUND

    def test_overdue_wins_over_upcoming(self):
        fired = states(time=TriggerState.UPCOMING, hours=TriggerState.OVERDUE)
        assert classify_reminder_type(fired, Remaining(), LEADS) == ReminderType.HOURS

    def test_closest_upcoming_dimension_wins(self):
        fired = states(time=TriggerState.UPCOMING, distance=TriggerState.UPCOMING)
        remaining = Remaining(days_remaining=20, distance_remaining=100)
        assert classify_reminder_type(fired, remaining, LEADS) == ReminderType.MILEAGE

    def test_tied_upcoming_dimensions_are_compound(self):
        fired = states(time=TriggerState.UPCOMING, distance=TriggerState.UPCOMING)
        remaining = Remaining(days_remaining=15, distance_remaining=500)
        assert classify_reminder_type(fired, remaining, LEADS) == ReminderType.COMPOUND

    def test_nothing_fired_is_compound(self):
        assert classify_reminder_type(ALL_OK, Remaining(), LEADS) == ReminderType.COMPOUND


class TestMessages:
    def test_overdue_message(self):
        message = build_reminder_message(
            "Oil Change", "2020 Honda Accord", states(time=TriggerState.OVERDUE), Remaining(), True
        )
        assert message == "Oil Change is overdue for 2020 Honda Accord"

    def test_upcoming_message_lists_fired_dimensions(self):
        fired = states(time=TriggerState.UPCOMING, distance=TriggerState.UPCOMING, hours=TriggerState.OK)
        remaining = Remaining(days_remaining=12, distance_remaining=1000, hours_remaining=40.0)

        message = build_reminder_message("Oil Change", "2020 Honda Accord", fired, remaining, False)
        assert message == "Oil Change due in 12 days or 1,000 km for 2020 Honda Accord"


class TestScan:
    """Scan-and-create over all active schedules."""

    @pytest.mark.asyncio
    async def test_scan_is_idempotent(self, db_session, make_schedule, clock):
        schedule = await make_schedule(last_completed_mileage=40000, interval_kilometers=10000)
        manager = ReminderManager(db_session, clock=clock)

        first = await manager.scan_and_create_reminders()
        second = await manager.scan_and_create_reminders()

        assert len(first) == 1
        assert second == []
        result = await db_session.execute(
            select(Reminder).where(Reminder.maintenance_schedule_id == schedule.id)
        )
        reminders = result.scalars().all()
        assert len(reminders) == 1
        assert reminders[0].status == ReminderStatus.PENDING
        assert reminders[0].reminder_type == ReminderType.MILEAGE
        assert reminders[0].message == "Oil Change is overdue for 2020 Honda Accord"
        assert reminders[0].scheduled_date == clock()

    @pytest.mark.asyncio
    async def test_sent_reminder_also_blocks_new_one(self, db_session, make_schedule, clock):
        await make_schedule(last_completed_mileage=40000, interval_kilometers=10000)
        manager = ReminderManager(db_session, clock=clock)

        (reminder,) = await manager.scan_and_create_reminders()
        await manager.mark_sent(reminder.id)

        assert await manager.scan_and_create_reminders() == []

    @pytest.mark.asyncio
    async def test_dismissed_reminder_allows_new_one(self, db_session, make_schedule, clock, test_owner):
        await make_schedule(last_completed_mileage=40000, interval_kilometers=10000)
        manager = ReminderManager(db_session, clock=clock)

        (reminder,) = await manager.scan_and_create_reminders()
        await manager.dismiss(reminder.id, test_owner.id)

        assert len(await manager.scan_and_create_reminders()) == 1

    @pytest.mark.asyncio
    async def test_scan_uses_each_schedules_own_vehicle(
        self, db_session, make_schedule, clock, test_owner, other_owner
    ):
        truck = Vehicle(owner_id=other_owner.id, make="Ford", model="F-150", year=2018, current_mileage=120000)
        db_session.add(truck)
        await db_session.commit()

        await make_schedule(last_completed_mileage=50000, interval_kilometers=10000)
        truck_oil = await make_schedule(
            vehicle_id=truck.id, last_completed_mileage=100000, interval_kilometers=10000
        )
        await make_schedule(
            task_name="Retired", last_completed_mileage=10000, interval_kilometers=10000, is_active=False
        )

        created = await ReminderManager(db_session, clock=clock).scan_and_create_reminders()

        assert [r.maintenance_schedule_id for r in created] == [truck_oil.id]
        assert created[0].user_id == other_owner.id

    @pytest.mark.asyncio
    async def test_upcoming_reminder(self, db_session, make_schedule, clock):
        await make_schedule(
            last_completed_date=clock() - timedelta(days=160),
            interval_months=6,
            last_completed_mileage=45000,
            interval_kilometers=10000,
        )

        (reminder,) = await ReminderManager(db_session, clock=clock).scan_and_create_reminders()

        assert reminder.reminder_type == ReminderType.TIME
        assert reminder.message.startswith("Oil Change due in ")
        assert "for 2020 Honda Accord" in reminder.message

    @pytest.mark.asyncio
    async def test_storage_rejects_second_active_reminder(self, db_session, make_schedule, clock, test_owner):
        schedule = await make_schedule(last_completed_mileage=40000, interval_kilometers=10000)
        manager = ReminderManager(db_session, clock=clock)
        await manager.create_reminder(schedule.id, test_owner.id, ReminderType.MILEAGE, "first")

        with pytest.raises(IntegrityError):
            await manager.create_reminder(schedule.id, test_owner.id, ReminderType.MILEAGE, "second")


class TestLifecycle:
    """Dismiss / complete / mark sent."""

    @pytest.mark.asyncio
    async def test_dismiss_and_terminal_state(self, db_session, make_schedule, clock, test_owner):
        schedule = await make_schedule(interval_kilometers=10000, last_completed_mileage=40000)
        manager = ReminderManager(db_session, clock=clock)
        reminder = await manager.create_reminder(schedule.id, test_owner.id, ReminderType.MILEAGE, "due")

        dismissed = await manager.dismiss(reminder.id, test_owner.id)
        assert dismissed.status == ReminderStatus.DISMISSED
        assert dismissed.dismissed_date == clock()

        with pytest.raises(ValidationFailure):
            await manager.complete(reminder.id, test_owner.id)
        with pytest.raises(ValidationFailure):
            await manager.dismiss(reminder.id, test_owner.id)

    @pytest.mark.asyncio
    async def test_other_user_cannot_dismiss(self, db_session, make_schedule, clock, test_owner, other_owner):
        schedule = await make_schedule(interval_kilometers=10000, last_completed_mileage=40000)
        manager = ReminderManager(db_session, clock=clock)
        reminder = await manager.create_reminder(schedule.id, test_owner.id, ReminderType.MILEAGE, "due")

        with pytest.raises(NotFoundError):
            await manager.dismiss(reminder.id, other_owner.id)

    @pytest.mark.asyncio
    async def test_mark_sent_only_from_pending(self, db_session, make_schedule, clock, test_owner):
        schedule = await make_schedule(interval_kilometers=10000, last_completed_mileage=40000)
        manager = ReminderManager(db_session, clock=clock)
        reminder = await manager.create_reminder(schedule.id, test_owner.id, ReminderType.MILEAGE, "due")

        await manager.mark_sent(reminder.id)
        assert reminder.status == ReminderStatus.SENT
        assert reminder.sent_date == clock()

        await manager.complete(reminder.id, test_owner.id)
        await manager.mark_sent(reminder.id)
        assert reminder.status == ReminderStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_listing(self, db_session, make_schedule, clock, test_owner):
        first = await make_schedule(interval_kilometers=10000, last_completed_mileage=40000)
        second = await make_schedule(task_name="Tires", interval_kilometers=10000, last_completed_mileage=40000)
        manager = ReminderManager(db_session, clock=clock)
        a = await manager.create_reminder(first.id, test_owner.id, ReminderType.MILEAGE, "a")
        b = await manager.create_reminder(second.id, test_owner.id, ReminderType.MILEAGE, "b")
        await manager.dismiss(a.id, test_owner.id)

        assert {r.id for r in await manager.list_for_user(test_owner.id)} == {a.id, b.id}
        assert [r.id for r in await manager.list_pending(test_owner.id)] == [b.id]


class TestRetention:
    """Pruning old terminal reminders."""

    @pytest.mark.asyncio
    async def test_prune_keeps_pending_regardless_of_age(self, db_session, make_schedule, clock, test_owner):
        old = clock() - timedelta(days=120)
        dismissed_schedule = await make_schedule(interval_kilometers=10000, last_completed_mileage=40000)
        pending_schedule = await make_schedule(task_name="Tires", interval_kilometers=10000)
        recent_schedule = await make_schedule(task_name="Brakes", interval_kilometers=10000)

        db_session.add_all(
            [
                Reminder(
                    maintenance_schedule_id=dismissed_schedule.id,
                    user_id=test_owner.id,
                    status=ReminderStatus.DISMISSED,
                    reminder_type=ReminderType.MILEAGE,
                    message="old and dismissed",
                    created_at=old,
                ),
                Reminder(
                    maintenance_schedule_id=pending_schedule.id,
                    user_id=test_owner.id,
                    status=ReminderStatus.PENDING,
                    reminder_type=ReminderType.MILEAGE,
                    message="old but pending",
                    created_at=old,
                ),
                Reminder(
                    maintenance_schedule_id=recent_schedule.id,
                    user_id=test_owner.id,
                    status=ReminderStatus.COMPLETED,
                    reminder_type=ReminderType.MILEAGE,
                    message="recently completed",
                    created_at=clock() - timedelta(days=5),
                ),
            ]
        )
        await db_session.commit()

        pruned = await ReminderManager(db_session, clock=clock).prune_old()

        assert pruned == 1
        result = await db_session.execute(select(Reminder.message).order_by(Reminder.message))
        assert result.scalars().all() == ["old but pending", "recently completed"]

    @pytest.mark.asyncio
    async def test_age_is_measured_on_the_injected_clock(self, db_session, make_schedule, clock, test_owner):
        schedule = await make_schedule(interval_kilometers=10000, last_completed_mileage=40000)
        manager = ReminderManager(db_session, clock=clock)
        reminder = await manager.create_reminder(schedule.id, test_owner.id, ReminderType.MILEAGE, "old")
        await manager.dismiss(reminder.id, test_owner.id)
        assert reminder.created_at == clock()

        assert await manager.prune_old(days_old=30) == 0

        clock.advance(days=31)
        assert await manager.prune_old(days_old=30) == 1
