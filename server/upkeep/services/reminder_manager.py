"""
Reminder management.

The daily scan walks every active schedule, evaluates its due-state against
its own vehicle's live readings, and creates a reminder when the schedule is
overdue or approaching. A schedule never has more than one outstanding
(pending or sent) reminder.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from upkeep.config import settings
from upkeep.exceptions import NotFoundError, ValidationFailure
from upkeep.models.maintenance_schedule import MaintenanceSchedule
from upkeep.models.reminder import (
    ACTIVE_REMINDER_STATUSES,
    TERMINAL_REMINDER_STATUSES,
    Reminder,
    ReminderStatus,
    ReminderType,
)
from upkeep.services.due_state import (
    Dimension,
    MaintenanceStatus,
    TriggerState,
    evaluate_dimensions,
    get_status,
)
from upkeep.services.interval_calculator import Remaining, measure_remaining
from upkeep.utils.clock import Clock, as_naive_utc, utcnow

logger = logging.getLogger(__name__)

DIMENSION_REMINDER_TYPES = {
    Dimension.TIME: ReminderType.TIME,
    Dimension.DISTANCE: ReminderType.MILEAGE,
    Dimension.HOURS: ReminderType.HOURS,
}


# ============================================================================
# Classification and message formatting
# ============================================================================


def _lead_fraction(dimension: Dimension, remaining: Remaining, schedule) -> float:
    """Remaining amount as a fraction of the dimension's reminder lead."""
    if dimension == Dimension.TIME:
        amount = remaining.days_remaining
        lead = schedule.reminder_days_before or settings.DEFAULT_REMINDER_DAYS_BEFORE
    elif dimension == Dimension.DISTANCE:
        amount = remaining.distance_remaining
        lead = schedule.reminder_km_before or settings.DEFAULT_REMINDER_KM_BEFORE
    else:
        amount = remaining.hours_remaining
        lead = schedule.reminder_hours_before or settings.DEFAULT_REMINDER_HOURS_BEFORE
    return amount / lead


def classify_reminder_type(
    states: Dict[Dimension, TriggerState], remaining: Remaining, schedule
) -> ReminderType:
    """
    Decide which dimension a reminder is about.

    Decision table:
        one dimension overdue                 -> that dimension
        several dimensions overdue            -> COMPOUND
        none overdue, one approaching         -> that dimension
        none overdue, several approaching     -> the one with the least lead left,
                                                 COMPOUND on a tie
        nothing fired                         -> COMPOUND

    Args:
        states: Per-dimension trigger states from evaluate_dimensions
        remaining: Remaining amounts for the same evaluation
        schedule: Schedule supplying the reminder lead thresholds

    Returns:
        ReminderType annotation for the reminder
    """
    overdue = [d for d, state in states.items() if state == TriggerState.OVERDUE]
    upcoming = [d for d, state in states.items() if state == TriggerState.UPCOMING]

    candidates = overdue or upcoming
    if len(candidates) == 1:
        return DIMENSION_REMINDER_TYPES[candidates[0]]
    if overdue or not candidates:
        return ReminderType.COMPOUND

    fractions = {d: _lead_fraction(d, remaining, schedule) for d in upcoming}
    closest = min(fractions.values())
    leaders = [d for d, fraction in fractions.items() if fraction == closest]
    if len(leaders) == 1:
        return DIMENSION_REMINDER_TYPES[leaders[0]]
    return ReminderType.COMPOUND


def build_reminder_message(
    task_name: str,
    vehicle_name: str,
    states: Dict[Dimension, TriggerState],
    remaining: Remaining,
    overdue: bool,
) -> str:
    """Human-readable reminder text."""
    if overdue:
        return f"{task_name} is overdue for {vehicle_name}"

    parts = []
    if states[Dimension.TIME] == TriggerState.UPCOMING:
        parts.append(f"{remaining.days_remaining} days")
    if states[Dimension.DISTANCE] == TriggerState.UPCOMING:
        parts.append(f"{remaining.distance_remaining:,} km")
    if states[Dimension.HOURS] == TriggerState.UPCOMING:
        parts.append(f"{remaining.hours_remaining:,.1f} hours")

    remaining_text = " or ".join(parts) if parts else "soon"
    return f"{task_name} due in {remaining_text} for {vehicle_name}"


@dataclass
class ReminderDraft:
    """Everything needed to insert a reminder, captured before any write."""

    schedule_id: int
    user_id: int
    reminder_type: ReminderType
    message: str


# ============================================================================
# Reminder Manager
# ============================================================================


class ReminderManager:
    """Creates reminders from schedule due-state and drives their lifecycle."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    async def _commit(self):
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_for_user(self, user_id: int) -> List[Reminder]:
        """All reminders for a user, newest first."""
        stmt = (
            select(Reminder)
            .where(Reminder.user_id == user_id)
            .order_by(Reminder.created_at.desc(), Reminder.id.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_pending(self, user_id: int) -> List[Reminder]:
        """Pending reminders for a user, earliest scheduled first."""
        stmt = (
            select(Reminder)
            .where(Reminder.user_id == user_id, Reminder.status == ReminderStatus.PENDING)
            .order_by(Reminder.scheduled_date, Reminder.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_pending_with_notifications(self) -> List[Reminder]:
        """Every pending reminder, across users, with its notifications loaded."""
        stmt = (
            select(Reminder)
            .options(selectinload(Reminder.notifications))
            .where(Reminder.status == ReminderStatus.PENDING)
            .order_by(Reminder.scheduled_date, Reminder.id)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_reminder(self, reminder_id: int, user_id: int) -> Reminder:
        stmt = select(Reminder).where(Reminder.id == reminder_id, Reminder.user_id == user_id)
        result = await self.db.execute(stmt)
        reminder = result.scalar_one_or_none()
        if reminder is None:
            raise NotFoundError("Reminder not found")
        return reminder

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def create_reminder(
        self,
        schedule_id: int,
        user_id: int,
        reminder_type: ReminderType,
        message: str,
        scheduled_date=None,
    ) -> Reminder:
        """Create a pending reminder for a schedule."""
        schedule = await self.db.get(MaintenanceSchedule, schedule_id)
        if schedule is None:
            raise NotFoundError("Maintenance schedule not found")

        now = self.clock()
        reminder = Reminder(
            maintenance_schedule_id=schedule_id,
            user_id=user_id,
            status=ReminderStatus.PENDING,
            reminder_type=reminder_type,
            message=message[:500],
            scheduled_date=as_naive_utc(scheduled_date) if scheduled_date else now,
            created_at=now,
        )
        self.db.add(reminder)
        await self._commit()
        return reminder

    async def mark_sent(self, reminder_id: int, commit: bool = True) -> Reminder:
        """Pending -> Sent. Reminders already past pending are left untouched."""
        reminder = await self.db.get(Reminder, reminder_id)
        if reminder is None:
            raise NotFoundError("Reminder not found")

        if reminder.status != ReminderStatus.PENDING:
            logger.debug(f"Reminder {reminder_id} is {reminder.status.value}; not marking sent")
            return reminder

        reminder.status = ReminderStatus.SENT
        reminder.sent_date = self.clock()
        if commit:
            await self._commit()
        return reminder

    async def dismiss(self, reminder_id: int, user_id: int) -> Reminder:
        """Pending/Sent -> Dismissed."""
        reminder = await self.get_reminder(reminder_id, user_id)
        if reminder.is_terminal:
            raise ValidationFailure(f"Reminder is already {reminder.status.value}")

        reminder.status = ReminderStatus.DISMISSED
        reminder.dismissed_date = self.clock()
        await self._commit()
        return reminder

    async def complete(self, reminder_id: int, user_id: int) -> Reminder:
        """Pending/Sent -> Completed."""
        reminder = await self.get_reminder(reminder_id, user_id)
        if reminder.is_terminal:
            raise ValidationFailure(f"Reminder is already {reminder.status.value}")

        reminder.status = ReminderStatus.COMPLETED
        await self._commit()
        return reminder

    async def complete_outstanding_for_schedule(self, schedule_id: int) -> int:
        """
        Mark the schedule's outstanding reminders completed.

        Does not commit; used inside the schedule-completion transaction.

        Returns:
            Number of reminders completed
        """
        stmt = select(Reminder).where(
            Reminder.maintenance_schedule_id == schedule_id,
            Reminder.status.in_(ACTIVE_REMINDER_STATUSES),
        )
        result = await self.db.execute(stmt)
        reminders = result.scalars().all()
        for reminder in reminders:
            reminder.status = ReminderStatus.COMPLETED
        return len(reminders)

    # ------------------------------------------------------------------
    # Background passes
    # ------------------------------------------------------------------

    async def scan_and_create_reminders(self) -> List[Reminder]:
        """
        Create reminders for every active schedule that is overdue or approaching.

        Schedules that already have a pending or sent reminder are skipped. The
        partial unique index on reminders catches a concurrent scan that slips
        past that check; the losing insert is rolled back and skipped.

        Returns:
            Reminders created by this pass
        """
        now = self.clock()
        logger.info("Scanning maintenance schedules for reminders...")

        outstanding = await self.db.execute(
            select(Reminder.maintenance_schedule_id).where(
                Reminder.status.in_(ACTIVE_REMINDER_STATUSES)
            )
        )
        with_outstanding = set(outstanding.scalars().all())

        result = await self.db.execute(
            select(MaintenanceSchedule)
            .options(selectinload(MaintenanceSchedule.vehicle))
            .where(MaintenanceSchedule.is_active.is_(True))
            .order_by(MaintenanceSchedule.id)
        )
        schedules = result.scalars().all()

        drafts: List[ReminderDraft] = []
        for schedule in schedules:
            if schedule.id in with_outstanding:
                continue

            vehicle = schedule.vehicle
            mileage = vehicle.current_mileage
            hours = vehicle.current_engine_hours

            status = get_status(schedule, mileage, hours, now)
            if status == MaintenanceStatus.OK:
                continue

            remaining = measure_remaining(schedule, mileage, hours, now)
            states = evaluate_dimensions(schedule, mileage, hours, now, remaining)
            overdue = status == MaintenanceStatus.OVERDUE
            drafts.append(
                ReminderDraft(
                    schedule_id=schedule.id,
                    user_id=vehicle.owner_id,
                    reminder_type=classify_reminder_type(states, remaining, schedule),
                    message=build_reminder_message(
                        schedule.task_name, vehicle.display_name, states, remaining, overdue
                    ),
                )
            )

        created: List[Reminder] = []
        for draft in drafts:
            reminder = Reminder(
                maintenance_schedule_id=draft.schedule_id,
                user_id=draft.user_id,
                status=ReminderStatus.PENDING,
                reminder_type=draft.reminder_type,
                message=draft.message[:500],
                scheduled_date=now,
                created_at=now,
            )
            self.db.add(reminder)
            try:
                await self.db.commit()
            except IntegrityError:
                await self.db.rollback()
                logger.warning(
                    f"Schedule {draft.schedule_id} already has an outstanding reminder; skipping"
                )
                for earlier in created:
                    await self.db.refresh(earlier)
                continue
            created.append(reminder)

        logger.info(
            f"Reminder scan complete: {len(schedules)} active schedules, "
            f"{len(created)} reminders created"
        )
        return created

    async def prune_old(self, days_old: Optional[int] = None) -> int:
        """
        Delete dismissed/completed reminders older than the retention window.

        Pending and sent reminders are kept regardless of age.

        Returns:
            Number of reminders deleted
        """
        days_old = settings.REMINDER_RETENTION_DAYS if days_old is None else days_old
        cutoff = self.clock() - timedelta(days=days_old)

        stmt = (
            select(Reminder)
            .options(selectinload(Reminder.notifications))
            .where(
                Reminder.created_at < cutoff,
                Reminder.status.in_(TERMINAL_REMINDER_STATUSES),
            )
        )
        result = await self.db.execute(stmt)
        old_reminders = result.scalars().all()

        for reminder in old_reminders:
            await self.db.delete(reminder)
        await self._commit()

        if old_reminders:
            logger.info(f"Pruned {len(old_reminders)} reminders older than {days_old} days")
        return len(old_reminders)
