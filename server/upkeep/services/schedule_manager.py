"""
Maintenance schedule management.

Every operation is scoped to the acting user: a schedule or vehicle that
exists but belongs to someone else is reported exactly like a missing one.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from upkeep.config import settings
from upkeep.exceptions import NotFoundError, ValidationFailure
from upkeep.models.maintenance_schedule import CombinationPolicy, MaintenanceSchedule
from upkeep.models.reminder import Reminder
from upkeep.models.service_record import ServiceRecord
from upkeep.models.vehicle import Vehicle
from upkeep.schemas.maintenance import (
    INTERVAL_FIELDS,
    ScheduleCompletion,
    ScheduleCreate,
    ScheduleUpdate,
)
from upkeep.services import template_service
from upkeep.services.due_state import MaintenanceStatus, get_status
from upkeep.services.interval_calculator import apply_next_due, compute_remaining
from upkeep.services.reminder_manager import ReminderManager
from upkeep.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)

REMINDER_LEAD_FIELDS = ("reminder_days_before", "reminder_km_before", "reminder_hours_before")


@dataclass
class ScheduleDetails:
    """A schedule together with its due-state evaluated against live vehicle readings."""

    schedule: MaintenanceSchedule
    days_until_due: Optional[int]
    distance_until_due: Optional[int]
    hours_until_due: Optional[float]
    is_overdue: bool
    is_upcoming: bool
    status: MaintenanceStatus
    template_name: Optional[str] = None

    @property
    def next_due_date(self) -> Optional[datetime]:
        return self.schedule.next_due_date


def _by_next_due(details: ScheduleDetails):
    # Schedules without a due date sort last
    due = details.next_due_date
    return (due is None, due or datetime.min, details.schedule.id)


class ScheduleManager:
    """Create, update, complete and query maintenance schedules."""

    def __init__(self, db: AsyncSession, clock: Clock = utcnow):
        self.db = db
        self.clock = clock

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _commit(self):
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def _get_owned_vehicle(self, vehicle_id: int, user_id: int) -> Vehicle:
        stmt = select(Vehicle).where(Vehicle.id == vehicle_id, Vehicle.owner_id == user_id)
        result = await self.db.execute(stmt)
        vehicle = result.scalar_one_or_none()
        if vehicle is None:
            raise NotFoundError("Vehicle not found")
        return vehicle

    async def _get_owned_schedule(self, schedule_id: int, user_id: int) -> MaintenanceSchedule:
        stmt = (
            select(MaintenanceSchedule)
            .join(Vehicle, MaintenanceSchedule.vehicle_id == Vehicle.id)
            .options(
                selectinload(MaintenanceSchedule.vehicle),
                selectinload(MaintenanceSchedule.template),
            )
            .where(MaintenanceSchedule.id == schedule_id, Vehicle.owner_id == user_id)
        )
        result = await self.db.execute(stmt)
        schedule = result.scalar_one_or_none()
        if schedule is None:
            raise NotFoundError("Schedule not found")
        return schedule

    def describe(self, schedule: MaintenanceSchedule, vehicle: Optional[Vehicle] = None) -> ScheduleDetails:
        """Build the derived view of a schedule against its vehicle's current readings."""
        vehicle = vehicle or schedule.vehicle
        now = self.clock()
        mileage = vehicle.current_mileage
        hours = vehicle.current_engine_hours

        remaining = compute_remaining(schedule, mileage, hours, now)
        status = get_status(schedule, mileage, hours, now)
        template = schedule.template
        return ScheduleDetails(
            schedule=schedule,
            days_until_due=remaining.days_remaining,
            distance_until_due=remaining.distance_remaining,
            hours_until_due=remaining.hours_remaining,
            is_overdue=remaining.is_overdue,
            is_upcoming=status == MaintenanceStatus.DUE_SOON,
            status=status,
            template_name=template.name if template is not None else None,
        )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(self, user_id: int, payload: ScheduleCreate) -> ScheduleDetails:
        """
        Create a schedule on one of the user's vehicles.

        Fields left unset on the payload are filled from the template when one
        is referenced; explicit payload values always win.

        Args:
            user_id: Acting user
            payload: Schedule fields

        Returns:
            ScheduleDetails for the new schedule

        Raises:
            NotFoundError: Vehicle missing or owned by someone else
            ValidationFailure: Template missing, or no task name / interval available
        """
        vehicle = await self._get_owned_vehicle(payload.vehicle_id, user_id)

        template = None
        if payload.template_id is not None:
            template = await template_service.get_template(self.db, payload.template_id, user_id)
            if template is None:
                raise ValidationFailure("Template not found")

        fields = payload.model_dump(exclude_unset=True)
        fields.pop("vehicle_id", None)

        if template is not None:
            fields.setdefault("task_name", template.name)
            fields.setdefault("description", template.description)
            fields.setdefault("category", template.category)
            fields.setdefault("interval_months", template.default_interval_months)
            fields.setdefault("interval_kilometers", template.default_interval_kilometers)
            fields.setdefault("interval_hours", template.default_interval_hours)
            fields.setdefault("combination_policy", template.combination_policy)

        if not fields.get("task_name"):
            raise ValidationFailure("Task name is required when no template is given")

        if settings.REJECT_SCHEDULES_WITHOUT_INTERVALS and not any(
            fields.get(key) is not None for key in INTERVAL_FIELDS
        ):
            raise ValidationFailure("At least one interval (months, kilometers or hours) is required")

        schedule = MaintenanceSchedule(vehicle_id=vehicle.id, is_active=True, **fields)
        # Explicit nulls fall back to the defaults
        if schedule.combination_policy is None:
            schedule.combination_policy = CombinationPolicy.ALL
        for key, default in (
            ("reminder_days_before", settings.DEFAULT_REMINDER_DAYS_BEFORE),
            ("reminder_km_before", settings.DEFAULT_REMINDER_KM_BEFORE),
            ("reminder_hours_before", settings.DEFAULT_REMINDER_HOURS_BEFORE),
        ):
            if getattr(schedule, key) is None:
                setattr(schedule, key, default)

        apply_next_due(schedule)
        schedule.vehicle = vehicle
        schedule.template = template

        self.db.add(schedule)
        await self._commit()

        logger.info(f"Created schedule {schedule.id} '{schedule.task_name}' for vehicle {vehicle.id}")
        return self.describe(schedule, vehicle)

    async def update(self, schedule_id: int, user_id: int, payload: ScheduleUpdate) -> ScheduleDetails:
        """Apply a partial update; next-due values are recomputed when an interval changes."""
        schedule = await self._get_owned_schedule(schedule_id, user_id)

        changes = payload.model_dump(exclude_unset=True)
        for key in REMINDER_LEAD_FIELDS + ("combination_policy", "is_active", "task_name"):
            if key in changes and changes[key] is None:
                raise ValidationFailure(f"{key} cannot be cleared")

        for key, value in changes.items():
            setattr(schedule, key, value)

        if any(key in changes for key in INTERVAL_FIELDS):
            apply_next_due(schedule)

        await self._commit()
        return self.describe(schedule)

    async def complete(
        self, schedule_id: int, user_id: int, completion: ScheduleCompletion
    ) -> ScheduleDetails:
        """
        Record a completed service and reset the schedule's due-state.

        Outstanding reminders for the schedule are completed in the same
        transaction.
        """
        schedule = await self._get_owned_schedule(schedule_id, user_id)

        schedule.last_completed_date = completion.completed_date
        schedule.last_completed_mileage = completion.completed_mileage
        schedule.last_completed_hours = completion.completed_hours
        schedule.last_service_record_id = completion.service_record_id
        apply_next_due(schedule)

        reminders = ReminderManager(self.db, clock=self.clock)
        closed = await reminders.complete_outstanding_for_schedule(schedule.id)

        await self._commit()

        logger.info(
            f"Completed schedule {schedule.id}; next due {schedule.next_due_date} / "
            f"{schedule.next_due_mileage} km / {schedule.next_due_hours} h "
            f"({closed} reminders closed)"
        )
        return self.describe(schedule)

    async def link_service_record(
        self, schedule_id: int, user_id: int, service_record_id: int
    ) -> ScheduleDetails:
        """Complete a schedule using the date and readings of one of its vehicle's service records."""
        schedule = await self._get_owned_schedule(schedule_id, user_id)

        stmt = select(ServiceRecord).where(
            ServiceRecord.id == service_record_id,
            ServiceRecord.vehicle_id == schedule.vehicle_id,
        )
        result = await self.db.execute(stmt)
        record = result.scalar_one_or_none()
        if record is None:
            raise NotFoundError("Service record not found")

        completion = ScheduleCompletion(
            completed_date=record.service_date,
            completed_mileage=record.mileage,
            completed_hours=record.engine_hours,
            service_record_id=record.id,
        )
        return await self.complete(schedule_id, user_id, completion)

    async def delete(self, schedule_id: int, user_id: int) -> None:
        """Hard delete; the schedule's reminders go with it."""
        await self._get_owned_schedule(schedule_id, user_id)

        # Reminders and their notifications must be loaded for the cascade to run
        stmt = (
            select(MaintenanceSchedule)
            .options(selectinload(MaintenanceSchedule.reminders).selectinload(Reminder.notifications))
            .where(MaintenanceSchedule.id == schedule_id)
        )
        result = await self.db.execute(stmt)
        schedule = result.scalar_one()

        await self.db.delete(schedule)
        await self._commit()
        logger.info(f"Deleted schedule {schedule_id}")

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def _active_schedules_for_user(self, user_id: int) -> List[MaintenanceSchedule]:
        stmt = (
            select(MaintenanceSchedule)
            .join(Vehicle, MaintenanceSchedule.vehicle_id == Vehicle.id)
            .options(
                selectinload(MaintenanceSchedule.vehicle),
                selectinload(MaintenanceSchedule.template),
            )
            .where(Vehicle.owner_id == user_id, MaintenanceSchedule.is_active.is_(True))
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_overdue(self, user_id: int) -> List[ScheduleDetails]:
        """Active overdue schedules across all of the user's vehicles, earliest due first."""
        schedules = await self._active_schedules_for_user(user_id)
        details = [self.describe(schedule) for schedule in schedules]
        return sorted((d for d in details if d.is_overdue), key=_by_next_due)

    async def list_upcoming(self, user_id: int) -> List[ScheduleDetails]:
        """Active schedules that are due soon but not yet overdue, earliest due first."""
        schedules = await self._active_schedules_for_user(user_id)
        details = [self.describe(schedule) for schedule in schedules]
        return sorted((d for d in details if d.is_upcoming), key=_by_next_due)

    async def get_schedules_for_vehicle(self, vehicle_id: int, user_id: int) -> List[ScheduleDetails]:
        vehicle = await self._get_owned_vehicle(vehicle_id, user_id)

        stmt = (
            select(MaintenanceSchedule)
            .options(selectinload(MaintenanceSchedule.template))
            .where(MaintenanceSchedule.vehicle_id == vehicle.id)
        )
        result = await self.db.execute(stmt)
        details = [self.describe(schedule, vehicle) for schedule in result.scalars().all()]
        return sorted(details, key=_by_next_due)

    async def get_schedule(self, schedule_id: int, user_id: int) -> ScheduleDetails:
        schedule = await self._get_owned_schedule(schedule_id, user_id)
        return self.describe(schedule)

    # ------------------------------------------------------------------
    # Recalculation
    # ------------------------------------------------------------------

    async def recalculate_schedule(self, schedule_id: int) -> MaintenanceSchedule:
        """Re-derive next-due values for one schedule."""
        schedule = await self.db.get(MaintenanceSchedule, schedule_id)
        if schedule is None:
            raise NotFoundError("Schedule not found")

        apply_next_due(schedule)
        await self._commit()
        return schedule

    async def recalculate_for_vehicle(self, vehicle_id: int) -> int:
        """
        Re-derive next-due values for every schedule of a vehicle.

        Each schedule is committed on its own; a failure is logged and the
        remaining schedules are still processed.

        Returns:
            Number of schedules recalculated successfully
        """
        result = await self.db.execute(
            select(MaintenanceSchedule.id)
            .where(MaintenanceSchedule.vehicle_id == vehicle_id)
            .order_by(MaintenanceSchedule.id)
        )
        schedule_ids = list(result.scalars().all())

        recalculated = 0
        for schedule_id in schedule_ids:
            try:
                await self.recalculate_schedule(schedule_id)
                recalculated += 1
            except Exception as e:
                logger.error(
                    f"Failed to recalculate schedule {schedule_id} for vehicle {vehicle_id}: {e}",
                    exc_info=True,
                )

        logger.info(
            f"Recalculated {recalculated}/{len(schedule_ids)} schedules for vehicle {vehicle_id}"
        )
        return recalculated

    async def update_vehicle_readings(
        self,
        vehicle_id: int,
        user_id: int,
        mileage: Optional[int] = None,
        engine_hours: Optional[float] = None,
    ) -> Vehicle:
        """Record new odometer / hour-meter readings and refresh the vehicle's schedules."""
        vehicle = await self._get_owned_vehicle(vehicle_id, user_id)

        try:
            if mileage is not None:
                vehicle.current_mileage = mileage
            if engine_hours is not None:
                vehicle.current_engine_hours = engine_hours
        except ValueError as e:
            raise ValidationFailure(str(e)) from e

        await self._commit()
        await self.recalculate_for_vehicle(vehicle.id)
        return vehicle
