"""
Interval calculations for maintenance schedules.

Pure functions: next-due values derive only from a schedule's interval and
last-completed fields, while remaining-until-due values also depend on the
vehicle's live readings and the current time.
"""

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from dateutil.relativedelta import relativedelta

from upkeep.utils.clock import utcnow

SECONDS_PER_DAY = 86400


@dataclass
class NextDue:
    """Next-due value per dimension; None where the dimension is not configured."""

    next_due_date: Optional[datetime] = None
    next_due_mileage: Optional[int] = None
    next_due_hours: Optional[float] = None


@dataclass
class Remaining:
    """Amount left before each dimension comes due. Negative means overdue by that much."""

    days_remaining: Optional[int] = None
    distance_remaining: Optional[int] = None
    hours_remaining: Optional[float] = None
    is_overdue: bool = False


def add_months(value: datetime, months: int) -> datetime:
    """Calendar-month addition; the day of month is clamped to the target month's length."""
    return value + relativedelta(months=months)


def calc_due_date(last_date: Optional[datetime], interval_months: Optional[int]) -> Optional[datetime]:
    """Calculate next due date: last + interval months."""
    if interval_months is None or last_date is None:
        return None
    return add_months(last_date, interval_months)


def calc_due_mileage(last_mileage: Optional[int], interval_km: Optional[int]) -> Optional[int]:
    """Calculate next due mileage: last + interval kilometers."""
    if interval_km is None or last_mileage is None:
        return None
    return last_mileage + interval_km


def calc_due_hours(last_hours: Optional[float], interval_hours: Optional[float]) -> Optional[float]:
    """Calculate next due engine hours: last + interval hours."""
    if interval_hours is None or last_hours is None:
        return None
    return last_hours + interval_hours


def compute_next_due(schedule) -> NextDue:
    """
    Compute next-due values for every configured dimension.

    Each dimension is independent and is only populated when both its interval
    and its last-completed value are set. Vehicle readings play no part here.

    Args:
        schedule: MaintenanceSchedule (or any object with the same attributes)

    Returns:
        NextDue with the populated dimensions
    """
    return NextDue(
        next_due_date=calc_due_date(schedule.last_completed_date, schedule.interval_months),
        next_due_mileage=calc_due_mileage(
            schedule.last_completed_mileage, schedule.interval_kilometers
        ),
        next_due_hours=calc_due_hours(schedule.last_completed_hours, schedule.interval_hours),
    )


def apply_next_due(schedule) -> NextDue:
    """Recompute next-due values and store them on the schedule."""
    next_due = compute_next_due(schedule)
    schedule.next_due_date = next_due.next_due_date
    schedule.next_due_mileage = next_due.next_due_mileage
    schedule.next_due_hours = next_due.next_due_hours
    return next_due


def days_until(target: datetime, now: datetime) -> int:
    """Whole days until target, rounded up (negative once target has passed)."""
    return math.ceil((target - now).total_seconds() / SECONDS_PER_DAY)


def measure_remaining(
    schedule,
    current_mileage: Optional[int],
    current_hours: Optional[float],
    now: Optional[datetime] = None,
) -> Remaining:
    """Remaining amounts per dimension, without the overdue verdict."""
    now = now or utcnow()
    remaining = Remaining()

    if schedule.next_due_date is not None:
        remaining.days_remaining = days_until(schedule.next_due_date, now)

    if schedule.next_due_mileage is not None and current_mileage is not None:
        remaining.distance_remaining = schedule.next_due_mileage - current_mileage

    if schedule.next_due_hours is not None and current_hours is not None:
        remaining.hours_remaining = schedule.next_due_hours - current_hours

    return remaining


def compute_remaining(
    schedule,
    current_mileage: Optional[int],
    current_hours: Optional[float],
    now: Optional[datetime] = None,
) -> Remaining:
    """
    Compute remaining-until-due values and the overdue verdict.

    Args:
        schedule: MaintenanceSchedule with next-due values populated
        current_mileage: Vehicle's current odometer reading
        current_hours: Vehicle's current engine hours (None if not tracked)
        now: Evaluation time (defaults to current UTC time)

    Returns:
        Remaining; is_overdue is decided by the due-state evaluator so the two
        always agree
    """
    from upkeep.services.due_state import is_overdue

    now = now or utcnow()
    remaining = measure_remaining(schedule, current_mileage, current_hours, now)
    remaining.is_overdue = is_overdue(schedule, current_mileage, current_hours, now)
    return remaining
