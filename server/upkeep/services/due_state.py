"""
Due-state evaluation for maintenance schedules.

Each dimension (time, distance, engine hours) is first reduced to a trigger
state. The combination policy then decides "overdue" from those states, while
"upcoming" is always any-of over the reminder lead thresholds.
"""

import enum
from datetime import datetime
from typing import Dict, Optional

from upkeep.config import settings
from upkeep.models.maintenance_schedule import CombinationPolicy
from upkeep.services.interval_calculator import Remaining, measure_remaining
from upkeep.utils.clock import utcnow


class MaintenanceStatus(str, enum.Enum):
    """Schedule status. Overdue takes precedence over due soon."""

    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    OK = "ok"


class Dimension(str, enum.Enum):
    TIME = "time"
    DISTANCE = "distance"
    HOURS = "hours"


class TriggerState(str, enum.Enum):
    """Where a single dimension stands relative to its next-due value."""

    UNCONFIGURED = "unconfigured"
    OK = "ok"
    UPCOMING = "upcoming"
    OVERDUE = "overdue"


def _threshold(value, default):
    return default if value is None else value


def _policy(schedule) -> CombinationPolicy:
    return schedule.combination_policy or CombinationPolicy.ALL


def _classify(passed: bool, remaining, threshold) -> TriggerState:
    if passed:
        return TriggerState.OVERDUE
    if 0 < remaining <= threshold:
        return TriggerState.UPCOMING
    return TriggerState.OK


def evaluate_dimensions(
    schedule,
    current_mileage: Optional[int],
    current_hours: Optional[float],
    now: Optional[datetime] = None,
    remaining: Optional[Remaining] = None,
) -> Dict[Dimension, TriggerState]:
    """
    Reduce every dimension of a schedule to a TriggerState.

    Args:
        schedule: MaintenanceSchedule with next-due values populated
        current_mileage: Vehicle's current odometer reading
        current_hours: Vehicle's current engine hours (None if not tracked)
        now: Evaluation time (defaults to current UTC time)
        remaining: Precomputed remaining amounts for the same inputs

    Returns:
        Mapping of each Dimension to its TriggerState
    """
    now = now or utcnow()
    if remaining is None:
        remaining = measure_remaining(schedule, current_mileage, current_hours, now)

    states = {dimension: TriggerState.UNCONFIGURED for dimension in Dimension}

    if schedule.next_due_date is not None:
        states[Dimension.TIME] = _classify(
            now > schedule.next_due_date,
            remaining.days_remaining,
            _threshold(schedule.reminder_days_before, settings.DEFAULT_REMINDER_DAYS_BEFORE),
        )

    if remaining.distance_remaining is not None:
        states[Dimension.DISTANCE] = _classify(
            current_mileage > schedule.next_due_mileage,
            remaining.distance_remaining,
            _threshold(schedule.reminder_km_before, settings.DEFAULT_REMINDER_KM_BEFORE),
        )

    # Hours only count when the vehicle actually reports an hour-meter reading
    if remaining.hours_remaining is not None:
        states[Dimension.HOURS] = _classify(
            current_hours > schedule.next_due_hours,
            remaining.hours_remaining,
            _threshold(schedule.reminder_hours_before, settings.DEFAULT_REMINDER_HOURS_BEFORE),
        )

    return states


def overdue_from_states(policy: CombinationPolicy, states: Dict[Dimension, TriggerState]) -> bool:
    """Apply the combination policy to per-dimension states."""
    configured = [state for state in states.values() if state != TriggerState.UNCONFIGURED]
    if policy == CombinationPolicy.ANY:
        return any(state == TriggerState.OVERDUE for state in configured)
    # ALL: a schedule with nothing configured is never overdue
    return bool(configured) and all(state == TriggerState.OVERDUE for state in configured)


def is_overdue(
    schedule,
    current_mileage: Optional[int],
    current_hours: Optional[float],
    now: Optional[datetime] = None,
) -> bool:
    """True when the schedule has passed its next-due point under its combination policy."""
    states = evaluate_dimensions(schedule, current_mileage, current_hours, now)
    return overdue_from_states(_policy(schedule), states)


def is_upcoming(
    schedule,
    current_mileage: Optional[int],
    current_hours: Optional[float],
    now: Optional[datetime] = None,
) -> bool:
    """True when not overdue and any dimension is within its reminder lead (inclusive)."""
    states = evaluate_dimensions(schedule, current_mileage, current_hours, now)
    if overdue_from_states(_policy(schedule), states):
        return False
    return any(state == TriggerState.UPCOMING for state in states.values())


def get_status(
    schedule,
    current_mileage: Optional[int],
    current_hours: Optional[float],
    now: Optional[datetime] = None,
) -> MaintenanceStatus:
    """Classify a schedule as overdue, due soon or OK from current state."""
    states = evaluate_dimensions(schedule, current_mileage, current_hours, now)
    if overdue_from_states(_policy(schedule), states):
        return MaintenanceStatus.OVERDUE
    if any(state == TriggerState.UPCOMING for state in states.values()):
        return MaintenanceStatus.DUE_SOON
    return MaintenanceStatus.OK
