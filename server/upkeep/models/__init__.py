"""Database models for the maintenance engine."""

from upkeep.models.base import Base
from upkeep.models.maintenance_schedule import CombinationPolicy, MaintenanceSchedule
from upkeep.models.maintenance_template import MaintenanceTemplate
from upkeep.models.notification import (
    Notification,
    NotificationChannel,
    NotificationStatus,
    NotificationType,
)
from upkeep.models.owner import Owner
from upkeep.models.reminder import Reminder, ReminderStatus, ReminderType
from upkeep.models.service_record import ServiceRecord
from upkeep.models.vehicle import Vehicle

__all__ = [
    "Base",
    "Owner",
    "Vehicle",
    "ServiceRecord",
    "MaintenanceTemplate",
    "MaintenanceSchedule",
    "CombinationPolicy",
    "Reminder",
    "ReminderStatus",
    "ReminderType",
    "Notification",
    "NotificationChannel",
    "NotificationStatus",
    "NotificationType",
]
