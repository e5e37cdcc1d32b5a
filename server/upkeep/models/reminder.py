"""Reminder model."""

import enum

from sqlalchemy import Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from upkeep.models.base import Base, TimestampMixin


class ReminderStatus(str, enum.Enum):
    """Reminder status enum. DISMISSED and COMPLETED are terminal."""

    PENDING = "pending"
    SENT = "sent"
    DISMISSED = "dismissed"
    COMPLETED = "completed"


class ReminderType(str, enum.Enum):
    """Which dimension caused the reminder to fire."""

    TIME = "time"
    MILEAGE = "mileage"
    HOURS = "hours"
    COMPOUND = "compound"


# A schedule may have at most one outstanding reminder
ACTIVE_REMINDER_STATUSES = (ReminderStatus.PENDING, ReminderStatus.SENT)
TERMINAL_REMINDER_STATUSES = (ReminderStatus.DISMISSED, ReminderStatus.COMPLETED)


class Reminder(Base, TimestampMixin):
    """Engine notice that a maintenance schedule needs the owner's attention."""

    __tablename__ = "reminders"

    __table_args__ = (
        Index("ix_reminders_user_status", "user_id", "status"),
        # Storage back-stop for the one-outstanding-reminder rule. Enum columns
        # persist member names.
        Index(
            "uq_reminders_active_schedule",
            "maintenance_schedule_id",
            unique=True,
            sqlite_where=text("status IN ('PENDING', 'SENT')"),
            postgresql_where=text("status IN ('PENDING', 'SENT')"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    maintenance_schedule_id = Column(
        Integer, ForeignKey("maintenance_schedules.id"), nullable=False, index=True
    )
    user_id = Column(Integer, ForeignKey("owners.id"), nullable=False)

    status = Column(SQLEnum(ReminderStatus), nullable=False, default=ReminderStatus.PENDING)
    reminder_type = Column(SQLEnum(ReminderType), nullable=False)

    message = Column(String(500), nullable=False)
    scheduled_date = Column(DateTime)
    sent_date = Column(DateTime)
    dismissed_date = Column(DateTime)

    # Relationships
    schedule = relationship("MaintenanceSchedule", back_populates="reminders")
    notifications = relationship("Notification", back_populates="reminder")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REMINDER_STATUSES

    def __repr__(self):
        return (
            f"<Reminder(id={self.id}, schedule_id={self.maintenance_schedule_id}, "
            f"status='{self.status}', type='{self.reminder_type}')>"
        )
