"""Maintenance schedule model."""

import enum

from sqlalchemy import Boolean, Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Float, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from upkeep.config import settings
from upkeep.models.base import Base, TimestampMixin


class CombinationPolicy(str, enum.Enum):
    """How the configured interval dimensions combine into "overdue".

    ANY: overdue as soon as one dimension has passed its next-due value.
    ALL: overdue only once every configured dimension has passed.
    """

    ANY = "any"
    ALL = "all"


class MaintenanceSchedule(Base, TimestampMixin):
    """One tracked maintenance task on one vehicle.

    Stores:
    - Task identity and optional source template
    - Interval configuration per dimension (months, kilometers, engine hours)
    - Last completion values and the service record that satisfied it
    - Derived next-due values (recomputed by the engine, never set by clients)
    - Reminder lead thresholds per dimension
    """

    __tablename__ = "maintenance_schedules"

    __table_args__ = (
        Index("ix_maintenance_schedules_vehicle_active", "vehicle_id", "is_active"),
    )

    # Primary Identity
    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)
    template_id = Column(Integer, ForeignKey("maintenance_templates.id"), index=True)

    # Task Details
    task_name = Column(String(200), nullable=False)
    description = Column(String(1000))
    category = Column(String(100))

    # Interval Configuration
    interval_months = Column(Integer)
    interval_kilometers = Column(Integer)
    interval_hours = Column(Float)
    combination_policy = Column(
        SQLEnum(CombinationPolicy), nullable=False, default=CombinationPolicy.ALL
    )

    # Last Completion
    last_completed_date = Column(DateTime)
    last_completed_mileage = Column(Integer)
    last_completed_hours = Column(Float)
    last_service_record_id = Column(Integer, ForeignKey("service_records.id"))

    # Next Due (derived)
    next_due_date = Column(DateTime, index=True)
    next_due_mileage = Column(Integer)
    next_due_hours = Column(Float)

    # Reminder Lead Thresholds
    reminder_days_before = Column(
        Integer, nullable=False, default=settings.DEFAULT_REMINDER_DAYS_BEFORE
    )
    reminder_km_before = Column(Integer, nullable=False, default=settings.DEFAULT_REMINDER_KM_BEFORE)
    reminder_hours_before = Column(
        Float, nullable=False, default=settings.DEFAULT_REMINDER_HOURS_BEFORE
    )

    # Lifecycle
    is_active = Column(Boolean, nullable=False, default=True, index=True)

    notes = Column(Text)

    # Relationships
    vehicle = relationship("Vehicle", back_populates="schedules")
    template = relationship("MaintenanceTemplate")
    last_service_record = relationship("ServiceRecord")
    reminders = relationship(
        "Reminder", back_populates="schedule", cascade="all, delete-orphan"
    )

    def __repr__(self):
        return (
            f"<MaintenanceSchedule(id={self.id}, vehicle_id={self.vehicle_id}, "
            f"task='{self.task_name}', next_due_date='{self.next_due_date}')>"
        )
