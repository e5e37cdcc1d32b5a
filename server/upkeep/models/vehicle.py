"""Vehicle model."""

import re

from sqlalchemy import Column, Float, ForeignKey, Integer, String
from sqlalchemy.orm import relationship, validates

from upkeep.models.base import Base, TimestampMixin


class Vehicle(Base, TimestampMixin):
    """Vehicle model holding the live readings schedules are evaluated against.

    Stores:
    - Vehicle identification (VIN, make, model, year)
    - Owning user
    - Current odometer and engine-hour readings
    """

    __tablename__ = "vehicles"

    # Primary Identity
    id = Column(Integer, primary_key=True, index=True)
    owner_id = Column(Integer, ForeignKey("owners.id"), nullable=False, index=True)

    # Vehicle Identification
    vin = Column(String(17), unique=True, index=True)

    # Vehicle Details
    year = Column(Integer)
    make = Column(String(100))
    model = Column(String(100))

    # Live Readings
    current_mileage = Column(Integer, nullable=False, default=0)
    current_engine_hours = Column(Float)  # Only tracked for equipment with an hour meter

    # Relationships
    owner = relationship("Owner", back_populates="vehicles")
    schedules = relationship(
        "MaintenanceSchedule", back_populates="vehicle", cascade="all, delete-orphan"
    )
    service_records = relationship(
        "ServiceRecord", back_populates="vehicle", cascade="all, delete-orphan"
    )

    @validates("vin")
    def validate_vin(self, key, value):
        """Validate VIN format (17 characters, no I/O/Q) and uppercase it."""
        if not value:
            return value

        value = value.upper()

        if len(value) != 17:
            raise ValueError(f"VIN must be exactly 17 characters, got {len(value)}")

        vin_pattern = r"^[A-HJ-NPR-Z0-9]{17}$"
        if not re.match(vin_pattern, value):
            raise ValueError(
                f"Invalid VIN format: {value}. VIN must contain only letters (except I, O, Q) and numbers"
            )

        return value

    @validates("current_mileage", "current_engine_hours")
    def validate_reading(self, key, value):
        """Odometer and hour-meter readings cannot be negative."""
        if value is not None and value < 0:
            raise ValueError(f"{key} cannot be negative, got {value}")
        return value

    @property
    def display_name(self) -> str:
        return " ".join(str(part) for part in (self.year, self.make, self.model) if part)

    def __repr__(self):
        return f"<Vehicle(id={self.id}, vin='{self.vin}', {self.year} {self.make} {self.model})>"
