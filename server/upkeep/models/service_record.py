"""Service record model."""

from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import relationship

from upkeep.models.base import Base, TimestampMixin


class ServiceRecord(Base, TimestampMixin):
    """A completed service event on a vehicle.

    Linking a service record to a schedule completes the schedule with the
    record's date, mileage and engine hours.
    """

    __tablename__ = "service_records"

    # Primary Identity
    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)

    # Service Performed
    service_date = Column(DateTime, nullable=False, index=True)
    mileage = Column(Integer, nullable=False)
    engine_hours = Column(Float)
    service_type = Column(String(50))  # oil_change, tire_rotation, brake_service, ...
    service_center = Column(String(100))
    description = Column(Text)
    total_cost = Column(Numeric(10, 2))

    # Relationships
    vehicle = relationship("Vehicle", back_populates="service_records")

    def __repr__(self):
        return (
            f"<ServiceRecord(id={self.id}, vehicle_id={self.vehicle_id}, "
            f"service_date='{self.service_date}')>"
        )
