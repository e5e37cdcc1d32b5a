"""Maintenance template model."""

from sqlalchemy import Boolean, Column
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import Float, ForeignKey, Integer, String

from upkeep.models.base import Base, TimestampMixin
from upkeep.models.maintenance_schedule import CombinationPolicy


class MaintenanceTemplate(Base, TimestampMixin):
    """Reusable defaults copied into a schedule when it is created.

    System templates are shared and read-only; custom templates belong to a
    single owner and can be edited or removed by them.
    """

    __tablename__ = "maintenance_templates"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(200), nullable=False)
    description = Column(String(1000))
    category = Column(String(100), nullable=False, index=True)

    is_system_template = Column(Boolean, nullable=False, default=False, index=True)
    owner_id = Column(Integer, ForeignKey("owners.id"), index=True)

    # Default intervals (can be overridden per schedule)
    default_interval_months = Column(Integer)
    default_interval_kilometers = Column(Integer)
    default_interval_hours = Column(Float)
    combination_policy = Column(
        SQLEnum(CombinationPolicy), nullable=False, default=CombinationPolicy.ALL
    )

    def __repr__(self):
        return (
            f"<MaintenanceTemplate(id={self.id}, name='{self.name}', "
            f"system={self.is_system_template})>"
        )
