"""Request payloads for schedule and template operations."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from upkeep.models.maintenance_schedule import CombinationPolicy
from upkeep.utils.clock import as_naive_utc

INTERVAL_FIELDS = ("interval_months", "interval_kilometers", "interval_hours")


class ScheduleCreate(BaseModel):
    """Fields left unset fall back to the template's defaults when a template is given."""

    vehicle_id: int
    template_id: Optional[int] = None
    task_name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = Field(default=None, max_length=100)
    interval_months: Optional[int] = Field(default=None, gt=0)
    interval_kilometers: Optional[int] = Field(default=None, gt=0)
    interval_hours: Optional[float] = Field(default=None, gt=0)
    combination_policy: Optional[CombinationPolicy] = None
    last_completed_date: Optional[datetime] = None
    last_completed_mileage: Optional[int] = Field(default=None, ge=0)
    last_completed_hours: Optional[float] = Field(default=None, ge=0)
    reminder_days_before: Optional[int] = Field(default=None, ge=0)
    reminder_km_before: Optional[int] = Field(default=None, ge=0)
    reminder_hours_before: Optional[float] = Field(default=None, ge=0)
    notes: Optional[str] = None

    @field_validator("last_completed_date")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value) if value is not None else None


class ScheduleUpdate(BaseModel):
    """Partial update; only fields explicitly set are applied."""

    task_name: Optional[str] = Field(default=None, max_length=200)
    description: Optional[str] = Field(default=None, max_length=1000)
    category: Optional[str] = Field(default=None, max_length=100)
    interval_months: Optional[int] = Field(default=None, gt=0)
    interval_kilometers: Optional[int] = Field(default=None, gt=0)
    interval_hours: Optional[float] = Field(default=None, gt=0)
    combination_policy: Optional[CombinationPolicy] = None
    reminder_days_before: Optional[int] = Field(default=None, ge=0)
    reminder_km_before: Optional[int] = Field(default=None, ge=0)
    reminder_hours_before: Optional[float] = Field(default=None, ge=0)
    is_active: Optional[bool] = None
    notes: Optional[str] = None


class ScheduleCompletion(BaseModel):
    completed_date: datetime
    completed_mileage: int = Field(ge=0)
    completed_hours: Optional[float] = Field(default=None, ge=0)
    service_record_id: Optional[int] = None

    @field_validator("completed_date")
    @classmethod
    def _naive_utc(cls, value: datetime) -> datetime:
        """Stored dates are naive UTC; offsets are converted, not dropped."""
        return as_naive_utc(value)


class TemplateCreate(BaseModel):
    name: str = Field(max_length=200)
    category: str = Field(max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    default_interval_months: Optional[int] = Field(default=None, gt=0)
    default_interval_kilometers: Optional[int] = Field(default=None, gt=0)
    default_interval_hours: Optional[float] = Field(default=None, gt=0)
    combination_policy: CombinationPolicy = CombinationPolicy.ALL


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(default=None, max_length=200)
    category: Optional[str] = Field(default=None, max_length=100)
    description: Optional[str] = Field(default=None, max_length=1000)
    default_interval_months: Optional[int] = Field(default=None, gt=0)
    default_interval_kilometers: Optional[int] = Field(default=None, gt=0)
    default_interval_hours: Optional[float] = Field(default=None, gt=0)
    combination_policy: Optional[CombinationPolicy] = None
