"""Request payload for direct notifications."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from upkeep.models.notification import NotificationChannel, NotificationType
from upkeep.utils.clock import as_naive_utc


class NotificationCreate(BaseModel):
    user_id: int
    notification_type: NotificationType = NotificationType.GENERAL
    channel: NotificationChannel = NotificationChannel.IN_APP
    title: str = Field(max_length=200)
    message: str = Field(max_length=1000)
    action_url: Optional[str] = Field(default=None, max_length=500)
    scheduled_at: Optional[datetime] = None  # Defaults to creation time
    reminder_id: Optional[int] = None

    @field_validator("scheduled_at")
    @classmethod
    def _naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_naive_utc(value) if value is not None else None
