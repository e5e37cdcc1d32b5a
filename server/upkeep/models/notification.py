"""Notification model."""

import enum

from sqlalchemy import Column, DateTime
from sqlalchemy import Enum as SQLEnum
from sqlalchemy import ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship

from upkeep.models.base import Base, TimestampMixin


class NotificationType(str, enum.Enum):
    """What the notification is about."""

    MAINTENANCE_DUE = "maintenance_due"
    MAINTENANCE_OVERDUE = "maintenance_overdue"
    GENERAL = "general"


class NotificationChannel(str, enum.Enum):
    """Where the notification is delivered."""

    IN_APP = "in_app"
    EMAIL = "email"
    PUSH = "push"


class NotificationStatus(str, enum.Enum):
    """Notification status enum.

    PENDING -> SENT | FAILED, SENT -> READ. A pending notification may also be
    read directly, which finalizes it.
    """

    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    READ = "read"


class Notification(Base, TimestampMixin):
    """A deliverable message for a user, usually derived from a reminder."""

    __tablename__ = "notifications"

    __table_args__ = (
        Index("ix_notifications_status_scheduled", "status", "scheduled_at"),
        Index("ix_notifications_user_status", "user_id", "status"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("owners.id"), nullable=False)
    # Weak reference: cleared when the reminder is deleted
    reminder_id = Column(Integer, ForeignKey("reminders.id", ondelete="SET NULL"), index=True)

    notification_type = Column(SQLEnum(NotificationType), nullable=False)
    channel = Column(SQLEnum(NotificationChannel), nullable=False, default=NotificationChannel.IN_APP)
    status = Column(
        SQLEnum(NotificationStatus), nullable=False, default=NotificationStatus.PENDING
    )

    title = Column(String(200), nullable=False)
    message = Column(String(1000), nullable=False)
    action_url = Column(String(500))

    scheduled_at = Column(DateTime)
    sent_at = Column(DateTime)
    read_at = Column(DateTime)
    error_message = Column(String(1000))

    # Relationships
    user = relationship("Owner", back_populates="notifications")
    reminder = relationship("Reminder", back_populates="notifications")

    def __repr__(self):
        return (
            f"<Notification(id={self.id}, user_id={self.user_id}, channel='{self.channel}', "
            f"status='{self.status}')>"
        )
