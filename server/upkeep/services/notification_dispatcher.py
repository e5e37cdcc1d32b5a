"""
Notification creation, delivery and housekeeping.

Notifications are either derived from a reminder or created directly. The
dispatcher hands pending notifications to the provider for their channel and
records the outcome on each notification independently.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from upkeep.config import settings
from upkeep.exceptions import DeliveryError, NotFoundError
from upkeep.models.maintenance_schedule import MaintenanceSchedule
from upkeep.models.notification import (
    Notification,
    NotificationChannel,
    NotificationStatus,
    NotificationType,
)
from upkeep.models.reminder import Reminder
from upkeep.schemas.notification import NotificationCreate
from upkeep.services.delivery import DeliveryProvider, InAppProvider
from upkeep.services.due_state import MaintenanceStatus, get_status
from upkeep.services.reminder_manager import ReminderManager
from upkeep.utils.clock import Clock, utcnow

logger = logging.getLogger(__name__)


@dataclass
class DispatchResult:
    sent: int = 0
    failed: int = 0
    failed_ids: List[int] = field(default_factory=list)


@dataclass
class NotificationCounts:
    total: int
    unread: int


def schedule_action_url(vehicle_id: int, schedule_id: int) -> str:
    return f"{settings.ACTION_URL_PREFIX}/vehicles/{vehicle_id}/maintenance/{schedule_id}"


class NotificationDispatcher:
    """Create, deliver, read and prune user notifications."""

    def __init__(
        self,
        db: AsyncSession,
        providers: Optional[Dict[NotificationChannel, DeliveryProvider]] = None,
        clock: Clock = utcnow,
    ):
        self.db = db
        self.providers = providers or {NotificationChannel.IN_APP: InAppProvider()}
        self.clock = clock

    async def _commit(self):
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    # ========================================================================
    # Creation
    # ========================================================================

    async def create_notification(self, payload: NotificationCreate) -> Notification:
        """Create a pending notification that is not tied to maintenance."""
        now = self.clock()
        notification = Notification(
            user_id=payload.user_id,
            reminder_id=payload.reminder_id,
            notification_type=payload.notification_type,
            channel=payload.channel,
            status=NotificationStatus.PENDING,
            title=payload.title,
            message=payload.message,
            action_url=payload.action_url,
            scheduled_at=payload.scheduled_at or now,
            created_at=now,
        )
        self.db.add(notification)
        await self._commit()
        return notification

    async def from_reminder(
        self, reminder_id: int, channel: NotificationChannel = NotificationChannel.IN_APP
    ) -> Notification:
        """
        Build a pending notification from a reminder.

        The title reflects the schedule's current status: "<task> Due Soon"
        while it is approaching, "<task> Reminder" otherwise.

        Args:
            reminder_id: Source reminder
            channel: Delivery channel for the new notification

        Returns:
            The created notification

        Raises:
            NotFoundError: If the reminder does not exist
        """
        stmt = (
            select(Reminder)
            .options(selectinload(Reminder.schedule).selectinload(MaintenanceSchedule.vehicle))
            .where(Reminder.id == reminder_id)
        )
        result = await self.db.execute(stmt)
        reminder = result.scalar_one_or_none()
        if reminder is None:
            raise NotFoundError("Reminder not found")

        now = self.clock()
        schedule = reminder.schedule
        vehicle = schedule.vehicle
        status = get_status(schedule, vehicle.current_mileage, vehicle.current_engine_hours, now)

        if status == MaintenanceStatus.DUE_SOON:
            title = f"{schedule.task_name} Due Soon"
        else:
            title = f"{schedule.task_name} Reminder"

        if status == MaintenanceStatus.OVERDUE:
            notification_type = NotificationType.MAINTENANCE_OVERDUE
        else:
            notification_type = NotificationType.MAINTENANCE_DUE

        notification = Notification(
            user_id=reminder.user_id,
            reminder_id=reminder.id,
            notification_type=notification_type,
            channel=channel,
            status=NotificationStatus.PENDING,
            title=title[:200],
            message=reminder.message,
            action_url=schedule_action_url(vehicle.id, schedule.id),
            scheduled_at=now,
            created_at=now,
        )
        self.db.add(notification)
        await self._commit()

        logger.debug(f"Created {channel.value} notification {notification.id} for reminder {reminder_id}")
        return notification

    # ========================================================================
    # Delivery
    # ========================================================================

    async def _deliver(self, notification: Notification) -> None:
        provider = self.providers.get(notification.channel)
        if provider is None:
            raise DeliveryError(f"No provider registered for {notification.channel.value}")
        await provider.deliver(notification)

    async def dispatch_pending(self) -> DispatchResult:
        """
        Deliver every pending notification that is due.

        Each notification is committed on its own so one failure never blocks
        the rest of the batch. A delivered notification that came from a
        reminder marks that reminder sent.

        Returns:
            DispatchResult with sent / failed counts
        """
        now = self.clock()
        stmt = (
            select(Notification.id)
            .where(
                Notification.status == NotificationStatus.PENDING,
                or_(Notification.scheduled_at.is_(None), Notification.scheduled_at <= now),
            )
            .order_by(Notification.scheduled_at, Notification.id)
        )
        result = await self.db.execute(stmt)
        pending_ids = list(result.scalars().all())

        outcome = DispatchResult()
        reminders = ReminderManager(self.db, clock=self.clock)

        for notification_id in pending_ids:
            try:
                loaded = await self.db.execute(
                    select(Notification)
                    .options(selectinload(Notification.user))
                    .where(Notification.id == notification_id)
                )
                notification = loaded.scalar_one()

                try:
                    await self._deliver(notification)
                except Exception as e:
                    notification.status = NotificationStatus.FAILED
                    notification.error_message = str(e)[:1000]
                    await self.db.commit()
                    outcome.failed += 1
                    outcome.failed_ids.append(notification_id)
                    logger.warning(f"Failed to deliver notification {notification_id}: {e}")
                    continue

                notification.status = NotificationStatus.SENT
                notification.sent_at = self.clock()
                if notification.reminder_id is not None:
                    await reminders.mark_sent(notification.reminder_id, commit=False)
                await self.db.commit()
                outcome.sent += 1

            except Exception as e:
                await self.db.rollback()
                outcome.failed += 1
                outcome.failed_ids.append(notification_id)
                logger.error(f"Error dispatching notification {notification_id}: {e}", exc_info=True)

        logger.info(
            f"Dispatched {len(pending_ids)} notifications: {outcome.sent} sent, {outcome.failed} failed"
        )
        return outcome

    # ========================================================================
    # Reading
    # ========================================================================

    async def get(self, notification_id: int, user_id: int) -> Notification:
        stmt = select(Notification).where(
            Notification.id == notification_id, Notification.user_id == user_id
        )
        result = await self.db.execute(stmt)
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotFoundError("Notification not found")
        return notification

    async def list_for_user(self, user_id: int, limit: int = 50) -> List[Notification]:
        """Most recent notifications for a user."""
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def list_unread(self, user_id: int) -> List[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id, Notification.status != NotificationStatus.READ)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_counts(self, user_id: int) -> NotificationCounts:
        total = await self.db.scalar(
            select(func.count(Notification.id)).where(Notification.user_id == user_id)
        )
        unread = await self.db.scalar(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id, Notification.status != NotificationStatus.READ
            )
        )
        return NotificationCounts(total=total or 0, unread=unread or 0)

    async def mark_read(self, notification_id: int, user_id: int) -> Notification:
        """Mark one notification read. Reading an undelivered notification finalizes it."""
        notification = await self.get(notification_id, user_id)
        if notification.status != NotificationStatus.READ:
            notification.status = NotificationStatus.READ
            notification.read_at = self.clock()
            await self._commit()
        return notification

    async def mark_all_read(self, user_id: int) -> int:
        """Mark every unread notification of a user read. Returns the number changed."""
        result = await self.db.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.status != NotificationStatus.READ)
            .values(status=NotificationStatus.READ, read_at=self.clock())
            .execution_options(synchronize_session="fetch")
        )
        await self._commit()
        return result.rowcount

    async def delete(self, notification_id: int, user_id: int) -> None:
        notification = await self.get(notification_id, user_id)
        await self.db.delete(notification)
        await self._commit()

    # ========================================================================
    # Housekeeping
    # ========================================================================

    async def prune_old(self, days_old: Optional[int] = None) -> int:
        """
        Delete read notifications older than the retention window.

        Unread notifications are kept regardless of age.

        Returns:
            Number of notifications deleted
        """
        days_old = settings.NOTIFICATION_RETENTION_DAYS if days_old is None else days_old
        cutoff = self.clock() - timedelta(days=days_old)

        result = await self.db.execute(
            delete(Notification)
            .where(Notification.created_at < cutoff, Notification.status == NotificationStatus.READ)
            .execution_options(synchronize_session=False)
        )
        await self._commit()

        if result.rowcount:
            logger.info(f"Pruned {result.rowcount} read notifications older than {days_old} days")
        return result.rowcount
