"""
Notification Service - Business Logic Layer

This module manages user notifications for onboarding workflows:
- Notification creation with multi-channel fan-out
- Channel delivery tracking (in-app delivered immediately, email/SMS/push
  handed to a logging transport)
- Scheduled delivery and overdue task sweeps
- Read / dismissed state per recipient
"""

import uuid
from typing import Any, Dict, Mapping, Optional

from onboardflow.app.core.exceptions import NotFoundError
from onboardflow.app.models.domain.workflow import (
    ChannelType,
    NotificationStatus,
    NotificationType,
    Priority,
    TaskStatus,
    utcnow
)
from onboardflow.app.repositories.mongodb.entity_store import (
    EntityStore,
    EntityType,
    ListResult,
    SortSpec
)
from onboardflow.app.utils.logging import get_logger, performance_context
from onboardflow.config.settings import get_settings

logger = get_logger(__name__)

MOCKED_CHANNELS = {ChannelType.EMAIL.value, ChannelType.SMS.value, ChannelType.PUSH.value}


class NotificationService:
    """
    Creates and delivers notifications.

    External transports are not wired in; email, SMS and push deliveries are
    logged and marked sent.
    """

    def __init__(self, store: Optional[EntityStore] = None):
        self.store = store or EntityStore()
        self.settings = get_settings()

    async def create(self, spec: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Create a notification and send it unless it is scheduled for later.

        Args:
            spec: {recipientId, title, message, type, priority, relatedEntityType,
                relatedEntityId, channels?, scheduledFor?, metadata?}

        Returns:
            The stored notification
        """
        now = utcnow()
        channels = spec.get("channels") or self.settings.workflow.default_notification_channels
        scheduled_for = spec.get("scheduledFor") or now

        payload = {
            "notificationId": str(uuid.uuid4()),
            "recipientId": spec.get("recipientId"),
            "title": spec.get("title"),
            "message": spec.get("message"),
            "type": getattr(spec.get("type"), "value", spec.get("type")) or NotificationType.SYSTEM.value,
            "priority": getattr(spec.get("priority"), "value", spec.get("priority")) or Priority.MEDIUM.value,
            "relatedEntityType": spec.get("relatedEntityType"),
            "relatedEntityId": spec.get("relatedEntityId"),
            "channels": [
                {"type": getattr(channel, "value", channel), "status": NotificationStatus.PENDING.value}
                for channel in channels
            ],
            "status": NotificationStatus.PENDING.value,
            "isRead": False,
            "isDismissed": False,
            "scheduledFor": scheduled_for,
            "metadata": dict(spec.get("metadata") or {}),
        }

        notification = await self.store.create(EntityType.NOTIFICATION, payload)
        logger.debug(
            "Notification created",
            notification_id=notification["notificationId"],
            recipient_id=notification["recipientId"],
            type=notification["type"]
        )

        if notification["scheduledFor"] <= now:
            notification = await self.send(notification)
        return notification

    async def send(self, notification: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Deliver a notification on each of its channels.

        Per-channel failures are recorded on the channel; the notification is
        failed only when no channel succeeded.
        """
        now = utcnow()
        channels = []
        for channel in notification.get("channels", []):
            channel = dict(channel)
            channel_type = channel.get("type")
            if channel_type == ChannelType.IN_APP.value:
                channel.update(status=NotificationStatus.DELIVERED.value, sentAt=now, deliveredAt=now)
            elif channel_type in MOCKED_CHANNELS:
                logger.info(
                    "Notification dispatched",
                    channel=channel_type,
                    recipient_id=notification.get("recipientId"),
                    title=notification.get("title")
                )
                channel.update(status=NotificationStatus.SENT.value, sentAt=now)
            else:
                channel.update(
                    status=NotificationStatus.FAILED.value,
                    failureReason=f"Unsupported channel: {channel_type}"
                )
            channels.append(channel)

        delivered = any(c["status"] != NotificationStatus.FAILED.value for c in channels)
        status = NotificationStatus.SENT.value if delivered or not channels else NotificationStatus.FAILED.value

        return await self.store.update(
            EntityType.NOTIFICATION,
            notification["id"],
            {"channels": channels, "status": status, "sentAt": now}
        )

    async def _get_owned(self, notification_id: str, user_id: str) -> Dict[str, Any]:
        notification = await self.store.get(EntityType.NOTIFICATION, notification_id)
        if notification is None or notification.get("recipientId") != user_id:
            raise NotFoundError(
                f"Notification {notification_id} not found",
                entity_type=EntityType.NOTIFICATION.value,
                entity_id=notification_id
            )
        return notification

    async def mark_read(self, notification_id: str, user_id: str) -> Dict[str, Any]:
        await self._get_owned(notification_id, user_id)
        return await self.store.update(
            EntityType.NOTIFICATION,
            notification_id,
            {"isRead": True, "readAt": utcnow(), "status": NotificationStatus.READ.value}
        )

    async def mark_dismissed(self, notification_id: str, user_id: str) -> Dict[str, Any]:
        await self._get_owned(notification_id, user_id)
        return await self.store.update(
            EntityType.NOTIFICATION,
            notification_id,
            {"isDismissed": True, "dismissedAt": utcnow(), "status": NotificationStatus.DISMISSED.value}
        )

    async def mark_all_read(self, user_id: str) -> int:
        return await self.store.update_many(
            EntityType.NOTIFICATION,
            {"recipientId": user_id, "isRead": False},
            {"isRead": True, "readAt": utcnow(), "status": NotificationStatus.READ.value}
        )

    async def get_user_notifications(
        self,
        user_id: str,
        unread_only: bool = False,
        page: int = 1,
        limit: Optional[int] = 20
    ) -> Dict[str, Any]:
        """A recipient's notifications (dismissed ones excluded) with the unread count."""
        filters: Dict[str, Any] = {"recipientId": user_id, "isDismissed": False}
        if unread_only:
            filters["isRead"] = False

        result = await self.store.list(EntityType.NOTIFICATION, filters, page=page, limit=limit)
        unread = await self.store.count(
            EntityType.NOTIFICATION,
            {"recipientId": user_id, "isRead": False, "isDismissed": False}
        )
        return {"items": result.items, "totalCount": result.total_count, "unreadCount": unread}

    async def list_notifications(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> ListResult:
        return await self.store.list(EntityType.NOTIFICATION, filters, sort=sort, page=page, limit=limit)

    async def process_scheduled_notifications(self) -> int:
        """Send every pending notification whose scheduled time has passed."""
        with performance_context("notification_process_scheduled"):
            due = await self.store.find(
                EntityType.NOTIFICATION,
                {"status": NotificationStatus.PENDING.value, "scheduledFor": {"$lte": utcnow()}},
                sort=[("scheduledFor", 1)]
            )
            sent = 0
            for notification in due:
                await self.send(notification)
                sent += 1

            logger.info("Scheduled notifications processed", sent=sent)
            return sent

    async def check_overdue_tasks(self) -> int:
        """
        Notify assignees of overdue tasks once.

        Returns:
            Number of notifications created
        """
        with performance_context("notification_check_overdue"):
            tasks = await self.store.find(
                EntityType.TASK,
                {
                    "status": {"$nin": [TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value]},
                    "dueDate": {"$lt": utcnow()},
                    "overdueNotificationSent": {"$ne": True},
                }
            )

            created = 0
            for task in tasks:
                for assignee in task.get("assignedTo") or []:
                    await self.create({
                        "recipientId": assignee,
                        "title": "Task Overdue",
                        "message": f'Task "{task.get("name")}" is overdue',
                        "type": NotificationType.TASK_OVERDUE,
                        "priority": Priority.HIGH,
                        "relatedEntityType": EntityType.TASK.value,
                        "relatedEntityId": task["id"],
                        "metadata": {"dueDate": task.get("dueDate")},
                    })
                    created += 1
                await self.store.update(EntityType.TASK, task["id"], {"overdueNotificationSent": True})

            logger.info("Overdue task check completed", tasks=len(tasks), notifications=created)
            return created
