"""
Unit tests for notifications.

Test Coverage:
- Channel fan-out on creation
- Scheduled delivery
- Recipient-only read and dismiss
- One-time overdue task sweeps
"""

from datetime import timedelta

import pytest

from onboardflow.app.core.exceptions import NotFoundError
from onboardflow.app.models.domain.workflow import utcnow
from onboardflow.app.repositories.mongodb.entity_store import EntityType


def _spec(recipient="user-1", **extra):
    return {"recipientId": recipient, "title": "Hello", "message": "World", **extra}


class TestCreateAndSend:
    """Test suite for notification creation and delivery."""

    async def test_default_channels_delivered(self, notification_service):
        """Test that in-app is delivered and email handed off."""
        notification = await notification_service.create(_spec())

        channels = {c["type"]: c["status"] for c in notification["channels"]}
        assert channels == {"inApp": "delivered", "email": "sent"}
        assert notification["status"] == "sent"
        assert notification["type"] == "System"
        assert notification["isRead"] is False

    async def test_unsupported_channel_fails_alone(self, notification_service):
        """Test that an unknown channel fails without failing the notification."""
        notification = await notification_service.create(_spec(channels=["inApp", "pigeon"]))

        statuses = [c["status"] for c in notification["channels"]]
        assert statuses == ["delivered", "failed"]
        assert notification["status"] == "sent"

    async def test_all_channels_failing(self, notification_service):
        """Test that a notification with no working channel is failed."""
        notification = await notification_service.create(_spec(channels=["pigeon"]))

        assert notification["status"] == "failed"

    async def test_scheduled_later_stays_pending(self, notification_service, store):
        """Test that future notifications wait until processed."""
        notification = await notification_service.create(_spec(scheduledFor=utcnow() + timedelta(hours=1)))
        assert notification["status"] == "pending"

        assert await notification_service.process_scheduled_notifications() == 0

        await store.update(EntityType.NOTIFICATION, notification["id"], {"scheduledFor": utcnow() - timedelta(minutes=1)})
        assert await notification_service.process_scheduled_notifications() == 1
        assert (await store.find_by_id(EntityType.NOTIFICATION, notification["id"]))["status"] == "sent"


class TestRecipientState:
    """Test suite for read and dismissed state."""

    async def test_mark_read_by_recipient(self, notification_service):
        """Test that the recipient can mark a notification read."""
        notification = await notification_service.create(_spec())

        updated = await notification_service.mark_read(notification["id"], "user-1")

        assert updated["isRead"] is True
        assert updated["status"] == "read"

    async def test_other_user_cannot_mark_read(self, notification_service):
        """Test that someone else's notification looks missing."""
        notification = await notification_service.create(_spec())

        with pytest.raises(NotFoundError):
            await notification_service.mark_read(notification["id"], "user-2")

    async def test_dismissed_hidden_from_inbox(self, notification_service):
        """Test that dismissed notifications leave the inbox and unread count."""
        kept = await notification_service.create(_spec())
        dismissed = await notification_service.create(_spec())
        await notification_service.create(_spec(recipient="user-2"))

        await notification_service.mark_dismissed(dismissed["id"], "user-1")
        inbox = await notification_service.get_user_notifications("user-1")

        assert [n["id"] for n in inbox["items"]] == [kept["id"]]
        assert inbox["unreadCount"] == 1

    async def test_mark_all_read(self, notification_service):
        """Test that only the user's unread notifications are marked."""
        await notification_service.create(_spec())
        await notification_service.create(_spec())
        await notification_service.create(_spec(recipient="user-2"))

        assert await notification_service.mark_all_read("user-1") == 2
        assert (await notification_service.get_user_notifications("user-1", unread_only=True))["totalCount"] == 0

    async def test_list_across_recipients(self, notification_service):
        """Test that listing filters by any field, not only the recipient."""
        await notification_service.create(_spec(type="TaskAssigned"))
        await notification_service.create(_spec(recipient="user-2", type="TaskAssigned"))
        await notification_service.create(_spec(recipient="user-2"))

        result = await notification_service.list_notifications({"type": "TaskAssigned", "recipientId": None})

        assert result.total_count == 2
        assert {n["recipientId"] for n in result.items} == {"user-1", "user-2"}


class TestOverdueSweep:
    """Test suite for overdue task notifications."""

    async def test_each_overdue_task_notified_once(self, case, notification_service, store, make_task):
        """Test that assignees hear about an overdue task only on the first sweep."""
        late = await make_task(case["id"], "late", assigned_to=["a", "b"], due_in_days=-1)
        await make_task(case["id"], "done", status="Completed", assigned_to=["a"], due_in_days=-1)
        await make_task(case["id"], "future", assigned_to=["a"], due_in_days=2)

        assert await notification_service.check_overdue_tasks() == 2
        assert await notification_service.check_overdue_tasks() == 0

        notes = await store.find(EntityType.NOTIFICATION, {"type": "TaskOverdue"})
        assert {n["relatedEntityId"] for n in notes} == {late["id"]}
