"""
Notification API Routes

The acting user's inbox (list, read, dismiss), ad-hoc notification
creation and the sweep operations an external scheduler calls.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from onboardflow.app.api.deps import (
    Actor,
    PageParams,
    get_current_user,
    get_notification_service,
    get_page_params
)
from onboardflow.app.models.api.admin_schemas import NotificationCreateRequest
from onboardflow.app.models.api.common import ApiResponse, ok, paginated
from onboardflow.app.models.domain.workflow import NotificationStatus, NotificationType
from onboardflow.app.services.notification_service import NotificationService
from onboardflow.app.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=ApiResponse, summary="My Notifications")
async def get_my_notifications(
    unread_only: bool = Query(False, alias="unreadOnly"),
    paging: PageParams = Depends(get_page_params),
    actor: Actor = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
) -> ApiResponse:
    result = await notification_service.get_user_notifications(
        actor.user_id, unread_only=unread_only, page=paging.page, limit=paging.limit
    )
    return ok(result)


@router.get("/all", response_model=ApiResponse, summary="List All Notifications")
async def list_notifications(
    recipient_id: Optional[str] = Query(None, alias="recipientId"),
    notification_type: Optional[NotificationType] = Query(None, alias="type"),
    notification_status: Optional[NotificationStatus] = Query(None, alias="status"),
    related_entity_id: Optional[str] = Query(None, alias="relatedEntityId"),
    paging: PageParams = Depends(get_page_params),
    actor: Actor = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
) -> ApiResponse:
    filters = {
        "recipientId": recipient_id,
        "type": notification_type.value if notification_type else None,
        "status": notification_status.value if notification_status else None,
        "relatedEntityId": related_entity_id,
    }
    result = await notification_service.list_notifications(
        filters, sort=paging.sort, page=paging.page, limit=paging.limit
    )
    return paginated(result, paging.page, paging.limit)


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Notification"
)
async def create_notification(
    body: NotificationCreateRequest,
    actor: Actor = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
) -> ApiResponse:
    return ok(await notification_service.create(body.to_payload()), "Notification created")


@router.put("/read-all", response_model=ApiResponse, summary="Mark All Notifications Read")
async def mark_all_read(
    actor: Actor = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
) -> ApiResponse:
    updated = await notification_service.mark_all_read(actor.user_id)
    return ok({"updated": updated}, f"{updated} notifications marked as read")


@router.post("/process-scheduled", response_model=ApiResponse, summary="Send Due Scheduled Notifications")
async def process_scheduled(
    actor: Actor = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
) -> ApiResponse:
    sent = await notification_service.process_scheduled_notifications()
    logger.info("Scheduled notifications processed", sent=sent, triggered_by=actor.user_id)
    return ok({"processed": sent})


@router.post("/check-overdue", response_model=ApiResponse, summary="Notify Assignees Of Overdue Tasks")
async def check_overdue(
    actor: Actor = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
) -> ApiResponse:
    created = await notification_service.check_overdue_tasks()
    logger.info("Overdue task sweep finished", notifications=created, triggered_by=actor.user_id)
    return ok({"notificationsCreated": created})


@router.put("/{notification_id}/read", response_model=ApiResponse, summary="Mark Notification Read")
async def mark_read(
    notification_id: str,
    actor: Actor = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
) -> ApiResponse:
    return ok(await notification_service.mark_read(notification_id, actor.user_id))


@router.put("/{notification_id}/dismiss", response_model=ApiResponse, summary="Dismiss Notification")
async def mark_dismissed(
    notification_id: str,
    actor: Actor = Depends(get_current_user),
    notification_service: NotificationService = Depends(get_notification_service)
) -> ApiResponse:
    return ok(await notification_service.mark_dismissed(notification_id, actor.user_id))
