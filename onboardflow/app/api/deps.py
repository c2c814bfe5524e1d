"""
Dependency injection module for API routes.

Services are cheap to build, so each request gets its own set wired to one
EntityStore. Tests swap the database by overriding ``get_entity_store``.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header, Query

from onboardflow.app.core.database import get_mongodb_database
from onboardflow.app.core.exceptions import AuthenticationError
from onboardflow.app.repositories.mongodb.entity_store import EntityStore, SortSpec, parse_sort
from onboardflow.app.services.analytics_service import AnalyticsService
from onboardflow.app.services.audit_service import AuditService
from onboardflow.app.services.case_service import CaseService
from onboardflow.app.services.guide_service import GuideService
from onboardflow.app.services.hint_service import HintService
from onboardflow.app.services.notification_service import NotificationService
from onboardflow.app.services.stage_service import StageService
from onboardflow.app.services.task_service import TaskService
from onboardflow.app.services.template_service import TemplateService
from onboardflow.app.services.user_service import UserService
from onboardflow.app.services.workflow_type_service import (
    MongoDefaultWorkflowTypeProvider,
    WorkflowTypeService
)
from onboardflow.config.settings import get_settings


@dataclass(frozen=True)
class Actor:
    """The user on whose behalf a request runs."""

    user_id: str
    role: Optional[str] = None


async def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role")
) -> Actor:
    """
    Identify the acting user from the X-User-Id and X-User-Role headers.

    Credentials are verified upstream; this only reads the identity.

    Raises:
        AuthenticationError: If X-User-Id is missing
    """
    if not x_user_id:
        raise AuthenticationError("X-User-Id header is required")
    return Actor(user_id=x_user_id, role=x_user_role)


async def get_entity_store() -> EntityStore:
    return EntityStore(await get_mongodb_database())


def get_audit_service(store: EntityStore = Depends(get_entity_store)) -> AuditService:
    return AuditService(store)


def get_notification_service(store: EntityStore = Depends(get_entity_store)) -> NotificationService:
    return NotificationService(store)


def get_case_service(
    store: EntityStore = Depends(get_entity_store),
    audit_service: AuditService = Depends(get_audit_service),
    notification_service: NotificationService = Depends(get_notification_service)
) -> CaseService:
    return CaseService(
        store,
        audit_service=audit_service,
        notification_service=notification_service,
        default_workflow_type_provider=MongoDefaultWorkflowTypeProvider(store)
    )


def get_task_service(
    store: EntityStore = Depends(get_entity_store),
    audit_service: AuditService = Depends(get_audit_service),
    notification_service: NotificationService = Depends(get_notification_service)
) -> TaskService:
    return TaskService(store, audit_service=audit_service, notification_service=notification_service)


def get_stage_service(
    store: EntityStore = Depends(get_entity_store),
    audit_service: AuditService = Depends(get_audit_service),
    task_service: TaskService = Depends(get_task_service)
) -> StageService:
    return StageService(store, audit_service=audit_service, task_service=task_service)


def get_guide_service(
    store: EntityStore = Depends(get_entity_store),
    audit_service: AuditService = Depends(get_audit_service),
    notification_service: NotificationService = Depends(get_notification_service)
) -> GuideService:
    return GuideService(store, audit_service=audit_service, notification_service=notification_service)


def get_hint_service(store: EntityStore = Depends(get_entity_store)) -> HintService:
    return HintService(store)


def get_template_service(
    store: EntityStore = Depends(get_entity_store),
    audit_service: AuditService = Depends(get_audit_service)
) -> TemplateService:
    return TemplateService(store, audit_service=audit_service)


def get_workflow_type_service(store: EntityStore = Depends(get_entity_store)) -> WorkflowTypeService:
    return WorkflowTypeService(store)


def get_user_service(store: EntityStore = Depends(get_entity_store)) -> UserService:
    return UserService(store)


def get_analytics_service(store: EntityStore = Depends(get_entity_store)) -> AnalyticsService:
    return AnalyticsService(store)


@dataclass(frozen=True)
class PageParams:
    page: int
    limit: int
    sort: Optional[SortSpec]


def get_page_params(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: int = Query(10, ge=1, description="Page size"),
    sort: Optional[str] = Query(None, description="Sort fields, e.g. -createdAt,name")
) -> PageParams:
    """Pagination query parameters; the page size is capped by the workflow settings."""
    return PageParams(
        page=page,
        limit=min(limit, get_settings().workflow.max_page_size),
        sort=parse_sort(sort)
    )
