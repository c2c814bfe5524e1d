"""
Shared fixtures for the Onboardflow test suite.

Every test gets a fresh in-memory MongoDB (mongomock-motor) wrapped in an
EntityStore, plus the services wired to it the same way the API wires them.
"""

from datetime import timedelta
from typing import Any, Dict, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from mongomock_motor import AsyncMongoMockClient

from onboardflow.app.api.deps import get_entity_store
from onboardflow.app.models.domain.workflow import utcnow
from onboardflow.app.repositories.mongodb.entity_store import EntityStore, EntityType
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
from onboardflow.app.services.workflow_type_service import WorkflowTypeService

CHAMPION = "user-champion"
CREATOR = "user-creator"


@pytest.fixture
def db():
    return AsyncMongoMockClient()["onboardflow_test"]


@pytest.fixture
def store(db) -> EntityStore:
    return EntityStore(db)


@pytest.fixture
def audit_service(store) -> AuditService:
    return AuditService(store)


@pytest.fixture
def notification_service(store) -> NotificationService:
    return NotificationService(store)


@pytest.fixture
def workflow_type_service(store) -> WorkflowTypeService:
    return WorkflowTypeService(store)


@pytest.fixture
def case_service(store, audit_service, notification_service) -> CaseService:
    return CaseService(store, audit_service=audit_service, notification_service=notification_service)


@pytest.fixture
def task_service(store, audit_service, notification_service) -> TaskService:
    return TaskService(store, audit_service=audit_service, notification_service=notification_service)


@pytest.fixture
def stage_service(store, audit_service, task_service) -> StageService:
    return StageService(store, audit_service=audit_service, task_service=task_service)


@pytest.fixture
def guide_service(store, audit_service, notification_service) -> GuideService:
    return GuideService(store, audit_service=audit_service, notification_service=notification_service)


@pytest.fixture
def hint_service(store) -> HintService:
    return HintService(store)


@pytest.fixture
def template_service(store, audit_service) -> TemplateService:
    return TemplateService(store, audit_service=audit_service)


@pytest.fixture
def user_service(store) -> UserService:
    return UserService(store)


@pytest.fixture
def analytics_service(store) -> AnalyticsService:
    return AnalyticsService(store)


@pytest_asyncio.fixture
async def case(case_service) -> Dict[str, Any]:
    return await case_service.create_case(
        {"clientId": "client-1", "assignedChampion": CHAMPION},
        created_by=CREATOR
    )


@pytest.fixture
def make_task(store):
    """Insert a task document directly, bypassing the service."""

    async def _make(
        case_id: str,
        name: str = "Task",
        status: str = "Not Started",
        assigned_to: Optional[list] = None,
        due_in_days: Optional[float] = None,
        **extra: Any
    ) -> Dict[str, Any]:
        return await store.create(EntityType.TASK, {
            "taskId": f"TASK-{name}",
            "name": name,
            "onboardingCaseId": case_id,
            "status": status,
            "assignedTo": assigned_to or [],
            "dueDate": utcnow() + timedelta(days=due_in_days) if due_in_days is not None else None,
            **extra,
        })

    return _make


@pytest_asyncio.fixture
async def client(store):
    """HTTP client against the app with the store swapped for the in-memory one."""
    from onboardflow.main import create_app

    app = create_app()
    app.dependency_overrides[get_entity_store] = lambda: store
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as http_client:
        yield http_client
    app.dependency_overrides.clear()
