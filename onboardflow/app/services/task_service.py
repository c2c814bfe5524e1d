"""
Task Service - Business Logic Layer

This module manages onboarding tasks:
- Task creation, single and in batches (all or nothing)
- Status updates restricted to assignees, with audit and notifications
- Assignment, comments and per-user task boards
- Task analytics per case, stage or user
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from onboardflow.app.core.exceptions import ErrorCode, ForbiddenError, ValidationError
from onboardflow.app.core.side_effects import PostCommitHooks
from onboardflow.app.models.domain.workflow import (
    AuditAction,
    NotificationType,
    Priority,
    TaskStatus,
    case_stakeholders,
    coerce_enum,
    generate_business_id,
    unique_ids,
    utcnow
)
from onboardflow.app.repositories.mongodb.entity_store import (
    EntityStore,
    EntityType,
    ListResult,
    SortSpec
)
from onboardflow.app.services.audit_service import AuditService, field_changes
from onboardflow.app.services.notification_service import NotificationService
from onboardflow.app.utils.logging import get_logger, performance_context
from onboardflow.config.settings import get_settings

logger = get_logger(__name__)

OPEN_STATUSES = (TaskStatus.NOT_STARTED.value, TaskStatus.IN_PROGRESS.value)
IMMUTABLE_TASK_FIELDS = ("taskId", "onboardingCaseId", "comments", "createdBy")


def is_overdue(task: Mapping[str, Any], now=None) -> bool:
    """Open task whose due date has passed."""
    now = now or utcnow()
    due = task.get("dueDate")
    return bool(due) and due < now and task.get("status") in OPEN_STATUSES


class TaskService:
    """Business logic service for onboarding tasks."""

    def __init__(
        self,
        store: Optional[EntityStore] = None,
        audit_service: Optional[AuditService] = None,
        notification_service: Optional[NotificationService] = None
    ):
        self.store = store or EntityStore()
        self.audit_service = audit_service or AuditService(self.store)
        self.notification_service = notification_service or NotificationService(self.store)
        self.settings = get_settings()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def build_task(
        self,
        payload: Mapping[str, Any],
        case_id: str,
        stage_id: Optional[str],
        sequence: int,
        created_by: str,
        index: Optional[int] = None
    ) -> Dict[str, Any]:
        """Document for a new task with defaults applied."""
        return {
            "description": "",
            "dueDate": None,
            **payload,
            "taskId": payload.get("taskId") or generate_business_id("TASK", index),
            "onboardingCaseId": case_id,
            "stageId": stage_id,
            "sequence": sequence,
            "status": coerce_enum(TaskStatus, payload.get("status") or TaskStatus.NOT_STARTED, "status"),
            "priority": coerce_enum(Priority, payload.get("priority") or Priority.MEDIUM, "priority"),
            "assignedTo": unique_ids(payload.get("assignedTo") or []),
            "estimatedHours": payload.get("estimatedHours") or self.settings.workflow.default_task_estimated_hours,
            "isRequired": payload.get("isRequired", True) is not False,
            "actualDuration": None,
            "completionDate": None,
            "reminderSent": False,
            "overdueNotificationSent": False,
            "comments": [],
            "createdBy": created_by,
        }

    async def _next_sequence(self, case_id: str, stage_id: Optional[str]) -> int:
        filters = {"stageId": stage_id} if stage_id else {"onboardingCaseId": case_id}
        last = await self.store.find(EntityType.TASK, filters, sort=[("sequence", -1)], limit=1)
        return (last[0].get("sequence") or 0) if last else 0

    def add_assignment_hooks(self, hooks: PostCommitHooks, task: Mapping[str, Any], recipients: Iterable[str]) -> None:
        for recipient in recipients:
            hooks.add(
                f"notify:{task['id']}:{recipient}",
                lambda recipient=recipient: self.notification_service.create({
                    "recipientId": recipient,
                    "title": "New Task Assigned",
                    "message": f'You have been assigned to task "{task.get("name")}"',
                    "type": NotificationType.TASK_ASSIGNED,
                    "priority": task.get("priority") or Priority.MEDIUM,
                    "relatedEntityType": EntityType.TASK.value,
                    "relatedEntityId": task["id"],
                    "metadata": {"dueDate": task.get("dueDate")},
                })
            )

    async def _status_hooks(
        self,
        hooks: PostCommitHooks,
        task: Mapping[str, Any],
        old_status: Optional[str],
        new_status: str,
        user_id: str
    ) -> None:
        case = await self.store.get(EntityType.ONBOARDING_CASE, task["onboardingCaseId"])
        if case is None:
            return
        completed = new_status == TaskStatus.COMPLETED.value
        for recipient in case_stakeholders(case, exclude=user_id):
            hooks.add(
                f"notify:{recipient}",
                lambda recipient=recipient: self.notification_service.create({
                    "recipientId": recipient,
                    "title": "Task Status Updated",
                    "message": f'Task "{task.get("name")}" changed from {old_status} to {new_status}',
                    "type": NotificationType.STATUS_UPDATE,
                    "priority": Priority.MEDIUM if completed else Priority.LOW,
                    "relatedEntityType": EntityType.TASK.value,
                    "relatedEntityId": task["id"],
                    "metadata": {"oldStatus": old_status, "newStatus": new_status},
                })
            )

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    async def create_task(self, payload: Mapping[str, Any], created_by: str) -> Dict[str, Any]:
        """
        Create a task in a case, optionally within a stage.

        Raises:
            ValidationError: If neither a case nor a stage is given, or values are invalid
            NotFoundError: If the case or stage does not exist
        """
        stage_id = payload.get("stageId")
        case_id = payload.get("onboardingCaseId")
        if stage_id:
            stage = await self.store.find_by_id(EntityType.STAGE, stage_id)
            case_id = case_id or stage["onboardingCaseId"]
        if not case_id:
            raise ValidationError(
                "onboardingCaseId or stageId is required",
                error_code=ErrorCode.MISSING_REQUIRED_FIELD,
                field_errors=[{"field": "onboardingCaseId", "message": "required"}]
            )
        await self.store.find_by_id(EntityType.ONBOARDING_CASE, case_id)

        sequence = payload.get("sequence") or await self._next_sequence(case_id, stage_id) + 1
        task = await self.store.create(
            EntityType.TASK, self.build_task(payload, case_id, stage_id, sequence, created_by)
        )

        hooks = PostCommitHooks("create_task")
        hooks.add("audit", lambda: self.audit_service.record({
            "action": AuditAction.CREATE,
            "entityType": EntityType.TASK,
            "entityId": task["id"],
            "userId": created_by,
            "changes": {"old": None, "new": {"taskId": task["taskId"], "name": task["name"]}},
        }))
        self.add_assignment_hooks(hooks, task, [u for u in task["assignedTo"] if u != created_by])
        await hooks.run()

        logger.info("Task created", task_id=task["id"], case_id=case_id, stage_id=stage_id)
        return task

    async def get_task(self, task_id: str, expand: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        return await self.store.find_by_id(EntityType.TASK, task_id, expand=expand)

    async def list_tasks(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        page: int = 1,
        limit: Optional[int] = None,
        expand: Optional[Iterable[str]] = None
    ) -> ListResult:
        return await self.store.list(
            EntityType.TASK, filters, sort=sort or [("sequence", 1)], page=page, limit=limit, expand=expand
        )

    async def update_task(self, task_id: str, patch: Mapping[str, Any], user_id: str) -> Dict[str, Any]:
        """Merge a partial update; a status change notifies the case stakeholders."""
        existing = await self.store.find_by_id(EntityType.TASK, task_id)

        changes = {k: v for k, v in patch.items() if k not in IMMUTABLE_TASK_FIELDS}
        if "status" in changes:
            changes["status"] = coerce_enum(TaskStatus, changes["status"], "status")
            if changes["status"] == TaskStatus.COMPLETED.value:
                changes["completionDate"] = utcnow()
        if "priority" in changes:
            changes["priority"] = coerce_enum(Priority, changes["priority"], "priority")
        if "assignedTo" in changes:
            changes["assignedTo"] = unique_ids(changes["assignedTo"] or [])

        change_list = field_changes(existing, changes)
        task = await self.store.update(EntityType.TASK, task_id, {**changes, "lastModifiedBy": user_id})

        hooks = PostCommitHooks("update_task")
        hooks.add("audit", lambda: self.audit_service.record({
            "action": AuditAction.UPDATE,
            "entityType": EntityType.TASK,
            "entityId": task_id,
            "userId": user_id,
            "changes": change_list,
        }))
        if existing.get("status") != task.get("status"):
            await self._status_hooks(hooks, task, existing.get("status"), task["status"], user_id)
        await hooks.run()

        logger.info("Task updated", task_id=task_id, fields=[c["field"] for c in change_list])
        return task

    async def delete_task(self, task_id: str, user_id: str) -> Dict[str, Any]:
        task = await self.store.delete(EntityType.TASK, task_id)
        await PostCommitHooks("delete_task").add("audit", lambda: self.audit_service.record({
            "action": AuditAction.DELETE,
            "entityType": EntityType.TASK,
            "entityId": task_id,
            "userId": user_id,
            "changes": {"old": {"taskId": task["taskId"], "name": task.get("name")}, "new": None},
        })).run()
        logger.info("Task deleted", task_id=task_id, user_id=user_id)
        return task

    # ------------------------------------------------------------------
    # Workflow operations
    # ------------------------------------------------------------------

    async def update_task_status(
        self,
        task_id: str,
        status: Any,
        updated_by: str,
        comments: Optional[str] = None,
        time_spent: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Change the status of a task.

        Only assignees may update a task that has assignees. Completing a
        task stamps completionDate; time spent is recorded as actualDuration.

        Raises:
            NotFoundError: If the task does not exist
            ForbiddenError: If the task has assignees and the actor is not one
            ValidationError: If the status is unknown
        """
        with performance_context("task_service_status_update", task_id=task_id):
            new_status = coerce_enum(TaskStatus, status, "status")
            task = await self.store.find_by_id(EntityType.TASK, task_id)

            assignees = task.get("assignedTo") or []
            if assignees and updated_by not in assignees:
                raise ForbiddenError(
                    "You are not assigned to this task",
                    error_code=ErrorCode.NOT_TASK_ASSIGNEE,
                    user_id=updated_by
                )

            old_status = task.get("status")
            changes: Dict[str, Any] = {"status": new_status, "lastModifiedBy": updated_by}
            if new_status == TaskStatus.COMPLETED.value:
                changes["completionDate"] = utcnow()
            if time_spent is not None:
                changes["actualDuration"] = time_spent

            updated = await self.store.update(EntityType.TASK, task_id, changes)

            hooks = PostCommitHooks("update_task_status")
            hooks.add("audit", lambda: self.audit_service.record({
                "action": AuditAction.STATUS_UPDATE,
                "entityType": EntityType.TASK,
                "entityId": task_id,
                "userId": updated_by,
                "changes": {
                    "oldStatus": old_status,
                    "newStatus": new_status,
                    "comments": comments,
                    "timeSpent": time_spent,
                },
            }))
            await self._status_hooks(hooks, updated, old_status, new_status, updated_by)
            await hooks.run()

            logger.info(
                "Task status updated",
                task_id=task_id,
                old_status=old_status,
                new_status=new_status,
                updated_by=updated_by
            )
            return updated

    async def assign_task(self, task_id: str, user_ids: Iterable[str], assigned_by: str) -> Dict[str, Any]:
        """Add assignees to a task and notify the ones not assigned before."""
        users = unique_ids(user_ids or [])
        if not users:
            raise ValidationError(
                "At least one assignee is required",
                error_code=ErrorCode.MISSING_REQUIRED_FIELD,
                field_errors=[{"field": "userIds", "message": "required"}]
            )

        before = await self.store.find_by_id(EntityType.TASK, task_id)
        task = await self.store.apply(
            EntityType.TASK,
            task_id,
            {"$addToSet": {"assignedTo": {"$each": users}}, "$set": {"lastModifiedBy": assigned_by}}
        )
        added = [u for u in users if u not in (before.get("assignedTo") or [])]

        hooks = PostCommitHooks("assign_task")
        hooks.add("audit", lambda: self.audit_service.record({
            "action": AuditAction.ASSIGN,
            "entityType": EntityType.TASK,
            "entityId": task_id,
            "userId": assigned_by,
            "details": {"userIds": users},
        }))
        self.add_assignment_hooks(hooks, task, added)
        await hooks.run()

        logger.info("Task assigned", task_id=task_id, added=len(added))
        return task

    async def add_comment(self, task_id: str, text: str, user_id: str) -> Dict[str, Any]:
        if not text or not str(text).strip():
            raise ValidationError(
                "Comment text is required",
                error_code=ErrorCode.MISSING_REQUIRED_FIELD,
                field_errors=[{"field": "text", "message": "required"}]
            )
        task = await self.store.apply(
            EntityType.TASK,
            task_id,
            {"$push": {"comments": {"text": text, "userId": user_id, "timestamp": utcnow()}}}
        )
        logger.debug("Task comment added", task_id=task_id, user_id=user_id)
        return task

    async def get_user_tasks(
        self,
        user_id: str,
        status: Optional[str] = None,
        priority: Optional[str] = None,
        overdue_only: bool = False
    ) -> Dict[str, Any]:
        """A user's tasks grouped by status, with the overdue count."""
        filters: Dict[str, Any] = {"assignedTo": user_id, "status": status, "priority": priority}
        if overdue_only:
            filters["dueDate"] = {"$lt": utcnow()}
            filters["status"] = {"$in": list(OPEN_STATUSES)}

        tasks = await self.store.find(EntityType.TASK, filters, sort=[("dueDate", 1), ("sequence", 1)])

        grouped: Dict[str, List[Dict[str, Any]]] = {s.value: [] for s in TaskStatus}
        for task in tasks:
            grouped.setdefault(task.get("status"), []).append(task)

        now = utcnow()
        return {
            "total": len(tasks),
            "overdue": sum(1 for task in tasks if is_overdue(task, now)),
            "byStatus": grouped,
            "tasks": tasks,
        }

    async def get_task_analytics(
        self,
        case_id: Optional[str] = None,
        stage_id: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Task statistics for a case, stage or assignee.

        avgTimeToComplete is the mean actualDuration of completed tasks that
        recorded one, 0 when there are none.
        """
        tasks = await self.store.find(
            EntityType.TASK,
            {"onboardingCaseId": case_id, "stageId": stage_id, "assignedTo": user_id}
        )
        now = utcnow()
        completed = [t for t in tasks if t.get("status") == TaskStatus.COMPLETED.value]
        durations = [t["actualDuration"] for t in completed if t.get("actualDuration")]

        return {
            "total": len(tasks),
            "byStatus": {
                s.value: sum(1 for t in tasks if t.get("status") == s.value) for s in TaskStatus
            },
            "byPriority": {
                p.value: sum(1 for t in tasks if t.get("priority") == p.value) for p in Priority
            },
            "overdue": sum(1 for t in tasks if is_overdue(t, now)),
            "completionRate": round(len(completed) / len(tasks) * 100) if tasks else 0,
            "avgTimeToComplete": sum(durations) / len(durations) if durations else 0,
        }

    # ------------------------------------------------------------------
    # Bulk creation
    # ------------------------------------------------------------------

    def _validate_batch(self, tasks: Sequence[Mapping[str, Any]]) -> None:
        if not tasks:
            raise ValidationError(
                "Tasks array is required and must not be empty",
                error_code=ErrorCode.EMPTY_BATCH
            )
        errors = [
            {"index": i, "field": "name", "message": "required"}
            for i, task in enumerate(tasks)
            if not str(task.get("name") or "").strip()
        ]
        if errors:
            raise ValidationError(
                f"{len(errors)} tasks are missing a name",
                error_code=ErrorCode.MISSING_REQUIRED_FIELD,
                field_errors=errors
            )

    async def _bulk_create(
        self,
        case_id: str,
        stage_id: Optional[str],
        tasks: Sequence[Mapping[str, Any]],
        created_by: str
    ) -> List[Dict[str, Any]]:
        start = await self._next_sequence(case_id, stage_id)
        created = await self.store.insert_many(EntityType.TASK, [
            self.build_task(payload, case_id, stage_id, start + i + 1, created_by, index=i)
            for i, payload in enumerate(tasks)
        ])

        hooks = PostCommitHooks("bulk_create_tasks")
        hooks.add("audit", lambda: self.audit_service.record_many([
            {
                "action": AuditAction.CREATE,
                "entityType": EntityType.TASK,
                "entityId": task["id"],
                "userId": created_by,
                "changes": {"old": None, "new": {"taskId": task["taskId"], "name": task["name"]}},
                "details": {"bulk": True},
            }
            for task in created
        ]))
        for task in created:
            self.add_assignment_hooks(hooks, task, [u for u in task["assignedTo"] if u != created_by])
        await hooks.run()

        logger.info("Tasks created in bulk", case_id=case_id, stage_id=stage_id, count=len(created))
        return created

    async def create_multiple_tasks(
        self,
        case_id: str,
        tasks: Sequence[Mapping[str, Any]],
        created_by: str,
        stage_id: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Create several tasks in a case in input order.

        Sequences continue after the current maximum; nothing is written if
        any task is invalid or the insert fails.
        """
        with performance_context("task_service_create_multiple", case_id=case_id, count=len(tasks or [])):
            self._validate_batch(tasks)
            await self.store.find_by_id(EntityType.ONBOARDING_CASE, case_id)
            if stage_id:
                await self.store.find_by_id(EntityType.STAGE, stage_id)
            return await self._bulk_create(case_id, stage_id, tasks, created_by)

    async def add_tasks_to_stage(
        self,
        stage_id: str,
        tasks: Sequence[Mapping[str, Any]],
        created_by: str
    ) -> List[Dict[str, Any]]:
        """Create several tasks in a stage; the case is the stage's case."""
        with performance_context("task_service_add_to_stage", stage_id=stage_id, count=len(tasks or [])):
            self._validate_batch(tasks)
            stage = await self.store.find_by_id(EntityType.STAGE, stage_id)
            return await self._bulk_create(stage["onboardingCaseId"], stage_id, tasks, created_by)
