"""
Case Service - Business Logic Layer

This module orchestrates the onboarding case lifecycle:
- Case creation with workflow-type prefixed case ids
- Partial updates with field-level audit trails
- Status changes with stakeholder notifications
- Team assignment, progress reports and overdue reminders

Audit entries and notifications run as post-commit hooks: they follow a
successful write and never change its outcome.
"""

from datetime import timedelta
from typing import Any, Dict, Iterable, Mapping, Optional

from onboardflow.app.core.exceptions import ErrorCode, ValidationError
from onboardflow.app.core.side_effects import PostCommitHooks
from onboardflow.app.models.domain.workflow import (
    AuditAction,
    CaseStatus,
    NotificationType,
    Priority,
    StageStatus,
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
from onboardflow.app.services.workflow_type_service import (
    DefaultWorkflowTypeProvider,
    MongoDefaultWorkflowTypeProvider
)
from onboardflow.app.utils.logging import get_logger, log_business_event, performance_context
from onboardflow.config.settings import get_settings

logger = get_logger(__name__)

IMMUTABLE_CASE_FIELDS = ("caseId", "createdBy", "linkedGuides", "workflowTypeId")


def _validate_progress(progress: Any) -> float:
    try:
        value = float(progress)
    except (TypeError, ValueError):
        value = -1
    if not 0 <= value <= 100:
        raise ValidationError(
            "Progress must be between 0 and 100",
            error_code=ErrorCode.INVALID_VALUE,
            field_errors=[{"field": "progress", "value": progress}]
        )
    return value


class CaseService:
    """
    Business logic service for onboarding cases.

    Provides case operations with validation, audit trail and
    stakeholder notifications.
    """

    def __init__(
        self,
        store: Optional[EntityStore] = None,
        audit_service: Optional[AuditService] = None,
        notification_service: Optional[NotificationService] = None,
        default_workflow_type_provider: Optional[DefaultWorkflowTypeProvider] = None
    ):
        """
        Initialize case service with dependencies.

        Args:
            store: Entity store
            audit_service: Audit collaborator
            notification_service: Notification collaborator
            default_workflow_type_provider: Supplies the workflow type for cases without one
        """
        self.store = store or EntityStore()
        self.audit_service = audit_service or AuditService(self.store)
        self.notification_service = notification_service or NotificationService(self.store)
        self.default_workflow_type_provider = (
            default_workflow_type_provider or MongoDefaultWorkflowTypeProvider(self.store)
        )
        self.settings = get_settings()

    def _notify(self, hooks: PostCommitHooks, recipients: Iterable[str], spec: Mapping[str, Any]) -> None:
        for recipient in recipients:
            hooks.add(
                f"notify:{recipient}",
                lambda recipient=recipient: self.notification_service.create({**spec, "recipientId": recipient})
            )

    async def _resolve_workflow_type(self, workflow_type_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if workflow_type_id:
            return await self.store.find_by_id(EntityType.WORKFLOW_TYPE, workflow_type_id)
        return await self.default_workflow_type_provider.get_default()

    async def create_case(self, payload: Mapping[str, Any], created_by: str) -> Dict[str, Any]:
        """
        Create an onboarding case.

        Args:
            payload: Case fields; clientId and assignedChampion are required
            created_by: Acting user id

        Returns:
            The created case

        Raises:
            ValidationError: If required fields are missing or values are invalid
            NotFoundError: If a named workflow type does not exist
            ConflictError: CASE_ID_DUPLICATE if the generated case id is taken
        """
        with performance_context("case_service_create", created_by=created_by):
            missing = [name for name in ("clientId", "assignedChampion") if not payload.get(name)]
            if missing:
                raise ValidationError(
                    f"Missing required fields: {', '.join(missing)}",
                    error_code=ErrorCode.MISSING_REQUIRED_FIELD,
                    field_errors=[{"field": name, "message": "required"} for name in missing]
                )

            workflow_type = await self._resolve_workflow_type(payload.get("workflowTypeId"))
            prefix = (workflow_type or {}).get("prefix") or self.settings.workflow.default_case_prefix

            now = utcnow()
            document = {
                "assignedTeam": [],
                "tags": [],
                "notes": None,
                "startDate": now,
                "expectedCompletionDate": None,
                "actualCompletionDate": None,
                **payload,
                "caseId": payload.get("caseId") or generate_business_id(prefix),
                "workflowTypeId": workflow_type["id"] if workflow_type else None,
                "status": coerce_enum(CaseStatus, payload.get("status") or CaseStatus.NOT_STARTED, "status"),
                "priority": coerce_enum(Priority, payload.get("priority") or Priority.MEDIUM, "priority"),
                "progress": _validate_progress(payload.get("progress") or 0),
                "linkedGuides": [],
                "createdBy": created_by,
                "lastModifiedBy": created_by,
            }
            document["assignedTeam"] = unique_ids(document["assignedTeam"] or [])

            case = await self.store.create(EntityType.ONBOARDING_CASE, document)

            hooks = PostCommitHooks("create_case")
            hooks.add("audit", lambda: self.audit_service.record({
                "action": AuditAction.CREATE,
                "entityType": EntityType.ONBOARDING_CASE,
                "entityId": case["id"],
                "userId": created_by,
                "changes": {"old": None, "new": {"caseId": case["caseId"], "clientId": case["clientId"]}},
                "description": f"Onboarding case {case['caseId']} created",
            }))
            if workflow_type:
                hooks.add("workflow_type_count", lambda: self.store.apply(
                    EntityType.WORKFLOW_TYPE, workflow_type["id"], {"$inc": {"totalCases": 1}}
                ))
            await hooks.run()

            log_business_event("case_created", case_id=case["id"], case_number=case["caseId"])
            logger.info(
                "Case created successfully",
                case_id=case["id"],
                case_number=case["caseId"],
                client_id=case["clientId"]
            )
            return case

    async def get_case(self, case_id: str, expand: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        return await self.store.find_by_id(EntityType.ONBOARDING_CASE, case_id, expand=expand)

    async def get_case_details(self, case_id: str) -> Dict[str, Any]:
        """A case with its stages and tasks in sequence order."""
        case = await self.store.find_by_id(
            EntityType.ONBOARDING_CASE, case_id, expand=["clientId", "workflowTypeId"]
        )
        case["stages"] = await self.store.find(
            EntityType.STAGE, {"onboardingCaseId": case_id}, sort=[("sequence", 1)]
        )
        case["tasks"] = await self.store.find(
            EntityType.TASK, {"onboardingCaseId": case_id}, sort=[("sequence", 1)]
        )
        return case

    async def list_cases(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        page: int = 1,
        limit: Optional[int] = None,
        expand: Optional[Iterable[str]] = None
    ) -> ListResult:
        return await self.store.list(
            EntityType.ONBOARDING_CASE, filters, sort=sort, page=page, limit=limit, expand=expand
        )

    async def update_case(self, case_id: str, patch: Mapping[str, Any], user_id: str) -> Dict[str, Any]:
        """
        Merge a partial update into a case and audit the changed fields.

        Raises:
            NotFoundError: If the case does not exist
            ValidationError: If a status, priority or progress value is invalid
        """
        with performance_context("case_service_update", case_id=case_id):
            existing = await self.store.find_by_id(EntityType.ONBOARDING_CASE, case_id)

            changes = {k: v for k, v in patch.items() if k not in IMMUTABLE_CASE_FIELDS}
            if "status" in changes:
                changes["status"] = coerce_enum(CaseStatus, changes["status"], "status")
                if changes["status"] == CaseStatus.COMPLETED.value:
                    changes["actualCompletionDate"] = utcnow()
            if "priority" in changes:
                changes["priority"] = coerce_enum(Priority, changes["priority"], "priority")
            if "progress" in changes:
                changes["progress"] = _validate_progress(changes["progress"])
            if "assignedTeam" in changes:
                changes["assignedTeam"] = unique_ids(changes["assignedTeam"] or [])

            change_list = field_changes(existing, changes)
            case = await self.store.update(
                EntityType.ONBOARDING_CASE, case_id, {**changes, "lastModifiedBy": user_id}
            )

            await PostCommitHooks("update_case").add("audit", lambda: self.audit_service.record({
                "action": AuditAction.UPDATE,
                "entityType": EntityType.ONBOARDING_CASE,
                "entityId": case_id,
                "userId": user_id,
                "changes": change_list,
                "description": f"Onboarding case {case['caseId']} updated",
            })).run()

            logger.info("Case updated", case_id=case_id, fields=[c["field"] for c in change_list])
            return case

    async def delete_case(self, case_id: str, user_id: str) -> Dict[str, Any]:
        """Delete a case; its stages, tasks and links are left to the caller."""
        case = await self.store.delete(EntityType.ONBOARDING_CASE, case_id)
        await PostCommitHooks("delete_case").add("audit", lambda: self.audit_service.record({
            "action": AuditAction.DELETE,
            "entityType": EntityType.ONBOARDING_CASE,
            "entityId": case_id,
            "userId": user_id,
            "changes": {"old": {"caseId": case["caseId"], "status": case.get("status")}, "new": None},
        })).run()
        logger.info("Case deleted", case_id=case_id, user_id=user_id)
        return case

    async def update_case_status(
        self,
        case_id: str,
        status: Any,
        user_id: str,
        comments: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Move a case to any status.

        Completing a case stamps actualCompletionDate; leaving Completed
        keeps it. One audit entry is written and each stakeholder other
        than the actor is notified.

        Raises:
            NotFoundError: If the case does not exist
            ValidationError: If the status is unknown
        """
        with performance_context("case_service_status_update", case_id=case_id):
            new_status = coerce_enum(CaseStatus, status, "status")
            existing = await self.store.find_by_id(EntityType.ONBOARDING_CASE, case_id)
            old_status = existing.get("status")

            changes: Dict[str, Any] = {"status": new_status, "lastModifiedBy": user_id}
            completed = new_status == CaseStatus.COMPLETED.value
            if completed:
                changes["actualCompletionDate"] = utcnow()

            case = await self.store.update(EntityType.ONBOARDING_CASE, case_id, changes)

            hooks = PostCommitHooks("update_case_status")
            hooks.add("audit", lambda: self.audit_service.record({
                "action": AuditAction.STATUS_UPDATE,
                "entityType": EntityType.ONBOARDING_CASE,
                "entityId": case_id,
                "userId": user_id,
                "changes": {"oldStatus": old_status, "newStatus": new_status, "comments": comments},
                "description": f"Case {case['caseId']} status changed from {old_status} to {new_status}",
            }))
            self._notify(hooks, case_stakeholders(case, exclude=user_id), {
                "title": "Onboarding Completed" if completed else "Case Status Updated",
                "message": f"Case {case['caseId']} status changed from {old_status} to {new_status}",
                "type": NotificationType.CASE_COMPLETED if completed else NotificationType.STATUS_UPDATE,
                "priority": Priority.MEDIUM if completed else Priority.LOW,
                "relatedEntityType": EntityType.ONBOARDING_CASE.value,
                "relatedEntityId": case_id,
                "metadata": {"oldStatus": old_status, "newStatus": new_status, "comments": comments},
            })
            await hooks.run()

            log_business_event(
                "case_status_changed", case_id=case_id, old_status=old_status, new_status=new_status
            )
            logger.info(
                "Case status updated",
                case_id=case_id,
                old_status=old_status,
                new_status=new_status,
                updated_by=user_id
            )
            return case

    async def assign_team(self, case_id: str, member_ids: Iterable[str], assigned_by: str) -> Dict[str, Any]:
        """
        Add members to a case team.

        The team is a set: repeated members are not duplicated. Every listed
        member is notified on every call.

        Raises:
            ValidationError: If no member is given
            NotFoundError: If the case does not exist
        """
        members = unique_ids(member_ids or [])
        if not members:
            raise ValidationError(
                "At least one team member is required",
                error_code=ErrorCode.MISSING_REQUIRED_FIELD,
                field_errors=[{"field": "memberIds", "message": "required"}]
            )

        case = await self.store.apply(
            EntityType.ONBOARDING_CASE,
            case_id,
            {"$addToSet": {"assignedTeam": {"$each": members}}, "$set": {"lastModifiedBy": assigned_by}}
        )

        hooks = PostCommitHooks("assign_team")
        hooks.add("audit", lambda: self.audit_service.record({
            "action": AuditAction.ASSIGN,
            "entityType": EntityType.ONBOARDING_CASE,
            "entityId": case_id,
            "userId": assigned_by,
            "details": {"memberIds": members},
            "description": f"{len(members)} team members assigned to case {case['caseId']}",
        }))
        self._notify(hooks, members, {
            "title": "Added to Onboarding Team",
            "message": f"You have been added to the team for case {case['caseId']}",
            "type": NotificationType.SYSTEM,
            "priority": Priority.MEDIUM,
            "relatedEntityType": EntityType.ONBOARDING_CASE.value,
            "relatedEntityId": case_id,
        })
        await hooks.run()

        logger.info("Team assigned", case_id=case_id, members=len(members), team_size=len(case["assignedTeam"]))
        return case

    async def get_progress_report(self, case_id: str) -> Dict[str, Any]:
        """
        Progress of a case.

        Remaining days are the open stages times the mean stage duration
        (actual, else estimated, else the configured default).
        """
        with performance_context("case_service_progress_report", case_id=case_id):
            case = await self.store.find_by_id(EntityType.ONBOARDING_CASE, case_id)
            stages = await self.store.find(EntityType.STAGE, {"onboardingCaseId": case_id}, sort=[("sequence", 1)])
            tasks = await self.store.find(EntityType.TASK, {"onboardingCaseId": case_id}, sort=[("sequence", 1)])
            now = utcnow()

            completed_stages = sum(1 for s in stages if s.get("status") == StageStatus.COMPLETED.value)
            completed_tasks = sum(1 for t in tasks if t.get("status") == TaskStatus.COMPLETED.value)
            overdue_tasks = sum(
                1 for t in tasks
                if t.get("dueDate") and t["dueDate"] < now
                and t.get("status") not in (TaskStatus.COMPLETED.value, TaskStatus.CANCELLED.value)
            )

            default_days = self.settings.workflow.default_stage_duration_days
            durations = [
                s.get("actualDuration") or s.get("estimatedDuration") or default_days
                for s in stages
            ]
            mean_duration = sum(durations) / len(durations) if durations else 0
            remaining_days = (len(stages) - completed_stages) * mean_duration

            tasks_by_status: Dict[str, int] = {}
            for task in tasks:
                tasks_by_status[task.get("status")] = tasks_by_status.get(task.get("status"), 0) + 1

            return {
                "caseId": case["caseId"],
                "status": case.get("status"),
                "progress": case.get("progress"),
                "totalStages": len(stages),
                "completedStages": completed_stages,
                "stageCompletion": round(completed_stages / len(stages) * 100, 2) if stages else 0,
                "totalTasks": len(tasks),
                "completedTasks": completed_tasks,
                "taskCompletion": round(completed_tasks / len(tasks) * 100, 2) if tasks else 0,
                "overdueTasks": overdue_tasks,
                "tasksByStatus": tasks_by_status,
                "remainingDays": round(remaining_days, 2),
                "expectedCompletionDate": now + timedelta(days=remaining_days),
                "stages": [
                    {
                        "id": s["id"],
                        "name": s.get("name"),
                        "sequence": s.get("sequence"),
                        "status": s.get("status"),
                        "taskCount": sum(1 for t in tasks if t.get("stageId") == s["id"]),
                        "completedTasks": sum(
                            1 for t in tasks
                            if t.get("stageId") == s["id"] and t.get("status") == TaskStatus.COMPLETED.value
                        ),
                    }
                    for s in stages
                ],
            }

    async def send_reminders(self, case_id: str, user_id: str) -> Dict[str, Any]:
        """
        Remind assignees of overdue open tasks of a case.

        One Reminder goes to the first assignee of each overdue Not Started or
        In Progress task; a single audit entry summarizes the run.

        Returns:
            remindersSent and the number of overdue tasks found
        """
        with performance_context("case_service_send_reminders", case_id=case_id):
            case = await self.store.find_by_id(EntityType.ONBOARDING_CASE, case_id)
            cutoff = utcnow() + timedelta(days=self.settings.workflow.reminder_lookahead_days)

            overdue = await self.store.find(
                EntityType.TASK,
                {
                    "onboardingCaseId": case_id,
                    "status": {"$in": [TaskStatus.NOT_STARTED.value, TaskStatus.IN_PROGRESS.value]},
                    "dueDate": {"$lt": cutoff},
                },
                sort=[("dueDate", 1)]
            )

            hooks = PostCommitHooks("send_reminders")
            for task in overdue:
                assignees = task.get("assignedTo") or []
                if not assignees:
                    continue
                hooks.add(f"remind:{task['id']}", lambda task=task, recipient=assignees[0]: self._remind(case, task, recipient))
            results = await hooks.run()
            reminders_sent = sum(1 for result in results if result)

            await self.audit_service.record({
                "action": AuditAction.REMINDER,
                "entityType": EntityType.ONBOARDING_CASE,
                "entityId": case_id,
                "userId": user_id,
                "details": {"remindersSent": reminders_sent, "overdueTasks": len(overdue)},
                "description": f"{reminders_sent} reminders sent for case {case['caseId']}",
            })

            logger.info("Reminders sent", case_id=case_id, reminders_sent=reminders_sent, overdue_tasks=len(overdue))
            return {"remindersSent": reminders_sent, "overdueTasks": len(overdue)}

    async def _remind(self, case: Mapping[str, Any], task: Mapping[str, Any], recipient: str) -> bool:
        await self.notification_service.create({
            "recipientId": recipient,
            "title": "Task Reminder",
            "message": f'Task "{task.get("name")}" in case {case["caseId"]} is overdue',
            "type": NotificationType.REMINDER,
            "priority": Priority.HIGH,
            "relatedEntityType": EntityType.TASK.value,
            "relatedEntityId": task["id"],
            "metadata": {"dueDate": task.get("dueDate")},
        })
        await self.store.update(EntityType.TASK, task["id"], {"reminderSent": True})
        return True
