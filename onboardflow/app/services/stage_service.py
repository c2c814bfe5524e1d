"""
Stage Service - Business Logic Layer

Stages order the work of an onboarding case by ``sequence``. New stages
are appended after the highest existing sequence, singly or in batches; a
batch may carry the tasks of each stage.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from onboardflow.app.core.exceptions import ErrorCode, ValidationError
from onboardflow.app.core.side_effects import PostCommitHooks
from onboardflow.app.models.domain.workflow import (
    AuditAction,
    StageStatus,
    coerce_enum,
    generate_business_id,
    utcnow
)
from onboardflow.app.repositories.mongodb.entity_store import (
    EntityStore,
    EntityType,
    ListResult,
    SortSpec
)
from onboardflow.app.services.audit_service import AuditService, field_changes
from onboardflow.app.services.task_service import TaskService
from onboardflow.app.utils.logging import get_logger, performance_context

logger = get_logger(__name__)


def _missing_names(items: Sequence[Mapping[str, Any]]) -> List[int]:
    return [i for i, item in enumerate(items) if not str(item.get("name") or "").strip()]


class StageService:
    """Business logic service for case stages."""

    def __init__(
        self,
        store: Optional[EntityStore] = None,
        audit_service: Optional[AuditService] = None,
        task_service: Optional[TaskService] = None
    ):
        self.store = store or EntityStore()
        self.audit_service = audit_service or AuditService(self.store)
        self.task_service = task_service or TaskService(self.store, audit_service=self.audit_service)

    def build_stage(
        self,
        payload: Mapping[str, Any],
        case_id: str,
        sequence: int,
        created_by: str,
        index: Optional[int] = None
    ) -> Dict[str, Any]:
        stage = {
            "description": "",
            "dependencies": [],
            "estimatedDuration": 0,
            "actualDuration": None,
            "isRequired": True,
            **payload,
            "stageId": payload.get("stageId") or generate_business_id("STAGE", index),
            "onboardingCaseId": case_id,
            "sequence": sequence,
            "status": coerce_enum(StageStatus, payload.get("status"), "status", StageStatus.NOT_STARTED),
            "createdBy": created_by,
        }
        stage.pop("tasks", None)
        return stage

    async def _max_sequence(self, case_id: str) -> int:
        last = await self.store.find(
            EntityType.STAGE, {"onboardingCaseId": case_id}, sort=[("sequence", -1)], limit=1
        )
        return (last[0].get("sequence") or 0) if last else 0

    def _audit_created(self, stages: Iterable[Mapping[str, Any]], created_by: str):
        return lambda: self.audit_service.record_many([
            {
                "action": AuditAction.CREATE,
                "entityType": EntityType.STAGE,
                "entityId": stage["id"],
                "userId": created_by,
                "changes": {"old": None, "new": {"stageId": stage["stageId"], "name": stage["name"]}},
            }
            for stage in stages
        ])

    async def create_stage(self, payload: Mapping[str, Any], created_by: str) -> Dict[str, Any]:
        case_id = payload.get("onboardingCaseId")
        if not case_id:
            raise ValidationError(
                "onboardingCaseId is required",
                error_code=ErrorCode.MISSING_REQUIRED_FIELD,
                field_errors=[{"field": "onboardingCaseId", "message": "required"}]
            )
        await self.store.find_by_id(EntityType.ONBOARDING_CASE, case_id)

        sequence = payload.get("sequence") or await self._max_sequence(case_id) + 1
        stage = await self.store.create(
            EntityType.STAGE, self.build_stage(payload, case_id, sequence, created_by)
        )
        await PostCommitHooks("create_stage").add("audit", self._audit_created([stage], created_by)).run()

        logger.info("Stage created", stage_id=stage["id"], case_id=case_id, sequence=sequence)
        return stage

    async def get_stage(self, stage_id: str, include_tasks: bool = False) -> Dict[str, Any]:
        stage = await self.store.find_by_id(EntityType.STAGE, stage_id)
        if include_tasks:
            stage["tasks"] = await self.store.find(
                EntityType.TASK, {"stageId": stage_id}, sort=[("sequence", 1)]
            )
        return stage

    async def list_stages(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> ListResult:
        return await self.store.list(
            EntityType.STAGE, filters, sort=sort or [("sequence", 1)], page=page, limit=limit
        )

    async def update_stage(self, stage_id: str, patch: Mapping[str, Any], user_id: str) -> Dict[str, Any]:
        existing = await self.store.find_by_id(EntityType.STAGE, stage_id)
        changes = {
            k: v for k, v in patch.items()
            if k not in ("stageId", "onboardingCaseId", "createdBy", "tasks")
        }
        if "status" in changes:
            changes["status"] = coerce_enum(StageStatus, changes["status"], "status")
            if changes["status"] == StageStatus.COMPLETED.value:
                changes["completedDate"] = utcnow()

        change_list = field_changes(existing, changes)
        stage = await self.store.update(EntityType.STAGE, stage_id, changes)

        await PostCommitHooks("update_stage").add("audit", lambda: self.audit_service.record({
            "action": AuditAction.UPDATE,
            "entityType": EntityType.STAGE,
            "entityId": stage_id,
            "userId": user_id,
            "changes": change_list,
        })).run()

        logger.info("Stage updated", stage_id=stage_id, fields=[c["field"] for c in change_list])
        return stage

    async def delete_stage(self, stage_id: str, user_id: str) -> Dict[str, Any]:
        """Delete a stage; its tasks are left to the caller."""
        stage = await self.store.delete(EntityType.STAGE, stage_id)
        await PostCommitHooks("delete_stage").add("audit", lambda: self.audit_service.record({
            "action": AuditAction.DELETE,
            "entityType": EntityType.STAGE,
            "entityId": stage_id,
            "userId": user_id,
            "changes": {"old": {"stageId": stage["stageId"], "name": stage.get("name")}, "new": None},
        })).run()
        logger.info("Stage deleted", stage_id=stage_id)
        return stage

    async def create_multiple_stages(
        self,
        case_id: str,
        stages: Sequence[Mapping[str, Any]],
        created_by: str
    ) -> List[Dict[str, Any]]:
        """
        Append several stages to a case in input order.

        Args:
            case_id: Store id of the case
            stages: Stage payloads; each needs a name
            created_by: Acting user id

        Returns:
            The created stages, sequences continuing after the current maximum

        Raises:
            ValidationError: If the batch is empty or a stage has no name
            NotFoundError: If the case does not exist
        """
        with performance_context("stage_service_create_multiple", case_id=case_id, count=len(stages or [])):
            self._validate_batch(stages)
            await self.store.find_by_id(EntityType.ONBOARDING_CASE, case_id)

            start = await self._max_sequence(case_id)
            created = await self.store.insert_many(EntityType.STAGE, [
                self.build_stage(payload, case_id, start + i + 1, created_by, index=i)
                for i, payload in enumerate(stages)
            ])
            await PostCommitHooks("create_multiple_stages").add(
                "audit", self._audit_created(created, created_by)
            ).run()

            logger.info("Stages created in bulk", case_id=case_id, count=len(created))
            return created

    async def create_stages_with_tasks(
        self,
        case_id: str,
        stages: Sequence[Mapping[str, Any]],
        created_by: str
    ) -> List[Dict[str, Any]]:
        """
        Append stages with their tasks.

        Each stage payload may carry a ``tasks`` list; task sequences start
        at 1 within their stage. Stages are written first and removed again
        if the tasks cannot be written.

        Returns:
            The created stages, each with its created ``tasks``
        """
        with performance_context("stage_service_create_with_tasks", case_id=case_id, count=len(stages or [])):
            self._validate_batch(stages)
            task_errors = [
                {"index": i, "taskIndex": j, "field": "name", "message": "required"}
                for i, stage in enumerate(stages)
                for j in _missing_names(stage.get("tasks") or [])
            ]
            if task_errors:
                raise ValidationError(
                    f"{len(task_errors)} tasks are missing a name",
                    error_code=ErrorCode.MISSING_REQUIRED_FIELD,
                    field_errors=task_errors
                )
            await self.store.find_by_id(EntityType.ONBOARDING_CASE, case_id)

            start = await self._max_sequence(case_id)
            created_stages = await self.store.insert_many(EntityType.STAGE, [
                self.build_stage(payload, case_id, start + i + 1, created_by, index=i)
                for i, payload in enumerate(stages)
            ])

            task_payloads = []
            for stage, payload in zip(created_stages, stages):
                for j, task in enumerate(payload.get("tasks") or []):
                    task_payloads.append(self.task_service.build_task(
                        task, case_id, stage["id"], j + 1, created_by, index=len(task_payloads)
                    ))

            created_tasks: List[Dict[str, Any]] = []
            if task_payloads:
                try:
                    created_tasks = await self.store.insert_many(EntityType.TASK, task_payloads)
                except Exception:
                    await self.store.delete_many(
                        EntityType.STAGE, {"id": {"$in": [s["id"] for s in created_stages]}}
                    )
                    logger.warning(
                        "Stage batch rolled back after task insert failure",
                        case_id=case_id,
                        stages=len(created_stages)
                    )
                    raise

            hooks = PostCommitHooks("create_stages_with_tasks")
            hooks.add("audit", self._audit_created(created_stages, created_by))
            for task in created_tasks:
                self.task_service.add_assignment_hooks(
                    hooks, task, [u for u in task["assignedTo"] if u != created_by]
                )
            await hooks.run()

            for stage in created_stages:
                stage["tasks"] = [t for t in created_tasks if t["stageId"] == stage["id"]]

            logger.info(
                "Stages with tasks created",
                case_id=case_id,
                stages=len(created_stages),
                tasks=len(created_tasks)
            )
            return created_stages

    def _validate_batch(self, stages: Sequence[Mapping[str, Any]]) -> None:
        if not stages:
            raise ValidationError(
                "Stages array is required and must not be empty",
                error_code=ErrorCode.EMPTY_BATCH
            )
        missing = _missing_names(stages)
        if missing:
            raise ValidationError(
                f"{len(missing)} stages are missing a name",
                error_code=ErrorCode.MISSING_REQUIRED_FIELD,
                field_errors=[{"index": i, "field": "name", "message": "required"} for i in missing]
            )
