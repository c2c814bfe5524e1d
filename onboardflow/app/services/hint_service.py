"""
Hint Service - contextual guidance for onboarding work

This module resolves the guide steps that apply to a stage or a task of a
case and aggregates how guides are being used:
- Stage hints ordered by the priority of the guide link
- Task hints ordered by how specific the step is (task, stage, general)
- Step view and helpfulness tracking
- Per-case hint summaries and guide usage analytics
"""

from collections import Counter
from typing import Any, Dict, List, Optional

from onboardflow.app.models.domain.guide import ReferenceType, step_reference_of
from onboardflow.app.models.domain.workflow import ACTIVE_LINK_STATUSES, priority_rank
from onboardflow.app.repositories.mongodb.entity_store import EntityStore, EntityType
from onboardflow.app.utils.logging import get_logger, performance_context

logger = get_logger(__name__)


class HintService:
    """Resolves guide steps into hints for stages and tasks."""

    def __init__(self, store: Optional[EntityStore] = None):
        self.store = store or EntityStore()

    async def _active_links(self, case_id: str) -> List[Dict[str, Any]]:
        return await self.store.find(
            EntityType.CASE_GUIDE_LINK,
            {"onboardingCaseId": case_id, "status": {"$in": list(ACTIVE_LINK_STATUSES)}},
            sort=[("createdAt", 1)]
        )

    async def _guide_title(self, guide_id: str) -> Optional[str]:
        guide = await self.store.get(EntityType.WORKFLOW_GUIDE, guide_id)
        return guide.get("title") if guide else None

    async def _active_steps(self, guide_id: str, branches: Optional[List[Dict[str, Any]]] = None) -> List[Dict[str, Any]]:
        filters: Dict[str, Any] = {"guideId": guide_id, "isActive": True}
        if branches:
            filters["$or"] = branches
        return await self.store.find(EntityType.GUIDE_STEP, filters, sort=[("sequence", 1)])

    async def _gather_hints(self, case_id: str, branches: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        hints = []
        for link in await self._active_links(case_id):
            guide_title = await self._guide_title(link["guideId"])
            for step in await self._active_steps(link["guideId"], branches):
                hints.append({
                    **step,
                    "guideTitle": guide_title,
                    "guidePriority": link.get("priority"),
                    "linkId": link["id"],
                })
        return hints

    async def resolve_stage_hints(self, case_id: str, stage_id: str) -> List[Dict[str, Any]]:
        """
        Hints for a stage of a case.

        Steps attached to the stage plus general steps of every guide linked
        to the case (Assigned or In Use), most important guide first.

        Args:
            case_id: Store id of the case
            stage_id: Store id of the stage

        Returns:
            Steps annotated with guideTitle, guidePriority and linkId

        Raises:
            NotFoundError: If the case does not exist
        """
        with performance_context("hint_resolve_stage", case_id=case_id, stage_id=stage_id):
            await self.store.find_by_id(EntityType.ONBOARDING_CASE, case_id)

            hints = await self._gather_hints(case_id, [
                {"referenceType": ReferenceType.STAGE.value, "stageOrTaskRef": stage_id},
                {"referenceType": ReferenceType.GENERAL.value},
            ])
            hints.sort(key=lambda hint: (priority_rank(hint["guidePriority"]), hint.get("sequence") or 0))

            logger.debug("Stage hints resolved", case_id=case_id, stage_id=stage_id, count=len(hints))
            return hints

    async def resolve_task_hints(self, task_id: str, case_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """
        Hints for a task.

        Steps attached to the task, then to the task's stage, then general
        steps; each block ordered by step sequence.

        Raises:
            NotFoundError: If the task does not exist
        """
        with performance_context("hint_resolve_task", task_id=task_id):
            task = await self.store.find_by_id(EntityType.TASK, task_id)
            case_id = case_id or task.get("onboardingCaseId")

            branches = [
                {"referenceType": ReferenceType.TASK.value, "stageOrTaskRef": task_id},
                {"referenceType": ReferenceType.GENERAL.value},
            ]
            if task.get("stageId"):
                branches.append(
                    {"referenceType": ReferenceType.STAGE.value, "stageOrTaskRef": task["stageId"]}
                )

            hints = await self._gather_hints(case_id, branches)
            hints.sort(key=lambda hint: (step_reference_of(hint).specificity, hint.get("sequence") or 0))

            logger.debug("Task hints resolved", task_id=task_id, case_id=case_id, count=len(hints))
            return hints

    async def record_view(self, step_id: str, user_id: Optional[str] = None) -> Dict[str, Any]:
        """Count a view of a step; the viewer joins the step's viewer set once."""
        operations: Dict[str, Dict[str, Any]] = {"$inc": {"viewCount": 1}}
        if user_id:
            operations["$addToSet"] = {"viewedBy": user_id}
        return await self.store.apply(EntityType.GUIDE_STEP, step_id, operations)

    async def record_feedback(
        self,
        step_id: str,
        helpful: bool,
        comment: Optional[str] = None
    ) -> Dict[str, Any]:
        """Count a helpful or not-helpful vote; comments are only logged."""
        counter = "helpfulVotes" if helpful else "notHelpfulVotes"
        step = await self.store.apply(EntityType.GUIDE_STEP, step_id, {"$inc": {counter: 1}})
        if comment:
            logger.info("Hint feedback comment", step_id=step_id, helpful=helpful, comment=comment)
        return step

    async def case_hints_summary(self, case_id: str) -> Dict[str, Any]:
        """
        Count the hints available to a case.

        Returns:
            totalHints, generalHints, and stageHints / taskHints keyed by the
            referenced stage or task id
        """
        links = await self.store.find(EntityType.CASE_GUIDE_LINK, {"onboardingCaseId": case_id})
        guide_ids = list(dict.fromkeys(link["guideId"] for link in links))

        stage_hints: Counter = Counter()
        task_hints: Counter = Counter()
        general = 0
        total = 0
        for guide_id in guide_ids:
            for step in await self._active_steps(guide_id):
                total += 1
                reference = step_reference_of(step)
                if reference.reference_type is ReferenceType.STAGE:
                    stage_hints[reference.target_id] += 1
                elif reference.reference_type is ReferenceType.TASK:
                    task_hints[reference.target_id] += 1
                else:
                    general += 1

        return {
            "caseId": case_id,
            "totalGuides": len(guide_ids),
            "totalHints": total,
            "generalHints": general,
            "stageHints": dict(stage_hints),
            "taskHints": dict(task_hints),
        }

    async def guide_usage_for_case(self, case_id: str) -> List[Dict[str, Any]]:
        """
        Usage of each guide linked to a case.

        completionRate is stepsCompleted over active steps in percent,
        totalViews sums step views and avgStepRating averages
        helpful minus not-helpful votes; both are 0 for a guide without steps.
        """
        links = await self.store.find(
            EntityType.CASE_GUIDE_LINK, {"onboardingCaseId": case_id}, sort=[("createdAt", 1)]
        )

        usage = []
        for link in links:
            steps = await self._active_steps(link["guideId"])
            step_count = len(steps)
            steps_completed = link.get("stepsCompleted") or 0

            completion_rate = round(steps_completed / step_count * 100, 2) if step_count else 0
            total_views = sum(step.get("viewCount") or 0 for step in steps)
            avg_rating = (
                round(
                    sum((s.get("helpfulVotes") or 0) - (s.get("notHelpfulVotes") or 0) for s in steps)
                    / step_count,
                    2
                )
                if step_count else 0
            )

            usage.append({
                "linkId": link["id"],
                "guideId": link["guideId"],
                "guideTitle": await self._guide_title(link["guideId"]),
                "status": link.get("status"),
                "priority": link.get("priority"),
                "totalSteps": step_count,
                "stepsCompleted": steps_completed,
                "completionRate": completion_rate,
                "totalViews": total_views,
                "avgStepRating": avg_rating,
                "timeSpent": link.get("timeSpent") or 0,
                "userRating": link.get("userRating"),
            })
        return usage
