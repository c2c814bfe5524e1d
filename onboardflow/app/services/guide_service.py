"""
Guide Service - workflow guides, their steps and case links

This module provides:
- Guide and guide step management (step counts kept on the guide)
- Step reference validation against stages and tasks
- Linking guides to onboarding cases and tracking link progress
"""

from typing import Any, Dict, List, Mapping, Optional

from onboardflow.app.core.exceptions import ConflictError, ErrorCode, ValidationError
from onboardflow.app.core.side_effects import PostCommitHooks
from onboardflow.app.models.domain.guide import (
    HintType,
    ReferenceType,
    build_step_reference,
    reference_fields
)
from onboardflow.app.models.domain.workflow import (
    ACTIVE_LINK_STATUSES,
    AuditAction,
    LinkStatus,
    NotificationType,
    Priority,
    case_team,
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
from onboardflow.app.services.audit_service import AuditService
from onboardflow.app.services.notification_service import NotificationService
from onboardflow.app.utils.logging import get_logger, performance_context

logger = get_logger(__name__)


class GuideService:
    """Manages workflow guides and their use in onboarding cases."""

    def __init__(
        self,
        store: Optional[EntityStore] = None,
        audit_service: Optional[AuditService] = None,
        notification_service: Optional[NotificationService] = None
    ):
        self.store = store or EntityStore()
        self.audit_service = audit_service or AuditService(self.store)
        self.notification_service = notification_service or NotificationService(self.store)

    # ------------------------------------------------------------------
    # Guides
    # ------------------------------------------------------------------

    async def create_guide(self, payload: Mapping[str, Any], created_by: str) -> Dict[str, Any]:
        guide = await self.store.create(EntityType.WORKFLOW_GUIDE, {
            "status": "Active",
            "isActive": True,
            "targetRoles": [],
            **payload,
            "guideId": payload.get("guideId") or generate_business_id("GUIDE"),
            "stepCount": 0,
            "usageCount": 0,
            "averageRating": 0,
            "createdBy": created_by,
        })
        logger.info("Guide created", guide_id=guide["id"], title=guide["title"])
        return guide

    async def get_guide(self, guide_id: str) -> Dict[str, Any]:
        """A guide with its active steps in sequence order."""
        guide = await self.store.find_by_id(EntityType.WORKFLOW_GUIDE, guide_id)
        guide["steps"] = await self.list_steps(guide_id)
        return guide

    async def list_guides(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> ListResult:
        return await self.store.list(EntityType.WORKFLOW_GUIDE, filters, sort=sort, page=page, limit=limit)

    async def update_guide(self, guide_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        changes = {k: v for k, v in patch.items() if k not in ("guideId", "stepCount", "usageCount")}
        return await self.store.update(EntityType.WORKFLOW_GUIDE, guide_id, changes)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _validated_reference(self, reference_type: Optional[str], ref_id: Optional[str]) -> Dict[str, Any]:
        reference = build_step_reference(reference_type, ref_id)
        if reference.reference_type is ReferenceType.STAGE:
            await self.store.find_by_id(EntityType.STAGE, reference.target_id)
        elif reference.reference_type is ReferenceType.TASK:
            await self.store.find_by_id(EntityType.TASK, reference.target_id)
        return reference_fields(reference)

    async def list_steps(self, guide_id: str, include_inactive: bool = False) -> List[Dict[str, Any]]:
        filters: Dict[str, Any] = {"guideId": guide_id}
        if not include_inactive:
            filters["isActive"] = True
        return await self.store.find(EntityType.GUIDE_STEP, filters, sort=[("sequence", 1)])

    async def create_step(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        """
        Add a step to a guide.

        Args:
            payload: {guideId, title, content, referenceType, stageOrTaskRef,
                hintType, sequence?}

        Returns:
            The created step

        Raises:
            NotFoundError: If the guide, or the referenced stage or task, does not exist
            ValidationError: If the reference or hint type is invalid
        """
        guide_id = payload.get("guideId")
        if not guide_id:
            raise ValidationError(
                "guideId is required",
                error_code=ErrorCode.MISSING_REQUIRED_FIELD,
                field_errors=[{"field": "guideId", "message": "required"}]
            )
        await self.store.find_by_id(EntityType.WORKFLOW_GUIDE, guide_id)

        reference = await self._validated_reference(payload.get("referenceType"), payload.get("stageOrTaskRef"))
        sequence = payload.get("sequence")
        if sequence is None:
            sequence = await self.store.count(EntityType.GUIDE_STEP, {"guideId": guide_id}) + 1

        step = await self.store.create(EntityType.GUIDE_STEP, {
            "content": "",
            "isActive": True,
            **payload,
            **reference,
            "stepId": payload.get("stepId") or generate_business_id("STEP"),
            "sequence": sequence,
            "hintType": coerce_enum(HintType, payload.get("hintType"), "hintType", HintType.TIP.value),
            "viewCount": 0,
            "viewedBy": [],
            "helpfulVotes": 0,
            "notHelpfulVotes": 0,
        })
        await self.store.apply(EntityType.WORKFLOW_GUIDE, guide_id, {"$inc": {"stepCount": 1}})

        logger.info(
            "Guide step created",
            guide_id=guide_id,
            step_id=step["id"],
            reference_type=step["referenceType"]
        )
        return step

    async def update_step(self, step_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        step = await self.store.find_by_id(EntityType.GUIDE_STEP, step_id)
        changes = {
            k: v for k, v in patch.items()
            if k not in ("stepId", "guideId", "viewCount", "viewedBy", "helpfulVotes", "notHelpfulVotes")
        }
        if "referenceType" in changes or "stageOrTaskRef" in changes:
            changes.update(await self._validated_reference(
                changes.get("referenceType", step.get("referenceType")),
                changes.get("stageOrTaskRef", step.get("stageOrTaskRef"))
            ))
        if "hintType" in changes:
            changes["hintType"] = coerce_enum(HintType, changes["hintType"], "hintType")
        return await self.store.update(EntityType.GUIDE_STEP, step_id, changes)

    async def delete_step(self, step_id: str) -> Dict[str, Any]:
        step = await self.store.delete(EntityType.GUIDE_STEP, step_id)
        await self.store.apply(EntityType.WORKFLOW_GUIDE, step["guideId"], {"$inc": {"stepCount": -1}})
        logger.info("Guide step deleted", guide_id=step["guideId"], step_id=step_id)
        return step

    # ------------------------------------------------------------------
    # Case links
    # ------------------------------------------------------------------

    async def link_guide_to_case(
        self,
        case_id: str,
        guide_id: str,
        linked_by: str,
        priority: Optional[str] = None,
        notes: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Link a guide to a case.

        The link starts Assigned with totalSteps set to the guide's active
        step count; the guide joins the case's linkedGuides and its usage
        count grows. The case team is notified best-effort.

        Raises:
            NotFoundError: If the case or the guide does not exist
            ConflictError: GUIDE_ALREADY_LINKED if an Assigned or In Use
                link for the same case and guide exists
        """
        with performance_context("guide_link_to_case", case_id=case_id, guide_id=guide_id):
            case = await self.store.find_by_id(EntityType.ONBOARDING_CASE, case_id)
            guide = await self.store.find_by_id(EntityType.WORKFLOW_GUIDE, guide_id)

            active = await self.store.count(EntityType.CASE_GUIDE_LINK, {
                "onboardingCaseId": case_id,
                "guideId": guide_id,
                "status": {"$in": list(ACTIVE_LINK_STATUSES)},
            })
            if active:
                raise ConflictError(
                    f"Guide {guide_id} is already linked to case {case_id}",
                    error_code=ErrorCode.GUIDE_ALREADY_LINKED,
                    entity_type=EntityType.CASE_GUIDE_LINK.value,
                    field="guideId",
                    value=guide_id
                )

            total_steps = await self.store.count(EntityType.GUIDE_STEP, {"guideId": guide_id, "isActive": True})

            link = await self.store.create(EntityType.CASE_GUIDE_LINK, {
                "onboardingCaseId": case_id,
                "guideId": guide_id,
                "linkedBy": linked_by,
                "status": LinkStatus.ASSIGNED.value,
                "priority": coerce_enum(Priority, priority, "priority", Priority.MEDIUM.value),
                "stepsCompleted": 0,
                "totalSteps": total_steps,
                "viewCount": 0,
                "timeSpent": 0,
                "notes": notes,
            })
            await self.store.apply(EntityType.ONBOARDING_CASE, case_id, {"$addToSet": {"linkedGuides": guide_id}})
            await self.store.apply(EntityType.WORKFLOW_GUIDE, guide_id, {"$inc": {"usageCount": 1}})

            hooks = PostCommitHooks("link_guide_to_case")
            hooks.add("audit", lambda: self.audit_service.record({
                "action": AuditAction.LINK,
                "entityType": EntityType.CASE_GUIDE_LINK,
                "entityId": link["id"],
                "userId": linked_by,
                "details": {"caseId": case_id, "guideId": guide_id},
                "description": f'Guide "{guide["title"]}" linked to case {case["caseId"]}',
            }))
            for member in case_team(case, exclude=linked_by):
                hooks.add(f"notify:{member}", lambda member=member: self.notification_service.create({
                    "recipientId": member,
                    "title": "Guide Assigned",
                    "message": f'Guide "{guide["title"]}" was linked to case {case["caseId"]}',
                    "type": NotificationType.GUIDE_ASSIGNED,
                    "priority": Priority.LOW,
                    "relatedEntityType": EntityType.ONBOARDING_CASE.value,
                    "relatedEntityId": case_id,
                }))
            await hooks.run()

            logger.info("Guide linked to case", case_id=case_id, guide_id=guide_id, link_id=link["id"])
            return link

    async def list_case_links(
        self,
        case_id: str,
        status: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        return await self.store.find(
            EntityType.CASE_GUIDE_LINK,
            {"onboardingCaseId": case_id, "status": status},
            sort=[("createdAt", 1)]
        )

    async def update_link_progress(
        self,
        link_id: str,
        steps_completed: Optional[int] = None,
        time_spent: Optional[float] = None,
        rating: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Record progress on a linked guide.

        The link moves to In Use, or to Completed once every step is done.
        """
        link = await self.store.find_by_id(EntityType.CASE_GUIDE_LINK, link_id)
        if rating is not None and not 1 <= rating <= 5:
            raise ValidationError(
                "Rating must be between 1 and 5",
                error_code=ErrorCode.INVALID_VALUE,
                field_errors=[{"field": "userRating", "value": rating}]
            )

        changes: Dict[str, Any] = {}
        if steps_completed is not None:
            changes["stepsCompleted"] = max(int(steps_completed), 0)
        if rating is not None:
            changes["userRating"] = rating

        completed = changes.get("stepsCompleted", link.get("stepsCompleted") or 0)
        total = link.get("totalSteps") or 0
        if total and completed >= total:
            changes["status"] = LinkStatus.COMPLETED.value
            changes["completedDate"] = utcnow()
        else:
            changes["status"] = LinkStatus.IN_USE.value

        operations: Dict[str, Dict[str, Any]] = {"$set": changes, "$inc": {"viewCount": 1}}
        if time_spent:
            operations["$inc"]["timeSpent"] = time_spent

        updated = await self.store.apply(EntityType.CASE_GUIDE_LINK, link_id, operations)
        logger.info(
            "Guide link progress updated",
            link_id=link_id,
            steps_completed=updated.get("stepsCompleted"),
            status=updated.get("status")
        )
        return updated

    async def remove_link(
        self,
        link_id: str,
        removed_by: str,
        reason: Optional[str] = None
    ) -> Dict[str, Any]:
        """Mark a link Removed; the guide leaves the case's linkedGuides."""
        link = await self.store.update(EntityType.CASE_GUIDE_LINK, link_id, {
            "status": LinkStatus.REMOVED.value,
            "removedBy": removed_by,
            "removedDate": utcnow(),
            "removalReason": reason,
        })
        await self.store.apply(
            EntityType.ONBOARDING_CASE,
            link["onboardingCaseId"],
            {"$pull": {"linkedGuides": link["guideId"]}}
        )

        await PostCommitHooks("remove_link").add("audit", lambda: self.audit_service.record({
            "action": AuditAction.UNLINK,
            "entityType": EntityType.CASE_GUIDE_LINK,
            "entityId": link_id,
            "userId": removed_by,
            "details": {"reason": reason},
        })).run()

        logger.info("Guide link removed", link_id=link_id, removed_by=removed_by)
        return link
