"""
Template Service - Business Logic Layer

Templates are reusable case, stage, task and guide blueprints. This module
handles their lifecycle (draft, clone, publish), the per-type default,
recommendations for a client profile and the usage statistics folded in
as onboardings built from a template finish.
"""

import time
from typing import Any, Dict, List, Mapping, Optional

from onboardflow.app.core.side_effects import PostCommitHooks
from onboardflow.app.models.domain.template import running_average, running_success_rate
from onboardflow.app.models.domain.workflow import (
    AuditAction,
    TemplateStatus,
    TemplateType,
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
from onboardflow.app.utils.logging import get_logger

logger = get_logger(__name__)

RECOMMENDATION_LIMIT = 5

# Fallback values matched alongside the requested client profile
PROFILE_FALLBACKS = {
    "industryType": "General",
    "clientSize": "Medium",
    "complexity": "Standard",
}


class TemplateService:
    """Business logic service for templates."""

    def __init__(
        self,
        store: Optional[EntityStore] = None,
        audit_service: Optional[AuditService] = None
    ):
        self.store = store or EntityStore()
        self.audit_service = audit_service or AuditService(self.store)

    def _audit(self, action: AuditAction, template: Mapping[str, Any], user_id: Optional[str], changes: Any):
        return lambda: self.audit_service.record({
            "action": action,
            "entityType": EntityType.TEMPLATE,
            "entityId": template["id"],
            "userId": user_id,
            "changes": changes,
        })

    async def create(self, payload: Mapping[str, Any], created_by: Optional[str] = None) -> Dict[str, Any]:
        template = await self.store.create(EntityType.TEMPLATE, {
            "description": "",
            "configuration": {},
            "industryType": "General",
            "clientSize": "Medium",
            "complexity": "Standard",
            "version": "1.0",
            **payload,
            "templateId": payload.get("templateId") or generate_business_id("TPL"),
            "type": coerce_enum(TemplateType, payload.get("type"), "type"),
            "status": coerce_enum(TemplateStatus, payload.get("status"), "status", TemplateStatus.DRAFT),
            "isDefault": False,
            "usageCount": 0,
            "successRate": 0,
            "averageCompletionTime": None,
            "createdBy": created_by,
        })
        await PostCommitHooks("create_template").add(
            "audit", self._audit(AuditAction.CREATE, template, created_by, {"old": None, "new": template["templateId"]})
        ).run()

        logger.info("Template created", template_id=template["id"], type=template["type"])
        return template

    async def get(self, template_id: str) -> Dict[str, Any]:
        return await self.store.find_by_id(
            EntityType.TEMPLATE, template_id, expand=["createdBy", "approvedBy"]
        )

    async def list(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> ListResult:
        return await self.store.list(EntityType.TEMPLATE, filters, sort=sort, page=page, limit=limit)

    async def update(self, template_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        changes = {
            k: v for k, v in patch.items()
            if k not in ("templateId", "usageCount", "successRate", "averageCompletionTime", "isDefault")
        }
        if "type" in changes:
            changes["type"] = coerce_enum(TemplateType, changes["type"], "type")
        if "status" in changes:
            changes["status"] = coerce_enum(TemplateStatus, changes["status"], "status")
        return await self.store.update(EntityType.TEMPLATE, template_id, changes)

    async def delete(self, template_id: str) -> Dict[str, Any]:
        template = await self.store.delete(EntityType.TEMPLATE, template_id)
        logger.info("Template deleted", template_id=template_id)
        return template

    async def clone(
        self,
        template_id: str,
        created_by: Optional[str] = None,
        name: Optional[str] = None,
        description: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Copy a template into a new draft.

        The copy gets ``<templateId>_copy_<epoch millis>`` as its template
        id, fresh usage statistics and a link back to its parent.
        """
        original = await self.store.find_by_id(EntityType.TEMPLATE, template_id)

        copy = {
            k: v for k, v in original.items()
            if k not in ("id", "createdAt", "updatedAt", "approvedBy", "approvalDate")
        }
        copy.update({
            "templateId": f"{original['templateId']}_copy_{int(time.time() * 1000)}",
            "name": name or f"{original['name']} (Copy)",
            "description": description or f"Copy of {original.get('description') or ''}",
            "parentTemplateId": original["id"],
            "status": TemplateStatus.DRAFT.value,
            "usageCount": 0,
            "successRate": 0,
            "averageCompletionTime": None,
            "isDefault": False,
            "createdBy": created_by,
        })
        cloned = await self.store.create(EntityType.TEMPLATE, copy)

        logger.info("Template cloned", template_id=template_id, clone_id=cloned["id"])
        return cloned

    async def publish(self, template_id: str, approved_by: Optional[str] = None) -> Dict[str, Any]:
        template = await self.store.update(EntityType.TEMPLATE, template_id, {
            "status": TemplateStatus.PUBLISHED.value,
            "approvedBy": approved_by,
            "approvalDate": utcnow(),
        })
        await PostCommitHooks("publish_template").add(
            "audit", self._audit(AuditAction.PUBLISH, template, approved_by, {"newStatus": template["status"]})
        ).run()

        logger.info("Template published", template_id=template_id, approved_by=approved_by)
        return template

    async def set_as_default(self, template_id: str) -> Dict[str, Any]:
        """Make a template the default of its type, clearing the previous default."""
        template = await self.store.find_by_id(EntityType.TEMPLATE, template_id)
        await self.store.update_many(
            EntityType.TEMPLATE,
            {"type": template["type"], "isDefault": True, "id": {"$ne": template_id}},
            {"isDefault": False}
        )
        template = await self.store.update(EntityType.TEMPLATE, template_id, {"isDefault": True})
        logger.info("Default template set", template_id=template_id, type=template["type"])
        return template

    async def get_recommendations(
        self,
        template_type: Optional[str] = None,
        industry_type: Optional[str] = None,
        client_size: Optional[str] = None,
        complexity: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Published templates suited to a client profile.

        Each given profile value also matches its generic fallback
        (General industry, Medium size, Standard complexity).

        Returns:
            At most five templates, defaults first, then by success rate and usage
        """
        query: Dict[str, Any] = {
            "status": TemplateStatus.PUBLISHED.value,
            "type": coerce_enum(TemplateType, template_type, "type", TemplateType.ONBOARDING_CASE),
        }
        for field_name, value in (
            ("industryType", industry_type),
            ("clientSize", client_size),
            ("complexity", complexity),
        ):
            if value:
                query[field_name] = {"$in": [value, PROFILE_FALLBACKS[field_name]]}

        return await self.store.find(
            EntityType.TEMPLATE,
            query,
            sort=[("isDefault", -1), ("successRate", -1), ("usageCount", -1)],
            limit=RECOMMENDATION_LIMIT
        )

    async def update_usage_stats(
        self,
        template_id: str,
        success: Optional[bool] = None,
        completion_time: Optional[float] = None
    ) -> Dict[str, Any]:
        """
        Fold one finished onboarding into a template's statistics.

        Args:
            template_id: Store id of the template
            success: Outcome of the onboarding; the success rate is left alone when None
            completion_time: Days the onboarding took, if known
        """
        template = await self.store.find_by_id(EntityType.TEMPLATE, template_id)
        old_count = template.get("usageCount") or 0

        changes: Dict[str, Any] = {"usageCount": old_count + 1}
        if success is not None:
            changes["successRate"] = running_success_rate(template.get("successRate"), old_count, success)
        if completion_time:
            changes["averageCompletionTime"] = running_average(
                template.get("averageCompletionTime"), old_count, completion_time
            )

        template = await self.store.update(EntityType.TEMPLATE, template_id, changes)
        logger.info(
            "Template usage recorded",
            template_id=template_id,
            usage_count=template["usageCount"],
            success_rate=template.get("successRate")
        )
        return template
