"""
Workflow Type Service

Workflow types classify onboarding cases and give case ids their prefix.
Names and prefixes are unique, at most one type is the default, and a type
cannot be deleted while cases use it.
"""

from typing import Any, Dict, Mapping, Optional, Protocol

from onboardflow.app.core.exceptions import ConflictError, ErrorCode, ValidationError
from onboardflow.app.models.domain.workflow import generate_business_id
from onboardflow.app.repositories.mongodb.entity_store import (
    EntityStore,
    EntityType,
    ListResult,
    SortSpec
)
from onboardflow.app.utils.logging import get_logger

logger = get_logger(__name__)

MAX_PREFIX_LENGTH = 3


class DefaultWorkflowTypeProvider(Protocol):
    """Supplies the workflow type given to cases that do not name one."""

    async def get_default(self) -> Optional[Dict[str, Any]]:
        ...


class MongoDefaultWorkflowTypeProvider:
    """Default workflow type read from the store."""

    def __init__(self, store: Optional[EntityStore] = None):
        self.store = store or EntityStore()

    async def get_default(self) -> Optional[Dict[str, Any]]:
        found = await self.store.find(
            EntityType.WORKFLOW_TYPE, {"isDefault": True, "isActive": True}, limit=1
        )
        return found[0] if found else None


def _normalize_prefix(prefix: Any) -> str:
    prefix = str(prefix or "").strip().upper()
    if not prefix or len(prefix) > MAX_PREFIX_LENGTH or not prefix.isalnum():
        raise ValidationError(
            f"Prefix must be 1 to {MAX_PREFIX_LENGTH} letters or digits",
            error_code=ErrorCode.INVALID_VALUE,
            field_errors=[{"field": "prefix", "value": prefix}]
        )
    return prefix


class WorkflowTypeService:
    """Manages workflow types."""

    def __init__(self, store: Optional[EntityStore] = None):
        self.store = store or EntityStore()

    async def create(self, payload: Mapping[str, Any], created_by: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a workflow type.

        Raises:
            ValidationError: If the prefix is not 1-3 alphanumerics
            ConflictError: WORKFLOW_TYPE_DUPLICATE_PREFIX or
                WORKFLOW_TYPE_DUPLICATE_NAME on uniqueness violations
        """
        workflow_type = await self.store.create(EntityType.WORKFLOW_TYPE, {
            "description": "",
            "isActive": True,
            **payload,
            "workflowTypeId": generate_business_id("WFT"),
            "prefix": _normalize_prefix(payload.get("prefix")),
            "isDefault": False,
            "totalCases": 0,
            "createdBy": created_by,
        })

        if payload.get("isDefault"):
            workflow_type = await self.set_default(workflow_type["id"])

        logger.info(
            "Workflow type created",
            workflow_type_id=workflow_type["id"],
            name=workflow_type["name"],
            prefix=workflow_type["prefix"]
        )
        return workflow_type

    async def get(self, workflow_type_id: str) -> Dict[str, Any]:
        return await self.store.find_by_id(EntityType.WORKFLOW_TYPE, workflow_type_id)

    async def list(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        sort: Optional[SortSpec] = None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> ListResult:
        return await self.store.list(
            EntityType.WORKFLOW_TYPE, filters, sort=sort or [("name", 1)], page=page, limit=limit
        )

    async def update(self, workflow_type_id: str, patch: Mapping[str, Any]) -> Dict[str, Any]:
        changes = {
            k: v for k, v in patch.items()
            if k not in ("workflowTypeId", "totalCases", "isDefault")
        }
        if "prefix" in changes:
            changes["prefix"] = _normalize_prefix(changes["prefix"])

        workflow_type = await self.store.update(EntityType.WORKFLOW_TYPE, workflow_type_id, changes)
        if patch.get("isDefault"):
            workflow_type = await self.set_default(workflow_type_id)
        return workflow_type

    async def delete(self, workflow_type_id: str) -> Dict[str, Any]:
        """
        Delete a workflow type no case uses.

        Raises:
            ConflictError: WORKFLOW_TYPE_IN_USE if cases reference it
        """
        await self.store.find_by_id(EntityType.WORKFLOW_TYPE, workflow_type_id)
        in_use = await self.store.count(EntityType.ONBOARDING_CASE, {"workflowTypeId": workflow_type_id})
        if in_use:
            raise ConflictError(
                f"Workflow type {workflow_type_id} is used by {in_use} cases",
                error_code=ErrorCode.WORKFLOW_TYPE_IN_USE,
                entity_type=EntityType.WORKFLOW_TYPE.value,
                field="id",
                value=workflow_type_id
            )

        deleted = await self.store.delete(EntityType.WORKFLOW_TYPE, workflow_type_id)
        logger.info("Workflow type deleted", workflow_type_id=workflow_type_id)
        return deleted

    async def set_default(self, workflow_type_id: str) -> Dict[str, Any]:
        """Make one workflow type the default and clear the flag on all others."""
        await self.store.find_by_id(EntityType.WORKFLOW_TYPE, workflow_type_id)
        await self.store.update_many(
            EntityType.WORKFLOW_TYPE,
            {"isDefault": True, "id": {"$ne": workflow_type_id}},
            {"isDefault": False}
        )
        workflow_type = await self.store.update(EntityType.WORKFLOW_TYPE, workflow_type_id, {"isDefault": True})
        logger.info("Default workflow type set", workflow_type_id=workflow_type_id)
        return workflow_type
