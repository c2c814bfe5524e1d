"""
Audit Service - Business Logic Layer

This module records and reports on the append-only audit trail:
- Fire-and-forget recording of workflow actions
- Risk level and compliance flag derivation
- Filtered audit log listing with date ranges
- Review workflow for flagged entries
- Security alerts and compliance reporting
"""

from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from onboardflow.app.models.domain.workflow import (
    AuditAction,
    RiskLevel,
    generate_business_id,
    utcnow
)
from onboardflow.app.repositories.mongodb.entity_store import (
    EntityStore,
    EntityType,
    ListResult,
    SortSpec
)
from onboardflow.app.utils.logging import get_logger, performance_context

logger = get_logger(__name__)

# Regulations that apply to changes of each entity type
COMPLIANCE_FLAGS = {
    EntityType.CLIENT.value: ["HIPAA", "GDPR"],
    EntityType.ONBOARDING_CASE.value: ["HIPAA"],
    EntityType.DOCUMENT.value: ["HIPAA"],
    EntityType.AUDIT_LOG.value: ["SOX"],
    EntityType.TEMPLATE.value: ["SOX"],
    EntityType.USER.value: ["GDPR"],
}

HIGH_RISK_LEVELS = [RiskLevel.HIGH.value, RiskLevel.CRITICAL.value]


def derive_risk_level(action: str) -> str:
    """Deletions are Medium risk, everything else Low."""
    if action == AuditAction.DELETE.value:
        return RiskLevel.MEDIUM.value
    return RiskLevel.LOW.value


def derive_compliance_flags(entity_type: str) -> List[str]:
    return list(COMPLIANCE_FLAGS.get(entity_type, []))


def field_changes(before: Mapping[str, Any], patch: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """Field-level change list {field, oldValue, newValue} for the fields a patch alters."""
    return [
        {"field": name, "oldValue": before.get(name), "newValue": value}
        for name, value in patch.items()
        if before.get(name) != value
    ]


class AuditService:
    """
    Records workflow actions in the audit log.

    ``record`` never raises: a failure to audit is logged and the caller's
    operation carries on.
    """

    def __init__(self, store: Optional[EntityStore] = None):
        self.store = store or EntityStore()

    def build_entry(self, entry: Mapping[str, Any]) -> Dict[str, Any]:
        """Complete an audit entry with its id and derived fields."""
        action = entry.get("action", AuditAction.UPDATE.value)
        action = getattr(action, "value", action)
        entity_type = entry.get("entityType")
        entity_type = getattr(entity_type, "value", entity_type)

        document = dict(entry)
        document["action"] = action
        document["entityType"] = entity_type
        document.setdefault("logId", generate_business_id(f"AUDIT-{action}"))
        document.setdefault("riskLevel", derive_risk_level(action))
        document.setdefault("complianceFlags", derive_compliance_flags(entity_type))
        document.setdefault("category", "Business")
        document.setdefault("isReviewed", False)
        return document

    async def record(self, entry: Mapping[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Append one audit entry.

        Args:
            entry: {action, entityType, entityId, userId, changes, details, description, ...}

        Returns:
            The stored entry, or None if it could not be written
        """
        try:
            stored = await self.store.create(EntityType.AUDIT_LOG, self.build_entry(entry))
        except Exception as e:
            logger.warning(
                "Failed to record audit entry",
                action=entry.get("action"),
                entity_type=entry.get("entityType"),
                entity_id=entry.get("entityId"),
                error=str(e)
            )
            return None

        logger.debug(
            "Audit entry recorded",
            log_id=stored["logId"],
            action=stored["action"],
            entity_type=stored["entityType"]
        )
        return stored

    async def record_many(self, entries: Sequence[Mapping[str, Any]]) -> List[Dict[str, Any]]:
        """Append a batch of audit entries; returns [] if the batch could not be written."""
        if not entries:
            return []
        try:
            return await self.store.insert_many(
                EntityType.AUDIT_LOG,
                [self.build_entry(entry) for entry in entries]
            )
        except Exception as e:
            logger.warning("Failed to record audit entries", count=len(entries), error=str(e))
            return []

    async def list_logs(
        self,
        filters: Optional[Mapping[str, Any]] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        sort: Optional[SortSpec] = None,
        page: int = 1,
        limit: Optional[int] = None
    ) -> ListResult:
        """List audit entries, optionally restricted to a createdAt range."""
        query = dict(filters or {})
        if start_date or end_date:
            query["createdAt"] = {"$gte": start_date, "$lte": end_date}
        return await self.store.list(
            EntityType.AUDIT_LOG, query, sort=sort, page=page, limit=limit
        )

    async def get_log(self, log_id: str) -> Dict[str, Any]:
        return await self.store.find_by_id(EntityType.AUDIT_LOG, log_id, expand=["userId"])

    async def mark_reviewed(
        self,
        log_id: str,
        reviewed_by: str,
        notes: Optional[str] = None
    ) -> Dict[str, Any]:
        """Mark an entry as reviewed; the only mutation audit entries allow."""
        entry = await self.store.update(
            EntityType.AUDIT_LOG,
            log_id,
            {
                "isReviewed": True,
                "reviewedBy": reviewed_by,
                "reviewedAt": utcnow(),
                "reviewNotes": notes,
            }
        )
        logger.info("Audit entry reviewed", log_id=log_id, reviewed_by=reviewed_by)
        return entry

    async def get_security_alerts(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Unreviewed High and Critical entries, newest first."""
        return await self.store.find(
            EntityType.AUDIT_LOG,
            {"riskLevel": {"$in": HIGH_RISK_LEVELS}, "isReviewed": False},
            sort=[("createdAt", -1)],
            limit=limit
        )

    async def get_compliance_report(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Summarize the audit trail over a period.

        Returns:
            Entry total plus risk, action and per-user distributions
        """
        with performance_context("audit_compliance_report"):
            query: Dict[str, Any] = {}
            if start_date or end_date:
                query["createdAt"] = {"$gte": start_date, "$lte": end_date}
            entries = await self.store.find(EntityType.AUDIT_LOG, query)

            risk = Counter(entry.get("riskLevel") for entry in entries)
            actions = Counter(entry.get("action") for entry in entries)
            users = Counter(entry.get("userId") for entry in entries if entry.get("userId"))

            return {
                "period": {"startDate": start_date, "endDate": end_date},
                "totalEntries": len(entries),
                "riskDistribution": dict(risk),
                "actionDistribution": dict(actions),
                "userActivity": [
                    {"userId": user_id, "count": count}
                    for user_id, count in users.most_common()
                ],
                "unreviewedHighRisk": sum(
                    1 for entry in entries
                    if entry.get("riskLevel") in HIGH_RISK_LEVELS and not entry.get("isReviewed")
                ),
            }
