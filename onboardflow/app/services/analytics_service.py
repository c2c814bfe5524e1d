"""
Analytics Service - Reporting Layer

Read-only aggregates over cases, tasks and guide links:
- Onboarding summary with completion rate and average duration
- Per-user task performance
- Guide effectiveness across all case assignments
- A dashboard summary combining the above
"""

import math
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from onboardflow.app.models.domain.workflow import CaseStatus, LinkStatus, TaskStatus
from onboardflow.app.repositories.mongodb.entity_store import EntityStore, EntityType
from onboardflow.app.utils.logging import get_logger, performance_context

logger = get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0


def _created_between(start_date: Optional[datetime], end_date: Optional[datetime]) -> Dict[str, Any]:
    if not start_date and not end_date:
        return {}
    return {"createdAt": {"$gte": start_date, "$lte": end_date}}


def _distribution(values: Iterable[Any]) -> Dict[str, int]:
    """Value counts, most common first."""
    return dict(Counter(v for v in values if v is not None).most_common())


def average_completion_days(cases: Iterable[Mapping[str, Any]]) -> int:
    """
    Mean number of started days from start to actual completion.

    Partial days count as whole days; cases missing either date are skipped.
    """
    days = [
        math.ceil((case["actualCompletionDate"] - case["startDate"]).total_seconds() / SECONDS_PER_DAY)
        for case in cases
        if case.get("actualCompletionDate") and case.get("startDate")
    ]
    if not days:
        return 0
    return round(sum(days) / len(days))


class AnalyticsService:
    """Aggregate reporting over the workflow collections."""

    def __init__(self, store: Optional[EntityStore] = None):
        self.store = store or EntityStore()

    async def get_onboarding_analytics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        champion_id: Optional[str] = None,
        client_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Summarize onboarding cases created in a period.

        Returns:
            {summary: {totalCases, completedCases, inProgressCases,
            completionRate, averageCompletionTime}, distributions: {byStatus, byPriority}}
        """
        with performance_context("analytics_onboarding"):
            query = {
                **_created_between(start_date, end_date),
                "assignedChampion": champion_id,
                "clientId": client_id,
            }
            cases = await self.store.find(EntityType.ONBOARDING_CASE, query)

            completed = [c for c in cases if c.get("status") == CaseStatus.COMPLETED.value]
            in_progress = sum(1 for c in cases if c.get("status") == CaseStatus.IN_PROGRESS.value)

            return {
                "summary": {
                    "totalCases": len(cases),
                    "completedCases": len(completed),
                    "inProgressCases": in_progress,
                    "completionRate": _percent(len(completed), len(cases)),
                    "averageCompletionTime": average_completion_days(completed),
                },
                "distributions": {
                    "byStatus": _distribution(c.get("status") for c in cases),
                    "byPriority": _distribution(c.get("priority") for c in cases),
                },
            }

    async def get_user_performance(
        self,
        user_id: str,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Task throughput of one user and the cases they champion."""
        date_query = _created_between(start_date, end_date)
        tasks = await self.store.find(EntityType.TASK, {"assignedTo": user_id, **date_query})
        championed = await self.store.count(
            EntityType.ONBOARDING_CASE, {"assignedChampion": user_id, **date_query}
        )

        completed = [t for t in tasks if t.get("status") == TaskStatus.COMPLETED.value]
        durations = [t["actualDuration"] for t in completed if t.get("actualDuration")]

        return {
            "userId": user_id,
            "metrics": {
                "assignedTasks": len(tasks),
                "completedTasks": len(completed),
                "taskCompletionRate": _percent(len(completed), len(tasks)),
                "championedCases": championed,
                "averageTaskCompletion": round(sum(durations) / len(durations)) if durations else 0,
            },
        }

    async def get_guide_analytics(self, guide_filters: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        """
        Effectiveness of each guide across its case assignments.

        Returns:
            One {guideId, title, metrics} entry per matching guide
        """
        with performance_context("analytics_guides"):
            guides = await self.store.find(EntityType.WORKFLOW_GUIDE, guide_filters, sort=[("title", 1)])
            if not guides:
                return []

            links = await self.store.find(
                EntityType.CASE_GUIDE_LINK, {"guideId": {"$in": [g["id"] for g in guides]}}
            )
            by_guide: Dict[str, List[Dict[str, Any]]] = {}
            for link in links:
                by_guide.setdefault(link["guideId"], []).append(link)

            analytics = []
            for guide in guides:
                guide_links = by_guide.get(guide["id"], [])
                completed = sum(1 for link in guide_links if link.get("status") == LinkStatus.COMPLETED.value)
                ratings = [link["userRating"] for link in guide_links if link.get("userRating") is not None]
                steps = [link.get("stepsCompleted") or 0 for link in guide_links]

                analytics.append({
                    "guideId": guide["id"],
                    "title": guide.get("title"),
                    "metrics": {
                        "totalAssignments": len(guide_links),
                        "completedAssignments": completed,
                        "completionRate": _percent(completed, len(guide_links)),
                        "averageRating": round(sum(ratings) / len(ratings), 2) if ratings else 0,
                        "totalViews": sum(link.get("viewCount") or 0 for link in guide_links),
                        "totalTimeSpent": sum(link.get("timeSpent") or 0 for link in guide_links),
                        "avgStepsCompleted": round(sum(steps) / len(steps), 2) if steps else 0,
                    },
                })

            logger.debug("Guide analytics computed", guides=len(analytics), links=len(links))
            return analytics

    async def get_dashboard_summary(self, user_id: Optional[str] = None) -> Dict[str, Any]:
        summary: Dict[str, Any] = {"onboarding": await self.get_onboarding_analytics()}
        if user_id:
            summary["userPerformance"] = await self.get_user_performance(user_id)
        return summary
