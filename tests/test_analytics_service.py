"""
Unit tests for reporting aggregates.
"""

from datetime import datetime

from onboardflow.app.repositories.mongodb.entity_store import EntityType
from onboardflow.app.services.analytics_service import average_completion_days

from conftest import CHAMPION, CREATOR


class TestAverageCompletionDays:
    """Test suite for the completion time helper."""

    def test_partial_days_round_up(self):
        """Test that a started day counts as a whole day."""
        cases = [
            {"startDate": datetime(2024, 1, 1), "actualCompletionDate": datetime(2024, 1, 3, 1)},
            {"startDate": datetime(2024, 1, 1), "actualCompletionDate": datetime(2024, 1, 2)},
            {"startDate": datetime(2024, 1, 1), "actualCompletionDate": None},
        ]

        assert average_completion_days(cases) == 2

    def test_no_completed_cases(self):
        """Test that nothing to average yields zero."""
        assert average_completion_days([]) == 0


class TestAnalytics:
    """Test suite for the analytics service."""

    async def test_onboarding_summary(self, case, case_service, analytics_service):
        """Test totals, completion rate and distributions."""
        other = await case_service.create_case(
            {"clientId": "client-2", "assignedChampion": CHAMPION, "priority": "High"}, created_by=CREATOR
        )
        await case_service.update_case_status(other["id"], "Completed", CHAMPION)

        analytics = await analytics_service.get_onboarding_analytics()

        assert analytics["summary"]["totalCases"] == 2
        assert analytics["summary"]["completedCases"] == 1
        assert analytics["summary"]["completionRate"] == 50
        assert analytics["distributions"]["byPriority"] == {"Medium": 1, "High": 1}

    async def test_filter_by_client(self, case, analytics_service):
        """Test that client filters narrow the summary."""
        analytics = await analytics_service.get_onboarding_analytics(client_id="nobody")

        assert analytics["summary"]["totalCases"] == 0
        assert analytics["summary"]["completionRate"] == 0

    async def test_user_performance(self, case, analytics_service, make_task):
        """Test a user's task throughput and championed cases."""
        await make_task(case["id"], "a", status="Completed", assigned_to=[CHAMPION], actualDuration=4)
        await make_task(case["id"], "b", assigned_to=[CHAMPION])

        performance = await analytics_service.get_user_performance(CHAMPION)

        assert performance["metrics"] == {
            "assignedTasks": 2,
            "completedTasks": 1,
            "taskCompletionRate": 50,
            "championedCases": 1,
            "averageTaskCompletion": 4,
        }

    async def test_guide_analytics(self, case, guide_service, analytics_service):
        """Test per-guide assignment metrics."""
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)
        await guide_service.create_step({"guideId": guide["id"], "title": "only"})
        link = await guide_service.link_guide_to_case(case["id"], guide["id"], CREATOR)
        await guide_service.update_link_progress(link["id"], steps_completed=1, rating=4)
        await guide_service.create_guide({"title": "Unused"}, CREATOR)

        analytics = await analytics_service.get_guide_analytics()

        assert [g["title"] for g in analytics] == ["Guide", "Unused"]
        metrics = analytics[0]["metrics"]
        assert metrics["totalAssignments"] == 1
        assert metrics["completionRate"] == 100
        assert metrics["averageRating"] == 4
        assert analytics[1]["metrics"]["totalAssignments"] == 0

    async def test_dashboard(self, case, analytics_service):
        """Test that the dashboard includes user performance when asked."""
        summary = await analytics_service.get_dashboard_summary(CHAMPION)

        assert summary["onboarding"]["summary"]["totalCases"] == 1
        assert summary["userPerformance"]["userId"] == CHAMPION

    async def test_empty_guide_analytics(self, store, analytics_service):
        """Test that no guides yield no analytics."""
        assert await store.count(EntityType.WORKFLOW_GUIDE) == 0
        assert await analytics_service.get_guide_analytics() == []
