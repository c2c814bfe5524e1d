"""
Unit tests for templates.

Test Coverage:
- Running usage statistics
- Template lifecycle: create, clone, publish
- Per-type defaults and recommendations
"""

import pytest

from onboardflow.app.core.exceptions import NotFoundError, ValidationError
from onboardflow.app.models.domain.template import (
    round_half_up,
    running_average,
    running_success_rate
)
from onboardflow.app.repositories.mongodb.entity_store import EntityType

from conftest import CREATOR


class TestRunningStatistics:
    """Test suite for the statistics folding functions."""

    def test_first_sample_is_the_average(self):
        """Test that without history the sample becomes the average."""
        assert running_average(None, 0, 12) == 12

    def test_average_folds_sample(self):
        """Test a rounded running average."""
        assert running_average(10, 3, 20) == 13

    def test_success_rate_from_nothing(self):
        """Test the first outcome sets the rate to 0 or 100."""
        assert running_success_rate(None, 0, True) == 100
        assert running_success_rate(0, 0, False) == 0

    def test_success_rate_folds_outcome(self):
        """Test that one failure after two successes gives 67 percent."""
        assert running_success_rate(100, 2, False) == 67

    def test_average_rounds_halves_up(self):
        """Test that an average landing on .5 rounds up."""
        assert running_average(2, 1, 3) == 3
        assert running_average(4, 1, 7) == 6

    def test_success_rate_rounds_halves_up(self):
        """Test that one success in eight gives 13 percent."""
        assert running_success_rate(0, 7, True) == 13

    @pytest.mark.parametrize("value,expected", [(2.5, 3), (3.5, 4), (2.4, 2), (0.5, 1), (-2.5, -2)])
    def test_round_half_up(self, value, expected):
        """Test half-up rounding on positive and negative halves."""
        assert round_half_up(value) == expected


class TestTemplateLifecycle:
    """Test suite for template creation, cloning and publishing."""

    async def test_create_defaults(self, template_service):
        """Test that new templates start as non-default drafts."""
        template = await template_service.create({"name": "Standard", "type": "OnboardingCase"}, CREATOR)

        assert template["status"] == "Draft"
        assert template["isDefault"] is False
        assert template["usageCount"] == 0
        assert template["industryType"] == "General"
        assert template["templateId"].startswith("TPL-")

    async def test_create_unknown_type(self, template_service):
        """Test that the template type must be known."""
        with pytest.raises(ValidationError):
            await template_service.create({"name": "X", "type": "Invoice"}, CREATOR)

    async def test_clone(self, template_service):
        """Test that a clone is a fresh draft pointing at its parent."""
        original = await template_service.create(
            {"name": "Standard", "type": "Stage", "description": "base"}, CREATOR
        )
        await template_service.publish(original["id"], approved_by="admin")
        await template_service.update_usage_stats(original["id"], success=True, completion_time=10)

        clone = await template_service.clone(original["id"], created_by="someone")

        assert clone["id"] != original["id"]
        assert clone["templateId"].startswith(f"{original['templateId']}_copy_")
        assert clone["name"] == "Standard (Copy)"
        assert clone["description"] == "Copy of base"
        assert clone["parentTemplateId"] == original["id"]
        assert clone["status"] == "Draft"
        assert clone["usageCount"] == 0
        assert clone.get("approvedBy") is None

    async def test_clone_unknown(self, template_service):
        """Test that cloning an unknown template raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await template_service.clone("missing")

    async def test_publish(self, template_service, store):
        """Test that publishing stamps the approver and is audited."""
        template = await template_service.create({"name": "Standard", "type": "Task"}, CREATOR)

        published = await template_service.publish(template["id"], approved_by="admin")

        assert published["status"] == "Published"
        assert published["approvedBy"] == "admin"
        assert published["approvalDate"] is not None
        entries = await store.find(EntityType.AUDIT_LOG, {"entityId": template["id"], "action": "PUBLISH"})
        assert len(entries) == 1

    async def test_update_cannot_touch_statistics(self, template_service):
        """Test that usage statistics are not patchable."""
        template = await template_service.create({"name": "Standard", "type": "Task"}, CREATOR)

        updated = await template_service.update(template["id"], {"usageCount": 99, "name": "Renamed"})

        assert updated["usageCount"] == 0
        assert updated["name"] == "Renamed"


class TestDefaultsAndRecommendations:
    """Test suite for default templates and recommendations."""

    async def test_one_default_per_type(self, template_service, store):
        """Test that a new default clears the old one of the same type only."""
        first = await template_service.create({"name": "A", "type": "Stage"}, CREATOR)
        second = await template_service.create({"name": "B", "type": "Stage"}, CREATOR)
        other_type = await template_service.create({"name": "C", "type": "Task"}, CREATOR)
        await template_service.set_as_default(first["id"])
        await template_service.set_as_default(other_type["id"])

        await template_service.set_as_default(second["id"])

        defaults = await store.find(EntityType.TEMPLATE, {"isDefault": True})
        assert {t["name"] for t in defaults} == {"B", "C"}

    async def test_recommendations_match_profile_with_fallbacks(self, template_service, store):
        """Test published-only matching, generic fallbacks and ordering."""
        fintech = await template_service.create({"name": "Fintech", "type": "OnboardingCase", "industryType": "Finance"})
        general = await template_service.create({"name": "Generic", "type": "OnboardingCase"})
        retail = await template_service.create({"name": "Retail", "type": "OnboardingCase", "industryType": "Retail"})
        await template_service.create({"name": "Draft", "type": "OnboardingCase", "industryType": "Finance"})
        for template in (fintech, general, retail):
            await template_service.publish(template["id"])
        await store.update(EntityType.TEMPLATE, general["id"], {"successRate": 90})

        recommended = await template_service.get_recommendations(industry_type="Finance")

        assert [t["name"] for t in recommended] == ["Generic", "Fintech"]

    async def test_usage_stats(self, template_service):
        """Test that usage, success rate and completion time accumulate."""
        template = await template_service.create({"name": "A", "type": "Task"})

        await template_service.update_usage_stats(template["id"], success=True, completion_time=10)
        updated = await template_service.update_usage_stats(template["id"], success=False, completion_time=20)

        assert updated["usageCount"] == 2
        assert updated["successRate"] == 50
        assert updated["averageCompletionTime"] == 15
