"""
Unit tests for guides, guide steps and case links.

Test Coverage:
- Step reference validation
- Step counts kept on the guide
- Linking guides to cases and link progress
- Removing links
"""

import pytest

from onboardflow.app.core.exceptions import ConflictError, ErrorCode, NotFoundError, ValidationError
from onboardflow.app.models.domain.guide import GeneralRef, StageRef, TaskRef, build_step_reference
from onboardflow.app.repositories.mongodb.entity_store import EntityType

from conftest import CREATOR


class TestStepReference:
    """Test suite for the step reference union."""

    def test_missing_type_is_general(self):
        """Test that a step without a reference type is general."""
        assert build_step_reference(None) == GeneralRef()

    def test_general_ignores_ref(self):
        """Test that a general step never carries a target."""
        assert build_step_reference("General", "stage-1").target_id is None

    def test_stage_and_task_variants(self):
        """Test the Stage and Task variants keep their target."""
        assert build_step_reference("Stage", "s1") == StageRef(stage_id="s1")
        assert build_step_reference("Task", "t1") == TaskRef(task_id="t1")

    def test_unknown_type(self):
        """Test that an unknown reference type is rejected."""
        with pytest.raises(ValidationError) as exc_info:
            build_step_reference("Case", "c1")

        assert exc_info.value.error_code == ErrorCode.INVALID_VALUE

    def test_stage_without_ref(self):
        """Test that Stage steps need a target id."""
        with pytest.raises(ValidationError) as exc_info:
            build_step_reference("Stage", None)

        assert exc_info.value.error_code == ErrorCode.MISSING_REQUIRED_FIELD


class TestGuideSteps:
    """Test suite for guide step management."""

    async def test_step_defaults_and_count(self, guide_service, store):
        """Test step defaults and the guide's stepCount."""
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)

        first = await guide_service.create_step({"guideId": guide["id"], "title": "one"})
        second = await guide_service.create_step({"guideId": guide["id"], "title": "two"})

        assert [first["sequence"], second["sequence"]] == [1, 2]
        assert first["referenceType"] == "General"
        assert first["stageOrTaskRef"] is None
        assert first["hintType"] == "tip"
        assert (await store.find_by_id(EntityType.WORKFLOW_GUIDE, guide["id"]))["stepCount"] == 2

    async def test_delete_step_decrements_count(self, guide_service, store):
        """Test that deleting a step lowers stepCount."""
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)
        step = await guide_service.create_step({"guideId": guide["id"], "title": "one"})

        await guide_service.delete_step(step["id"])

        assert (await store.find_by_id(EntityType.WORKFLOW_GUIDE, guide["id"]))["stepCount"] == 0

    async def test_stage_step_needs_existing_stage(self, guide_service):
        """Test that a Stage step must reference a stored stage."""
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)

        with pytest.raises(NotFoundError):
            await guide_service.create_step({
                "guideId": guide["id"], "title": "x", "referenceType": "Stage", "stageOrTaskRef": "missing"
            })

    async def test_task_step_references_task(self, case, guide_service, make_task):
        """Test that a Task step stores its task id."""
        task = await make_task(case["id"])
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)

        step = await guide_service.create_step({
            "guideId": guide["id"], "title": "x", "referenceType": "Task", "stageOrTaskRef": task["id"]
        })

        assert step["referenceType"] == "Task"
        assert step["stageOrTaskRef"] == task["id"]

    async def test_unknown_hint_type(self, guide_service):
        """Test that an unknown hint type is rejected."""
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)

        with pytest.raises(ValidationError):
            await guide_service.create_step({"guideId": guide["id"], "title": "x", "hintType": "rumour"})

    async def test_step_for_unknown_guide(self, guide_service):
        """Test that steps need an existing guide."""
        with pytest.raises(NotFoundError):
            await guide_service.create_step({"guideId": "missing", "title": "x"})

    async def test_get_guide_lists_active_steps(self, guide_service, store):
        """Test that a fetched guide carries only its active steps."""
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)
        await guide_service.create_step({"guideId": guide["id"], "title": "one"})
        hidden = await guide_service.create_step({"guideId": guide["id"], "title": "two"})
        await store.update(EntityType.GUIDE_STEP, hidden["id"], {"isActive": False})

        fetched = await guide_service.get_guide(guide["id"])

        assert [s["title"] for s in fetched["steps"]] == ["one"]


class TestCaseLinks:
    """Test suite for guide links on cases."""

    async def test_link_counts_and_case_list(self, case, guide_service, store):
        """Test link defaults, usage count and the case's linkedGuides."""
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)
        await guide_service.create_step({"guideId": guide["id"], "title": "one"})
        await guide_service.create_step({"guideId": guide["id"], "title": "two"})

        link = await guide_service.link_guide_to_case(case["id"], guide["id"], CREATOR)

        assert link["status"] == "Assigned"
        assert link["priority"] == "Medium"
        assert link["totalSteps"] == 2
        assert (await store.find_by_id(EntityType.WORKFLOW_GUIDE, guide["id"]))["usageCount"] == 1
        assert (await store.find_by_id(EntityType.ONBOARDING_CASE, case["id"]))["linkedGuides"] == [guide["id"]]

    async def test_link_unknown_guide(self, case, guide_service):
        """Test that linking an unknown guide raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await guide_service.link_guide_to_case(case["id"], "missing", CREATOR)

    async def test_second_active_link_conflicts(self, case, guide_service, hint_service, store):
        """Test that a guide is linked to a case at most once while the link is active."""
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)
        await guide_service.create_step({"guideId": guide["id"], "title": "always", "referenceType": "General"})
        await guide_service.link_guide_to_case(case["id"], guide["id"], CREATOR)

        with pytest.raises(ConflictError) as exc_info:
            await guide_service.link_guide_to_case(case["id"], guide["id"], CREATOR)

        assert exc_info.value.error_code == ErrorCode.GUIDE_ALREADY_LINKED
        assert (await store.find_by_id(EntityType.WORKFLOW_GUIDE, guide["id"]))["usageCount"] == 1
        assert len(await hint_service.resolve_stage_hints(case["id"], "any-stage")) == 1

    async def test_relink_after_removal(self, case, guide_service):
        """Test that a removed link does not block linking the guide again."""
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)
        link = await guide_service.link_guide_to_case(case["id"], guide["id"], CREATOR)
        await guide_service.remove_link(link["id"], CREATOR)

        relinked = await guide_service.link_guide_to_case(case["id"], guide["id"], CREATOR)

        assert relinked["status"] == "Assigned"

    async def test_progress_moves_to_completed(self, case, guide_service):
        """Test In Use on partial progress and Completed once all steps are done."""
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)
        await guide_service.create_step({"guideId": guide["id"], "title": "one"})
        await guide_service.create_step({"guideId": guide["id"], "title": "two"})
        link = await guide_service.link_guide_to_case(case["id"], guide["id"], CREATOR)

        partial = await guide_service.update_link_progress(link["id"], steps_completed=1, time_spent=5)
        done = await guide_service.update_link_progress(link["id"], steps_completed=2, time_spent=3)

        assert partial["status"] == "In Use"
        assert done["status"] == "Completed"
        assert done["completedDate"] is not None
        assert done["timeSpent"] == 8
        assert done["viewCount"] == 2

    async def test_rating_out_of_range(self, case, guide_service):
        """Test that ratings must be 1 to 5."""
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)
        link = await guide_service.link_guide_to_case(case["id"], guide["id"], CREATOR)

        with pytest.raises(ValidationError):
            await guide_service.update_link_progress(link["id"], rating=6)

    async def test_remove_link(self, case, guide_service, store):
        """Test that removal marks the link and clears the case's linkedGuides entry."""
        guide = await guide_service.create_guide({"title": "Guide"}, CREATOR)
        link = await guide_service.link_guide_to_case(case["id"], guide["id"], CREATOR)

        removed = await guide_service.remove_link(link["id"], CREATOR, reason="obsolete")

        assert removed["status"] == "Removed"
        assert removed["removalReason"] == "obsolete"
        assert (await store.find_by_id(EntityType.ONBOARDING_CASE, case["id"]))["linkedGuides"] == []

    async def test_list_case_links_by_status(self, case, guide_service):
        """Test filtering a case's links by status."""
        first = await guide_service.create_guide({"title": "One"}, CREATOR)
        second = await guide_service.create_guide({"title": "Two"}, CREATOR)
        await guide_service.link_guide_to_case(case["id"], first["id"], CREATOR)
        link = await guide_service.link_guide_to_case(case["id"], second["id"], CREATOR)
        await guide_service.remove_link(link["id"], CREATOR)

        assigned = await guide_service.list_case_links(case["id"], status="Assigned")
        everything = await guide_service.list_case_links(case["id"])

        assert [l["guideId"] for l in assigned] == [first["id"]]
        assert len(everything) == 2
