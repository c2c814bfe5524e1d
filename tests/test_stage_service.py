"""
Unit tests for stage management.

Test Coverage:
- Stage sequencing, singly and in batches
- Batch validation before any write
- Stages created together with their tasks, rolled back on task failure
- Stage completion stamping
"""

import pytest

from onboardflow.app.core.exceptions import ConflictError, ErrorCode, NotFoundError, ValidationError
from onboardflow.app.repositories.mongodb.entity_store import EntityType

from conftest import CREATOR


class TestCreateStages:
    """Test suite for stage creation."""

    async def test_bulk_on_empty_case(self, case, stage_service):
        """Test that bulk stages on an empty case get sequences 1..n in input order."""
        created = await stage_service.create_multiple_stages(case["id"], [{"name": "A"}, {"name": "B"}], CREATOR)

        assert [(s["name"], s["sequence"]) for s in created] == [("A", 1), ("B", 2)]
        assert {s["status"] for s in created} == {"Not Started"}

    async def test_bulk_continues_after_existing(self, case, stage_service):
        """Test that a batch continues after the highest sequence."""
        await stage_service.create_stage({"onboardingCaseId": case["id"], "name": "First"}, CREATOR)

        created = await stage_service.create_multiple_stages(case["id"], [{"name": "A"}, {"name": "B"}], CREATOR)

        assert [s["sequence"] for s in created] == [2, 3]

    async def test_bulk_rejects_nameless_stage(self, case, stage_service, store):
        """Test that a nameless stage rejects the whole batch."""
        with pytest.raises(ValidationError) as exc_info:
            await stage_service.create_multiple_stages(case["id"], [{"name": "A"}, {}], CREATOR)

        assert exc_info.value.error_code == ErrorCode.MISSING_REQUIRED_FIELD
        assert await store.count(EntityType.STAGE) == 0

    async def test_bulk_unknown_case(self, stage_service):
        """Test that stages cannot be added to an unknown case."""
        with pytest.raises(NotFoundError):
            await stage_service.create_multiple_stages("missing", [{"name": "A"}], CREATOR)

    async def test_create_requires_case(self, stage_service):
        """Test that a single stage needs its case."""
        with pytest.raises(ValidationError):
            await stage_service.create_stage({"name": "Loose"}, CREATOR)


class TestStagesWithTasks:
    """Test suite for stages created with their tasks."""

    async def test_tasks_attached_per_stage(self, case, stage_service):
        """Test that each stage gets its own tasks sequenced from 1."""
        created = await stage_service.create_stages_with_tasks(case["id"], [
            {"name": "A", "tasks": [{"name": "a1"}, {"name": "a2"}]},
            {"name": "B", "tasks": [{"name": "b1"}]},
            {"name": "C"},
        ], CREATOR)

        assert [s["name"] for s in created] == ["A", "B", "C"]
        assert [(t["name"], t["sequence"]) for t in created[0]["tasks"]] == [("a1", 1), ("a2", 2)]
        assert [t["stageId"] for t in created[1]["tasks"]] == [created[1]["id"]]
        assert created[2]["tasks"] == []
        assert "tasks" not in await stage_service.get_stage(created[0]["id"])

    async def test_nameless_task_rejects_everything(self, case, stage_service, store):
        """Test that one invalid task prevents all stages and tasks."""
        with pytest.raises(ValidationError) as exc_info:
            await stage_service.create_stages_with_tasks(case["id"], [
                {"name": "A", "tasks": [{"name": "ok"}, {"name": ""}]},
            ], CREATOR)

        assert exc_info.value.details["field_errors"][0]["taskIndex"] == 1
        assert await store.count(EntityType.STAGE) == 0
        assert await store.count(EntityType.TASK) == 0

    async def test_stages_removed_when_tasks_fail(self, case, stage_service, store):
        """Test that stages are deleted again when the task insert fails."""
        await store.create(EntityType.TASK, {"taskId": "DUP", "name": "existing", "onboardingCaseId": case["id"]})

        with pytest.raises(ConflictError):
            await stage_service.create_stages_with_tasks(case["id"], [
                {"name": "A", "tasks": [{"name": "clash", "taskId": "DUP"}]},
            ], CREATOR)

        assert await store.count(EntityType.STAGE) == 0
        assert await store.count(EntityType.TASK) == 1

    async def test_get_stage_with_tasks(self, case, stage_service):
        """Test that includeTasks loads the stage's tasks in sequence order."""
        created = await stage_service.create_stages_with_tasks(
            case["id"], [{"name": "A", "tasks": [{"name": "x"}, {"name": "y"}]}], CREATOR
        )

        stage = await stage_service.get_stage(created[0]["id"], include_tasks=True)

        assert [t["name"] for t in stage["tasks"]] == ["x", "y"]


class TestUpdateStage:
    """Test suite for stage updates."""

    async def test_completion_stamp_kept_on_reopen(self, case, stage_service):
        """Test that completing a stage stamps completedDate and keeps it."""
        stage = await stage_service.create_stage({"onboardingCaseId": case["id"], "name": "S"}, CREATOR)

        completed = await stage_service.update_stage(stage["id"], {"status": "Completed"}, CREATOR)
        reopened = await stage_service.update_stage(stage["id"], {"status": "In Progress"}, CREATOR)

        assert completed["completedDate"] is not None
        assert reopened["completedDate"] == completed["completedDate"]

    async def test_case_cannot_change(self, case, stage_service):
        """Test that a stage stays in its case."""
        stage = await stage_service.create_stage({"onboardingCaseId": case["id"], "name": "S"}, CREATOR)

        updated = await stage_service.update_stage(stage["id"], {"onboardingCaseId": "other", "name": "T"}, CREATOR)

        assert updated["onboardingCaseId"] == case["id"]
        assert updated["name"] == "T"

    async def test_invalid_status(self, case, stage_service):
        """Test that stages reject task-only statuses."""
        stage = await stage_service.create_stage({"onboardingCaseId": case["id"], "name": "S"}, CREATOR)

        with pytest.raises(ValidationError):
            await stage_service.update_stage(stage["id"], {"status": "Cancelled"}, CREATOR)
