"""
Unit tests for the case workflow orchestrator.

Test Coverage:
- Case creation with workflow-type prefixes and defaults
- Status changes, completion stamping and stakeholder notifications
- Team assignment as a set
- Progress reports and reminders
"""

from datetime import datetime

import pytest

from onboardflow.app.core.exceptions import NotFoundError, ValidationError
from onboardflow.app.repositories.mongodb.entity_store import EntityType
from onboardflow.app.services.case_service import CaseService

from conftest import CHAMPION, CREATOR


class StaticWorkflowTypeProvider:
    def __init__(self, workflow_type):
        self.workflow_type = workflow_type

    async def get_default(self):
        return self.workflow_type


class TestCreateCase:
    """Test suite for case creation."""

    async def test_defaults(self, case):
        """Test the defaults applied to a minimal case."""
        assert case["caseId"].startswith("OB-")
        assert case["status"] == "Not Started"
        assert case["priority"] == "Medium"
        assert case["progress"] == 0
        assert case["assignedTeam"] == []
        assert case["linkedGuides"] == []
        assert case["createdBy"] == CREATOR
        assert case["workflowTypeId"] is None

    async def test_missing_required_fields(self, case_service):
        """Test that clientId and assignedChampion are required."""
        with pytest.raises(ValidationError) as exc_info:
            await case_service.create_case({"clientId": "c1"}, created_by=CREATOR)

        fields = [e["field"] for e in exc_info.value.details["field_errors"]]
        assert fields == ["assignedChampion"]

    async def test_invalid_priority(self, case_service):
        """Test that an unknown priority is rejected."""
        with pytest.raises(ValidationError):
            await case_service.create_case(
                {"clientId": "c1", "assignedChampion": CHAMPION, "priority": "Urgent"},
                created_by=CREATOR
            )

    async def test_progress_out_of_range(self, case_service):
        """Test that progress must be a percentage."""
        with pytest.raises(ValidationError):
            await case_service.create_case(
                {"clientId": "c1", "assignedChampion": CHAMPION, "progress": 150},
                created_by=CREATOR
            )

    async def test_named_workflow_type_prefix(self, case_service, workflow_type_service, store):
        """Test that the named workflow type supplies the prefix and counts the case."""
        workflow_type = await workflow_type_service.create({"name": "Enterprise", "prefix": "ent"})

        case = await case_service.create_case(
            {"clientId": "c1", "assignedChampion": CHAMPION, "workflowTypeId": workflow_type["id"]},
            created_by=CREATOR
        )

        assert case["caseId"].startswith("ENT-")
        assert case["workflowTypeId"] == workflow_type["id"]
        refreshed = await store.find_by_id(EntityType.WORKFLOW_TYPE, workflow_type["id"])
        assert refreshed["totalCases"] == 1

    async def test_default_workflow_type_from_provider(self, store, audit_service, notification_service):
        """Test that an injected provider supplies the default workflow type."""
        workflow_type = await store.create(EntityType.WORKFLOW_TYPE, {
            "workflowTypeId": "WFT-1", "name": "Standard", "prefix": "STD", "totalCases": 0
        })
        service = CaseService(
            store,
            audit_service=audit_service,
            notification_service=notification_service,
            default_workflow_type_provider=StaticWorkflowTypeProvider(workflow_type)
        )

        case = await service.create_case({"clientId": "c1", "assignedChampion": CHAMPION}, created_by=CREATOR)

        assert case["caseId"].startswith("STD-")
        assert case["workflowTypeId"] == workflow_type["id"]

    async def test_unknown_workflow_type(self, case_service):
        """Test that naming a missing workflow type fails."""
        with pytest.raises(NotFoundError):
            await case_service.create_case(
                {"clientId": "c1", "assignedChampion": CHAMPION, "workflowTypeId": "missing"},
                created_by=CREATOR
            )

    async def test_creation_audited(self, case, store):
        """Test that creation writes a CREATE audit entry."""
        entries = await store.find(EntityType.AUDIT_LOG, {"entityId": case["id"]})

        assert [e["action"] for e in entries] == ["CREATE"]
        assert entries[0]["complianceFlags"] == ["HIPAA"]


class TestCaseStatus:
    """Test suite for case status changes."""

    async def test_completion_stamp_survives_reopen(self, case, case_service):
        """Test that leaving Completed keeps actualCompletionDate."""
        completed = await case_service.update_case_status(case["id"], "Completed", CHAMPION)
        assert completed["actualCompletionDate"] is not None

        reopened = await case_service.update_case_status(case["id"], "In Progress", CHAMPION)

        assert reopened["status"] == "In Progress"
        assert reopened["actualCompletionDate"] == completed["actualCompletionDate"]

    async def test_every_completion_restamps(self, case, case_service, store):
        """Test that both the status change and a patch stamp a fresh date on each completion."""
        old = datetime(2020, 1, 1)
        await store.update(EntityType.ONBOARDING_CASE, case["id"], {"actualCompletionDate": old})

        by_status = await case_service.update_case_status(case["id"], "Completed", CHAMPION)
        await store.update(EntityType.ONBOARDING_CASE, case["id"], {"actualCompletionDate": old})
        by_patch = await case_service.update_case(case["id"], {"status": "Completed"}, CHAMPION)

        assert by_status["actualCompletionDate"] > old
        assert by_patch["actualCompletionDate"] > old

    async def test_any_transition_allowed(self, case, case_service):
        """Test that statuses change without a transition table."""
        await case_service.update_case_status(case["id"], "Cancelled", CHAMPION)
        restarted = await case_service.update_case_status(case["id"], "Not Started", CHAMPION)

        assert restarted["status"] == "Not Started"

    async def test_unknown_status(self, case, case_service):
        """Test that an unknown status is rejected before any write."""
        with pytest.raises(ValidationError):
            await case_service.update_case_status(case["id"], "Done", CHAMPION)

        assert (await case_service.get_case(case["id"]))["status"] == "Not Started"

    async def test_stakeholders_notified_except_actor(self, case, case_service, store):
        """Test that creator, team and client contact are notified but the actor is not."""
        await case_service.assign_team(case["id"], ["member-1"], CHAMPION)

        await case_service.update_case_status(case["id"], "In Progress", "member-1", comments="kicked off")

        status_notes = await store.find(EntityType.NOTIFICATION, {"type": "StatusUpdate"})
        assert sorted(n["recipientId"] for n in status_notes) == sorted([CREATOR, "client-1"])
        assert status_notes[0]["metadata"]["comments"] == "kicked off"

    async def test_status_change_audited(self, case, case_service, store):
        """Test that a status change writes one STATUS_UPDATE entry."""
        await case_service.update_case_status(case["id"], "Planning", CHAMPION)

        entries = await store.find(EntityType.AUDIT_LOG, {"entityId": case["id"], "action": "STATUS_UPDATE"})
        assert len(entries) == 1
        assert entries[0]["changes"]["oldStatus"] == "Not Started"
        assert entries[0]["changes"]["newStatus"] == "Planning"

    async def test_failing_notifications_do_not_fail_update(self, case, case_service, monkeypatch):
        """Test that notification failures leave the status change in place."""
        async def broken(spec):
            raise RuntimeError("mail server down")

        monkeypatch.setattr(case_service.notification_service, "create", broken)

        updated = await case_service.update_case_status(case["id"], "Completed", CHAMPION)

        assert updated["status"] == "Completed"


class TestUpdateCase:
    """Test suite for partial case updates."""

    async def test_immutable_fields_ignored(self, case, case_service):
        """Test that caseId and createdBy cannot be patched."""
        updated = await case_service.update_case(
            case["id"], {"caseId": "HACK-1", "createdBy": "someone", "notes": "hello"}, CHAMPION
        )

        assert updated["caseId"] == case["caseId"]
        assert updated["createdBy"] == CREATOR
        assert updated["notes"] == "hello"
        assert updated["lastModifiedBy"] == CHAMPION

    async def test_field_changes_audited(self, case, case_service, store):
        """Test that the audit entry lists each changed field."""
        await case_service.update_case(case["id"], {"priority": "High", "notes": None}, CHAMPION)

        entry = (await store.find(EntityType.AUDIT_LOG, {"entityId": case["id"], "action": "UPDATE"}))[0]
        assert entry["changes"] == [{"field": "priority", "oldValue": "Medium", "newValue": "High"}]


class TestAssignTeam:
    """Test suite for team assignment."""

    async def test_overlapping_assignments(self, case, case_service):
        """Test that assigning overlapping members twice keeps each id once."""
        await case_service.assign_team(case["id"], ["a", "b"], CHAMPION)
        updated = await case_service.assign_team(case["id"], ["b", "c", "c"], CHAMPION)

        assert updated["assignedTeam"] == ["a", "b", "c"]

    async def test_members_notified(self, case, case_service, store):
        """Test that each listed member gets a notification."""
        await case_service.assign_team(case["id"], ["a", "b"], CHAMPION)

        recipients = {n["recipientId"] for n in await store.find(EntityType.NOTIFICATION)}
        assert recipients == {"a", "b"}

    async def test_empty_member_list(self, case, case_service):
        """Test that assigning nobody is rejected."""
        with pytest.raises(ValidationError):
            await case_service.assign_team(case["id"], [], CHAMPION)

    async def test_unknown_case(self, case_service):
        """Test that assigning to an unknown case raises NotFoundError."""
        with pytest.raises(NotFoundError):
            await case_service.assign_team("missing", ["a"], CHAMPION)


class TestProgressAndReminders:
    """Test suite for progress reports and reminders."""

    async def test_progress_report(self, case, case_service, stage_service, store):
        """Test stage and task completion figures."""
        stages = await stage_service.create_multiple_stages(
            case["id"], [{"name": "A", "estimatedDuration": 4}, {"name": "B", "estimatedDuration": 6}], CREATOR
        )
        await store.update(EntityType.STAGE, stages[0]["id"], {"status": "Completed"})
        await store.create(EntityType.TASK, {
            "taskId": "T1", "name": "t1", "onboardingCaseId": case["id"],
            "stageId": stages[0]["id"], "status": "Completed",
        })
        await store.create(EntityType.TASK, {
            "taskId": "T2", "name": "t2", "onboardingCaseId": case["id"],
            "stageId": stages[1]["id"], "status": "Not Started",
        })

        report = await case_service.get_progress_report(case["id"])

        assert report["totalStages"] == 2
        assert report["completedStages"] == 1
        assert report["stageCompletion"] == 50
        assert report["totalTasks"] == 2
        assert report["completedTasks"] == 1
        assert report["remainingDays"] == 5
        assert [s["taskCount"] for s in report["stages"]] == [1, 1]
        assert report["stages"][0]["completedTasks"] == 1

    async def test_progress_report_empty_case(self, case, case_service):
        """Test that a case without stages reports zeros."""
        report = await case_service.get_progress_report(case["id"])

        assert report["totalStages"] == 0
        assert report["stageCompletion"] == 0
        assert report["taskCompletion"] == 0
        assert report["remainingDays"] == 0

    async def test_no_overdue_tasks(self, case, case_service, store, make_task):
        """Test that a reminder run with nothing overdue still writes one audit entry."""
        await make_task(case["id"], "future", assigned_to=["a"], due_in_days=3)

        result = await case_service.send_reminders(case["id"], CHAMPION)

        assert result["remindersSent"] == 0
        entries = await store.find(EntityType.AUDIT_LOG, {"entityId": case["id"], "action": "REMINDER"})
        assert len(entries) == 1

    async def test_overdue_tasks_reminded(self, case, case_service, store, make_task):
        """Test that the first assignee of each overdue open task is reminded."""
        overdue = await make_task(case["id"], "late", assigned_to=["a", "b"], due_in_days=-2)
        await make_task(case["id"], "done", status="Completed", assigned_to=["a"], due_in_days=-2)
        await make_task(case["id"], "unassigned", due_in_days=-2)

        result = await case_service.send_reminders(case["id"], CHAMPION)

        assert result == {"remindersSent": 1, "overdueTasks": 2}
        reminders = await store.find(EntityType.NOTIFICATION, {"type": "Reminder"})
        assert [n["recipientId"] for n in reminders] == ["a"]
        assert (await store.find_by_id(EntityType.TASK, overdue["id"]))["reminderSent"] is True
