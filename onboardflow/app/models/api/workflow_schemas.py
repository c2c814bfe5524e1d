"""
Pydantic API schemas for cases, stages and tasks.

This module defines the request bodies of the workflow endpoints:
- Case creation, update, status change and team assignment
- Stage creation, including bulk creation with nested tasks
- Task creation, status change, assignment, comments and bulk creation
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from onboardflow.app.models.api.common import ApiModel
from onboardflow.app.models.domain.workflow import (
    CaseStatus,
    Priority,
    StageStatus,
    TaskStatus
)


class CaseCreateRequest(ApiModel):
    """Schema for creating an onboarding case."""

    client_id: str = Field(..., min_length=1, description="Client being onboarded")
    assigned_champion: str = Field(..., min_length=1, description="User leading the onboarding")
    workflow_type_id: Optional[str] = Field(None, description="Workflow type; the default type when omitted")
    case_id: Optional[str] = Field(None, description="Human-readable id; generated when omitted")
    status: Optional[CaseStatus] = None
    priority: Optional[Priority] = None
    assigned_team: Optional[List[str]] = None
    progress: Optional[float] = Field(None, ge=0, le=100)
    start_date: Optional[datetime] = None
    expected_completion_date: Optional[datetime] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "clientId": "665f1c2e9b1e8a3d4c2b1a01",
                "assignedChampion": "665f1c2e9b1e8a3d4c2b1a02",
                "priority": "High",
                "assignedTeam": ["665f1c2e9b1e8a3d4c2b1a03"],
            }
        }
    }


class CaseUpdateRequest(ApiModel):
    """Schema for a partial case update."""

    client_id: Optional[str] = None
    assigned_champion: Optional[str] = None
    workflow_type_id: Optional[str] = None
    status: Optional[CaseStatus] = None
    priority: Optional[Priority] = None
    progress: Optional[float] = Field(None, ge=0, le=100)
    start_date: Optional[datetime] = None
    expected_completion_date: Optional[datetime] = None
    notes: Optional[str] = None
    tags: Optional[List[str]] = None


class CaseStatusUpdateRequest(ApiModel):
    status: CaseStatus
    comments: Optional[str] = None


class TeamAssignRequest(ApiModel):
    member_ids: List[str] = Field(..., description="Users joining the case team")


class TaskCreateRequest(ApiModel):
    """Schema for creating a task; also used for tasks nested in bulk requests."""

    name: str = Field(..., description="Task name")
    onboarding_case_id: Optional[str] = Field(None, description="Owning case; implied in bulk requests")
    stage_id: Optional[str] = None
    description: Optional[str] = None
    assigned_to: Optional[List[str]] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    sequence: Optional[int] = Field(None, ge=1)
    is_required: Optional[bool] = None


class TaskUpdateRequest(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None
    stage_id: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    due_date: Optional[datetime] = None
    estimated_hours: Optional[float] = Field(None, ge=0)
    sequence: Optional[int] = Field(None, ge=1)
    is_required: Optional[bool] = None


class TaskStatusUpdateRequest(ApiModel):
    """Schema for a task status change by one of its assignees."""

    status: TaskStatus
    comments: Optional[str] = None
    time_spent: Optional[float] = Field(None, ge=0, description="Hours spent, recorded as actualDuration")


class TaskAssignRequest(ApiModel):
    user_ids: List[str] = Field(..., min_length=1)


class CommentRequest(ApiModel):
    text: str = Field(..., min_length=1)


class TaskBulkRequest(ApiModel):
    """Schema for creating several tasks of one case at once."""

    onboarding_case_id: str
    stage_id: Optional[str] = None
    tasks: List[TaskCreateRequest]


class StageTasksBulkRequest(ApiModel):
    tasks: List[TaskCreateRequest]


class StageCreateRequest(ApiModel):
    """Schema for creating a stage; nested ``tasks`` are honored by bulk-with-tasks."""

    name: str = Field(..., description="Stage name")
    onboarding_case_id: Optional[str] = Field(None, description="Owning case; implied in bulk requests")
    description: Optional[str] = None
    sequence: Optional[int] = Field(None, ge=1)
    status: Optional[StageStatus] = None
    dependencies: Optional[List[str]] = None
    estimated_duration: Optional[float] = Field(None, ge=0)
    is_required: Optional[bool] = None
    tasks: Optional[List[TaskCreateRequest]] = None


class StageUpdateRequest(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None
    sequence: Optional[int] = Field(None, ge=1)
    status: Optional[StageStatus] = None
    dependencies: Optional[List[str]] = None
    estimated_duration: Optional[float] = Field(None, ge=0)
    actual_duration: Optional[float] = Field(None, ge=0)
    is_required: Optional[bool] = None


class StageBulkRequest(ApiModel):
    """Schema for appending several stages to a case in input order."""

    onboarding_case_id: str
    stages: List[StageCreateRequest]
