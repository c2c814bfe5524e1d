"""
Domain vocabulary for onboarding workflows.

This module defines the enumerations shared by the workflow services:
- Case, stage and task statuses
- Priorities and their ordering rank
- Notification, audit and template vocabularies
- Business identifier generation and UTC timestamps
"""

import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional

from onboardflow.app.core.exceptions import ErrorCode, ValidationError


class CaseStatus(str, Enum):
    """Onboarding case lifecycle status. Transitions are unrestricted."""

    NOT_STARTED = "Not Started"
    PLANNING = "Planning"
    IN_PROGRESS = "In Progress"
    ON_HOLD = "On Hold"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class StageStatus(str, Enum):
    """Stage status."""

    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"


class TaskStatus(str, Enum):
    """Task status."""

    NOT_STARTED = "Not Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"
    ON_HOLD = "On Hold"
    CANCELLED = "Cancelled"


class Priority(str, Enum):
    """Priority levels for cases, tasks, guide links and notifications."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


# Lower rank sorts first
PRIORITY_RANK = {
    Priority.CRITICAL.value: 0,
    Priority.HIGH.value: 1,
    Priority.MEDIUM.value: 2,
    Priority.LOW.value: 3,
}


def priority_rank(priority: Optional[str]) -> int:
    """Return the sort rank of a priority; unknown values rank as Medium."""
    return PRIORITY_RANK.get(priority, PRIORITY_RANK[Priority.MEDIUM.value])


class LinkStatus(str, Enum):
    """Status of a guide linked to a case."""

    ASSIGNED = "Assigned"
    IN_USE = "In Use"
    COMPLETED = "Completed"
    SKIPPED = "Skipped"
    REMOVED = "Removed"


ACTIVE_LINK_STATUSES = (LinkStatus.ASSIGNED.value, LinkStatus.IN_USE.value)


class NotificationType(str, Enum):
    TASK_ASSIGNED = "TaskAssigned"
    TASK_OVERDUE = "TaskOverdue"
    STATUS_UPDATE = "StatusUpdate"
    DOCUMENT_UPLOADED = "DocumentUploaded"
    GUIDE_ASSIGNED = "GuideAssigned"
    CASE_COMPLETED = "CaseCompleted"
    REMINDER = "Reminder"
    SYSTEM = "System"


class NotificationStatus(str, Enum):
    PENDING = "pending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    DISMISSED = "dismissed"
    FAILED = "failed"


class ChannelType(str, Enum):
    IN_APP = "inApp"
    EMAIL = "email"
    SMS = "sms"
    PUSH = "push"


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    VIEW = "VIEW"
    STATUS_UPDATE = "STATUS_UPDATE"
    ASSIGN = "ASSIGN"
    REMINDER = "REMINDER"
    BULK_CREATE = "BULK_CREATE"
    COMMENT = "COMMENT"
    LINK = "LINK"
    UNLINK = "UNLINK"
    PUBLISH = "PUBLISH"


class RiskLevel(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class UserRole(str, Enum):
    ADMIN = "Admin"
    CHAMPION = "Champion"
    TEAM_MEMBER = "Team Member"
    SENIOR_CHAMPION = "Senior Champion"


class TemplateType(str, Enum):
    ONBOARDING_CASE = "OnboardingCase"
    STAGE = "Stage"
    TASK = "Task"
    WORKFLOW_GUIDE = "WorkflowGuide"


class TemplateStatus(str, Enum):
    DRAFT = "Draft"
    PUBLISHED = "Published"
    DEPRECATED = "Deprecated"
    ARCHIVED = "Archived"


def utcnow() -> datetime:
    """Current UTC time as a naive datetime at millisecond precision, the form stored in MongoDB."""
    now = datetime.now(timezone.utc)
    return now.replace(tzinfo=None, microsecond=now.microsecond // 1000 * 1000)


def generate_business_id(prefix: str, index: Optional[int] = None) -> str:
    """
    Generate a human-readable identifier.

    Format is ``PREFIX-<epoch millis>-<random>`` with a trailing ``-<index>``
    for items created in a batch.
    """
    business_id = f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6].upper()}"
    if index is not None:
        business_id = f"{business_id}-{index}"
    return business_id


def unique_ids(*groups: Iterable[Optional[str]], exclude: Optional[str] = None) -> List[str]:
    """Flatten id groups, dropping blanks, duplicates and ``exclude``; order is kept."""
    seen: List[str] = []
    for group in groups:
        for value in group:
            if value and value != exclude and value not in seen:
                seen.append(value)
    return seen


def case_stakeholders(case: Mapping[str, Any], exclude: Optional[str] = None) -> List[str]:
    """Users told about changes to a case: its creator, its team and its client contact."""
    return unique_ids(
        [case.get("createdBy")],
        case.get("assignedTeam") or [],
        [case.get("clientId")],
        exclude=exclude
    )


def case_team(case: Mapping[str, Any], exclude: Optional[str] = None) -> List[str]:
    """The champion and team members working a case."""
    return unique_ids(
        [case.get("assignedChampion")],
        case.get("assignedTeam") or [],
        exclude=exclude
    )


def coerce_enum(enum_cls, value: Any, field_name: str, default: Any = None) -> Optional[str]:
    """
    Validate a value against an enumeration and return its stored form.

    Raises:
        ValidationError: If the value is not a member of ``enum_cls``
    """
    if value is None:
        value = default
    if value is None:
        return None
    try:
        return enum_cls(getattr(value, "value", value)).value
    except ValueError:
        raise ValidationError(
            f"Invalid {field_name}: {value}",
            error_code=ErrorCode.INVALID_VALUE,
            field_errors=[{"field": field_name, "value": str(value)}]
        )
