"""
Pydantic API schemas for notifications, audit review, templates, workflow
types and users.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from onboardflow.app.models.api.common import ApiModel
from onboardflow.app.models.domain.workflow import (
    ChannelType,
    NotificationType,
    Priority,
    TemplateStatus,
    TemplateType,
    UserRole
)


class NotificationCreateRequest(ApiModel):
    """Schema for creating a notification; it is sent at once unless scheduled later."""

    recipient_id: str
    title: str = Field(..., min_length=1)
    message: str = Field(..., min_length=1)
    type: NotificationType = NotificationType.SYSTEM
    priority: Optional[Priority] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[str] = None
    channels: Optional[List[ChannelType]] = None
    scheduled_for: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None


class AuditReviewRequest(ApiModel):
    notes: Optional[str] = None


class TemplateCreateRequest(ApiModel):
    name: str = Field(..., min_length=1)
    type: TemplateType
    description: Optional[str] = None
    configuration: Optional[Dict[str, Any]] = None
    industry_type: Optional[str] = None
    client_size: Optional[str] = None
    complexity: Optional[str] = None
    status: Optional[TemplateStatus] = None
    version: Optional[str] = None


class TemplateUpdateRequest(ApiModel):
    name: Optional[str] = None
    type: Optional[TemplateType] = None
    description: Optional[str] = None
    configuration: Optional[Dict[str, Any]] = None
    industry_type: Optional[str] = None
    client_size: Optional[str] = None
    complexity: Optional[str] = None
    status: Optional[TemplateStatus] = None
    version: Optional[str] = None


class TemplateCloneRequest(ApiModel):
    name: Optional[str] = None
    description: Optional[str] = None


class TemplateUsageRequest(ApiModel):
    """Outcome of one onboarding built from a template."""

    success: Optional[bool] = None
    completion_time: Optional[float] = Field(None, ge=0, description="Days the onboarding took")


class WorkflowTypeCreateRequest(ApiModel):
    name: str = Field(..., min_length=1)
    prefix: str = Field(..., min_length=1, max_length=3)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None


class WorkflowTypeUpdateRequest(ApiModel):
    name: Optional[str] = None
    prefix: Optional[str] = Field(None, min_length=1, max_length=3)
    description: Optional[str] = None
    is_active: Optional[bool] = None
    is_default: Optional[bool] = None


class UserCreateRequest(ApiModel):
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    middle_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[UserRole] = None
    department: Optional[str] = None
    skills: Optional[List[str]] = None


class UserUpdateRequest(ApiModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    middle_name: Optional[str] = None
    phone: Optional[str] = None
    role: Optional[UserRole] = None
    department: Optional[str] = None
    skills: Optional[List[str]] = None
    is_active: Optional[bool] = None
