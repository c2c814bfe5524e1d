"""
Pydantic API schemas for workflow guides, guide steps and case links.
"""

from typing import List, Optional

from pydantic import Field

from onboardflow.app.models.api.common import ApiModel
from onboardflow.app.models.domain.guide import HintType, ReferenceType
from onboardflow.app.models.domain.workflow import Priority


class GuideCreateRequest(ApiModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None
    target_roles: Optional[List[str]] = None
    status: Optional[str] = None
    is_active: Optional[bool] = None


class GuideUpdateRequest(ApiModel):
    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    target_roles: Optional[List[str]] = None
    status: Optional[str] = None
    is_active: Optional[bool] = None


class StepCreateRequest(ApiModel):
    """
    Schema for adding a step to a guide.

    ``stage_or_task_ref`` is required for Stage and Task steps and ignored
    for General steps.
    """

    title: str = Field(..., min_length=1)
    content: Optional[str] = None
    reference_type: ReferenceType = ReferenceType.GENERAL
    stage_or_task_ref: Optional[str] = None
    hint_type: Optional[HintType] = None
    sequence: Optional[int] = Field(None, ge=1)
    media_type: Optional[str] = None
    is_active: Optional[bool] = None


class StepUpdateRequest(ApiModel):
    title: Optional[str] = None
    content: Optional[str] = None
    reference_type: Optional[ReferenceType] = None
    stage_or_task_ref: Optional[str] = None
    hint_type: Optional[HintType] = None
    sequence: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None


class StepViewRequest(ApiModel):
    user_id: Optional[str] = Field(None, description="Viewer; the acting user when omitted")


class StepFeedbackRequest(ApiModel):
    helpful: bool
    comment: Optional[str] = None


class GuideLinkRequest(ApiModel):
    """Schema for linking a guide to an onboarding case."""

    onboarding_case_id: str
    guide_id: str
    priority: Optional[Priority] = None
    notes: Optional[str] = None


class LinkProgressRequest(ApiModel):
    steps_completed: Optional[int] = Field(None, ge=0)
    time_spent: Optional[float] = Field(None, ge=0, description="Minutes to add to the link")
    rating: Optional[float] = Field(None, description="User rating from 1 to 5")


class LinkRemoveRequest(ApiModel):
    reason: Optional[str] = None
