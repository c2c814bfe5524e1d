"""
Domain model for workflow guide steps.

A guide step points at the part of a workflow it explains: a specific
stage, a specific task, or nothing in particular. The reference is held as
a tagged union so an unresolved id can never be paired with a general step.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from onboardflow.app.core.exceptions import ErrorCode, ValidationError


class ReferenceType(str, Enum):
    """What a guide step refers to."""

    STAGE = "Stage"
    TASK = "Task"
    GENERAL = "General"


class HintType(str, Enum):
    TIP = "tip"
    WARNING = "warning"
    CHECKLIST = "checklist"
    TUTORIAL = "tutorial"
    INFO = "info"
    ERROR = "error"
    SUCCESS = "success"


@dataclass(frozen=True)
class StageRef:
    """Step attached to one stage."""

    stage_id: str

    reference_type = ReferenceType.STAGE
    specificity = 1

    @property
    def target_id(self) -> Optional[str]:
        return self.stage_id


@dataclass(frozen=True)
class TaskRef:
    """Step attached to one task."""

    task_id: str

    reference_type = ReferenceType.TASK
    specificity = 0

    @property
    def target_id(self) -> Optional[str]:
        return self.task_id


@dataclass(frozen=True)
class GeneralRef:
    """Step that applies anywhere in the case."""

    reference_type = ReferenceType.GENERAL
    specificity = 2

    @property
    def target_id(self) -> Optional[str]:
        return None


StepReference = Union[StageRef, TaskRef, GeneralRef]


def build_step_reference(
    reference_type: Optional[str],
    ref_id: Optional[str] = None
) -> StepReference:
    """
    Build a step reference from its stored representation.

    Args:
        reference_type: "Stage", "Task" or "General" (missing means General)
        ref_id: Referenced stage or task id

    Returns:
        The matching reference variant

    Raises:
        ValidationError: If the type is unknown or a Stage/Task reference has no id
    """
    try:
        kind = ReferenceType(reference_type or ReferenceType.GENERAL.value)
    except ValueError:
        raise ValidationError(
            f"Unknown reference type: {reference_type}",
            error_code=ErrorCode.INVALID_VALUE,
            field_errors=[{"field": "referenceType", "value": reference_type}]
        )

    if kind is ReferenceType.GENERAL:
        return GeneralRef()

    if not ref_id:
        raise ValidationError(
            f"{kind.value} steps require stageOrTaskRef",
            error_code=ErrorCode.MISSING_REQUIRED_FIELD,
            field_errors=[{"field": "stageOrTaskRef", "message": "required"}]
        )

    if kind is ReferenceType.STAGE:
        return StageRef(stage_id=str(ref_id))
    return TaskRef(task_id=str(ref_id))


def step_reference_of(step: Dict[str, Any]) -> StepReference:
    """Read the reference of a stored guide step document."""
    return build_step_reference(step.get("referenceType"), step.get("stageOrTaskRef"))


def reference_fields(reference: StepReference) -> Dict[str, Any]:
    """Document fields for a reference."""
    return {
        "referenceType": reference.reference_type.value,
        "stageOrTaskRef": reference.target_id,
    }
