"""
Workflow Guide API Routes

Guides and their steps, contextual hints for stages and tasks, step usage
feedback, and the links that put guides to work in onboarding cases.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from onboardflow.app.api.deps import (
    Actor,
    PageParams,
    get_current_user,
    get_guide_service,
    get_hint_service,
    get_page_params
)
from onboardflow.app.models.api.common import ApiResponse, ok, paginated
from onboardflow.app.models.api.guide_schemas import (
    GuideCreateRequest,
    GuideLinkRequest,
    GuideUpdateRequest,
    LinkProgressRequest,
    LinkRemoveRequest,
    StepCreateRequest,
    StepFeedbackRequest,
    StepUpdateRequest,
    StepViewRequest
)
from onboardflow.app.models.domain.workflow import LinkStatus
from onboardflow.app.services.guide_service import GuideService
from onboardflow.app.services.hint_service import HintService

router = APIRouter(prefix="/guides", tags=["guides"])


# Hints

@router.get("/hints/stage", response_model=ApiResponse, summary="Hints For A Stage")
async def get_stage_hints(
    case_id: str = Query(..., alias="caseId"),
    stage_id: str = Query(..., alias="stageId"),
    actor: Actor = Depends(get_current_user),
    hint_service: HintService = Depends(get_hint_service)
) -> ApiResponse:
    return ok(await hint_service.resolve_stage_hints(case_id, stage_id))


@router.get("/hints/task/{task_id}", response_model=ApiResponse, summary="Hints For A Task")
async def get_task_hints(
    task_id: str,
    case_id: Optional[str] = Query(None, alias="caseId"),
    actor: Actor = Depends(get_current_user),
    hint_service: HintService = Depends(get_hint_service)
) -> ApiResponse:
    return ok(await hint_service.resolve_task_hints(task_id, case_id=case_id))


@router.get("/cases/{case_id}/summary", response_model=ApiResponse, summary="Hint Summary For A Case")
async def get_case_hints_summary(
    case_id: str,
    actor: Actor = Depends(get_current_user),
    hint_service: HintService = Depends(get_hint_service)
) -> ApiResponse:
    return ok(await hint_service.case_hints_summary(case_id))


@router.get("/cases/{case_id}/usage", response_model=ApiResponse, summary="Guide Usage For A Case")
async def get_guide_usage(
    case_id: str,
    actor: Actor = Depends(get_current_user),
    hint_service: HintService = Depends(get_hint_service)
) -> ApiResponse:
    return ok(await hint_service.guide_usage_for_case(case_id))


# Case links

@router.post("/links", response_model=ApiResponse, status_code=status.HTTP_201_CREATED, summary="Link Guide To Case")
async def link_guide_to_case(
    body: GuideLinkRequest,
    actor: Actor = Depends(get_current_user),
    guide_service: GuideService = Depends(get_guide_service)
) -> ApiResponse:
    link = await guide_service.link_guide_to_case(
        body.onboarding_case_id, body.guide_id, actor.user_id, priority=body.priority, notes=body.notes
    )
    return ok(link, "Guide linked to case")


@router.get("/links", response_model=ApiResponse, summary="Guide Links Of A Case")
async def list_case_links(
    case_id: str = Query(..., alias="caseId"),
    link_status: Optional[LinkStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_user),
    guide_service: GuideService = Depends(get_guide_service)
) -> ApiResponse:
    return ok(await guide_service.list_case_links(case_id, status=link_status.value if link_status else None))


@router.put("/links/{link_id}/progress", response_model=ApiResponse, summary="Update Link Progress")
async def update_link_progress(
    link_id: str,
    body: LinkProgressRequest,
    actor: Actor = Depends(get_current_user),
    guide_service: GuideService = Depends(get_guide_service)
) -> ApiResponse:
    link = await guide_service.update_link_progress(
        link_id, steps_completed=body.steps_completed, time_spent=body.time_spent, rating=body.rating
    )
    return ok(link)


@router.delete("/links/{link_id}", response_model=ApiResponse, summary="Remove Guide From Case")
async def remove_link(
    link_id: str,
    body: Optional[LinkRemoveRequest] = None,
    actor: Actor = Depends(get_current_user),
    guide_service: GuideService = Depends(get_guide_service)
) -> ApiResponse:
    link = await guide_service.remove_link(link_id, actor.user_id, reason=body.reason if body else None)
    return ok(link, "Guide removed from case")


# Steps

@router.put("/steps/{step_id}", response_model=ApiResponse, summary="Update Guide Step")
async def update_step(
    step_id: str,
    body: StepUpdateRequest,
    actor: Actor = Depends(get_current_user),
    guide_service: GuideService = Depends(get_guide_service)
) -> ApiResponse:
    return ok(await guide_service.update_step(step_id, body.to_payload()))


@router.delete("/steps/{step_id}", response_model=ApiResponse, summary="Delete Guide Step")
async def delete_step(
    step_id: str,
    actor: Actor = Depends(get_current_user),
    guide_service: GuideService = Depends(get_guide_service)
) -> ApiResponse:
    step = await guide_service.delete_step(step_id)
    return ok({"id": step["id"], "stepId": step["stepId"]}, "Guide step deleted")


@router.post("/steps/{step_id}/view", response_model=ApiResponse, summary="Record Step View")
async def record_view(
    step_id: str,
    body: Optional[StepViewRequest] = None,
    actor: Actor = Depends(get_current_user),
    hint_service: HintService = Depends(get_hint_service)
) -> ApiResponse:
    viewer = (body.user_id if body else None) or actor.user_id
    return ok(await hint_service.record_view(step_id, viewer))


@router.post("/steps/{step_id}/feedback", response_model=ApiResponse, summary="Rate Step Helpfulness")
async def record_feedback(
    step_id: str,
    body: StepFeedbackRequest,
    actor: Actor = Depends(get_current_user),
    hint_service: HintService = Depends(get_hint_service)
) -> ApiResponse:
    return ok(await hint_service.record_feedback(step_id, body.helpful, body.comment), "Feedback recorded")


# Guides

@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED, summary="Create Guide")
async def create_guide(
    body: GuideCreateRequest,
    actor: Actor = Depends(get_current_user),
    guide_service: GuideService = Depends(get_guide_service)
) -> ApiResponse:
    return ok(await guide_service.create_guide(body.to_payload(), actor.user_id), "Guide created successfully")


@router.get("", response_model=ApiResponse, summary="List Guides")
async def list_guides(
    category: Optional[str] = Query(None),
    guide_status: Optional[str] = Query(None, alias="status"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    paging: PageParams = Depends(get_page_params),
    actor: Actor = Depends(get_current_user),
    guide_service: GuideService = Depends(get_guide_service)
) -> ApiResponse:
    result = await guide_service.list_guides(
        {"category": category, "status": guide_status, "isActive": is_active},
        sort=paging.sort,
        page=paging.page,
        limit=paging.limit
    )
    return paginated(result, paging.page, paging.limit)


@router.get("/{guide_id}", response_model=ApiResponse, summary="Get Guide With Steps")
async def get_guide(
    guide_id: str,
    actor: Actor = Depends(get_current_user),
    guide_service: GuideService = Depends(get_guide_service)
) -> ApiResponse:
    return ok(await guide_service.get_guide(guide_id))


@router.put("/{guide_id}", response_model=ApiResponse, summary="Update Guide")
async def update_guide(
    guide_id: str,
    body: GuideUpdateRequest,
    actor: Actor = Depends(get_current_user),
    guide_service: GuideService = Depends(get_guide_service)
) -> ApiResponse:
    return ok(await guide_service.update_guide(guide_id, body.to_payload()), "Guide updated successfully")


@router.get("/{guide_id}/steps", response_model=ApiResponse, summary="List Guide Steps")
async def list_steps(
    guide_id: str,
    include_inactive: bool = Query(False, alias="includeInactive"),
    actor: Actor = Depends(get_current_user),
    guide_service: GuideService = Depends(get_guide_service)
) -> ApiResponse:
    return ok(await guide_service.list_steps(guide_id, include_inactive=include_inactive))


@router.post(
    "/{guide_id}/steps",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add Guide Step"
)
async def create_step(
    guide_id: str,
    body: StepCreateRequest,
    actor: Actor = Depends(get_current_user),
    guide_service: GuideService = Depends(get_guide_service)
) -> ApiResponse:
    payload = {**body.to_payload(), "guideId": guide_id}
    return ok(await guide_service.create_step(payload), "Guide step created")
