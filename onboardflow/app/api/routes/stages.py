"""
Stage API Routes

Stage CRUD plus bulk creation, with or without nested tasks. Bulk
requests are validated as a whole before anything is written.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from onboardflow.app.api.deps import (
    Actor,
    PageParams,
    get_current_user,
    get_page_params,
    get_stage_service
)
from onboardflow.app.models.api.common import ApiResponse, ok, paginated
from onboardflow.app.models.api.workflow_schemas import (
    StageBulkRequest,
    StageCreateRequest,
    StageUpdateRequest
)
from onboardflow.app.models.domain.workflow import StageStatus
from onboardflow.app.services.stage_service import StageService

router = APIRouter(prefix="/stages", tags=["stages"])


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED, summary="Create Stage")
async def create_stage(
    body: StageCreateRequest,
    actor: Actor = Depends(get_current_user),
    stage_service: StageService = Depends(get_stage_service)
) -> ApiResponse:
    payload = body.to_payload()
    payload.pop("tasks", None)
    return ok(await stage_service.create_stage(payload, actor.user_id), "Stage created successfully")


@router.post(
    "/bulk",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Multiple Stages"
)
async def create_multiple_stages(
    body: StageBulkRequest,
    actor: Actor = Depends(get_current_user),
    stage_service: StageService = Depends(get_stage_service)
) -> ApiResponse:
    payload = body.to_payload()
    stages = await stage_service.create_multiple_stages(
        payload["onboardingCaseId"], payload["stages"], actor.user_id
    )
    return ok(stages, f"{len(stages)} stages created successfully")


@router.post(
    "/bulk-with-tasks",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Stages With Their Tasks"
)
async def create_stages_with_tasks(
    body: StageBulkRequest,
    actor: Actor = Depends(get_current_user),
    stage_service: StageService = Depends(get_stage_service)
) -> ApiResponse:
    payload = body.to_payload()
    stages = await stage_service.create_stages_with_tasks(
        payload["onboardingCaseId"], payload["stages"], actor.user_id
    )
    task_count = sum(len(stage["tasks"]) for stage in stages)
    return ok(stages, f"{len(stages)} stages and {task_count} tasks created successfully")


@router.get("", response_model=ApiResponse, summary="List Stages")
async def list_stages(
    case_id: Optional[str] = Query(None, alias="onboardingCaseId"),
    stage_status: Optional[StageStatus] = Query(None, alias="status"),
    paging: PageParams = Depends(get_page_params),
    actor: Actor = Depends(get_current_user),
    stage_service: StageService = Depends(get_stage_service)
) -> ApiResponse:
    result = await stage_service.list_stages(
        {"onboardingCaseId": case_id, "status": stage_status.value if stage_status else None},
        sort=paging.sort,
        page=paging.page,
        limit=paging.limit
    )
    return paginated(result, paging.page, paging.limit)


@router.get("/{stage_id}", response_model=ApiResponse, summary="Get Stage")
async def get_stage(
    stage_id: str,
    include_tasks: bool = Query(False, alias="includeTasks"),
    actor: Actor = Depends(get_current_user),
    stage_service: StageService = Depends(get_stage_service)
) -> ApiResponse:
    return ok(await stage_service.get_stage(stage_id, include_tasks=include_tasks))


@router.put("/{stage_id}", response_model=ApiResponse, summary="Update Stage")
async def update_stage(
    stage_id: str,
    body: StageUpdateRequest,
    actor: Actor = Depends(get_current_user),
    stage_service: StageService = Depends(get_stage_service)
) -> ApiResponse:
    stage = await stage_service.update_stage(stage_id, body.to_payload(), actor.user_id)
    return ok(stage, "Stage updated successfully")


@router.delete("/{stage_id}", response_model=ApiResponse, summary="Delete Stage")
async def delete_stage(
    stage_id: str,
    actor: Actor = Depends(get_current_user),
    stage_service: StageService = Depends(get_stage_service)
) -> ApiResponse:
    stage = await stage_service.delete_stage(stage_id, actor.user_id)
    return ok({"id": stage["id"], "stageId": stage["stageId"]}, "Stage deleted successfully")
