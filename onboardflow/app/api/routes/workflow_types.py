"""
Workflow Type API Routes
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from onboardflow.app.api.deps import (
    Actor,
    PageParams,
    get_current_user,
    get_page_params,
    get_workflow_type_service
)
from onboardflow.app.models.api.admin_schemas import (
    WorkflowTypeCreateRequest,
    WorkflowTypeUpdateRequest
)
from onboardflow.app.models.api.common import ApiResponse, ok, paginated
from onboardflow.app.services.workflow_type_service import WorkflowTypeService

router = APIRouter(prefix="/workflow-types", tags=["workflow-types"])


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED, summary="Create Workflow Type")
async def create_workflow_type(
    body: WorkflowTypeCreateRequest,
    actor: Actor = Depends(get_current_user),
    workflow_type_service: WorkflowTypeService = Depends(get_workflow_type_service)
) -> ApiResponse:
    workflow_type = await workflow_type_service.create(body.to_payload(), created_by=actor.user_id)
    return ok(workflow_type, "Workflow type created successfully")


@router.get("", response_model=ApiResponse, summary="List Workflow Types")
async def list_workflow_types(
    is_active: Optional[bool] = Query(None, alias="isActive"),
    paging: PageParams = Depends(get_page_params),
    actor: Actor = Depends(get_current_user),
    workflow_type_service: WorkflowTypeService = Depends(get_workflow_type_service)
) -> ApiResponse:
    result = await workflow_type_service.list(
        {"isActive": is_active}, sort=paging.sort, page=paging.page, limit=paging.limit
    )
    return paginated(result, paging.page, paging.limit)


@router.get("/{workflow_type_id}", response_model=ApiResponse, summary="Get Workflow Type")
async def get_workflow_type(
    workflow_type_id: str,
    actor: Actor = Depends(get_current_user),
    workflow_type_service: WorkflowTypeService = Depends(get_workflow_type_service)
) -> ApiResponse:
    return ok(await workflow_type_service.get(workflow_type_id))


@router.put("/{workflow_type_id}", response_model=ApiResponse, summary="Update Workflow Type")
async def update_workflow_type(
    workflow_type_id: str,
    body: WorkflowTypeUpdateRequest,
    actor: Actor = Depends(get_current_user),
    workflow_type_service: WorkflowTypeService = Depends(get_workflow_type_service)
) -> ApiResponse:
    workflow_type = await workflow_type_service.update(workflow_type_id, body.to_payload())
    return ok(workflow_type, "Workflow type updated successfully")


@router.put("/{workflow_type_id}/default", response_model=ApiResponse, summary="Make Workflow Type The Default")
async def set_default_workflow_type(
    workflow_type_id: str,
    actor: Actor = Depends(get_current_user),
    workflow_type_service: WorkflowTypeService = Depends(get_workflow_type_service)
) -> ApiResponse:
    return ok(await workflow_type_service.set_default(workflow_type_id))


@router.delete("/{workflow_type_id}", response_model=ApiResponse, summary="Delete Workflow Type")
async def delete_workflow_type(
    workflow_type_id: str,
    actor: Actor = Depends(get_current_user),
    workflow_type_service: WorkflowTypeService = Depends(get_workflow_type_service)
) -> ApiResponse:
    workflow_type = await workflow_type_service.delete(workflow_type_id)
    return ok({"id": workflow_type["id"], "name": workflow_type["name"]}, "Workflow type deleted successfully")
