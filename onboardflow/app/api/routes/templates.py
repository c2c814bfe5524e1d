"""
Template API Routes
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from onboardflow.app.api.deps import (
    Actor,
    PageParams,
    get_current_user,
    get_page_params,
    get_template_service
)
from onboardflow.app.models.api.admin_schemas import (
    TemplateCloneRequest,
    TemplateCreateRequest,
    TemplateUpdateRequest,
    TemplateUsageRequest
)
from onboardflow.app.models.api.common import ApiResponse, ok, paginated
from onboardflow.app.models.domain.workflow import TemplateStatus, TemplateType
from onboardflow.app.services.template_service import TemplateService

router = APIRouter(prefix="/templates", tags=["templates"])


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED, summary="Create Template")
async def create_template(
    body: TemplateCreateRequest,
    actor: Actor = Depends(get_current_user),
    template_service: TemplateService = Depends(get_template_service)
) -> ApiResponse:
    return ok(await template_service.create(body.to_payload(), actor.user_id), "Template created successfully")


@router.get("", response_model=ApiResponse, summary="List Templates")
async def list_templates(
    template_type: Optional[TemplateType] = Query(None, alias="type"),
    template_status: Optional[TemplateStatus] = Query(None, alias="status"),
    industry_type: Optional[str] = Query(None, alias="industryType"),
    client_size: Optional[str] = Query(None, alias="clientSize"),
    complexity: Optional[str] = Query(None),
    is_default: Optional[bool] = Query(None, alias="isDefault"),
    paging: PageParams = Depends(get_page_params),
    actor: Actor = Depends(get_current_user),
    template_service: TemplateService = Depends(get_template_service)
) -> ApiResponse:
    result = await template_service.list(
        {
            "type": template_type.value if template_type else None,
            "status": template_status.value if template_status else None,
            "industryType": industry_type,
            "clientSize": client_size,
            "complexity": complexity,
            "isDefault": is_default,
        },
        sort=paging.sort,
        page=paging.page,
        limit=paging.limit
    )
    return paginated(result, paging.page, paging.limit)


@router.get("/recommendations", response_model=ApiResponse, summary="Recommended Templates")
async def get_recommendations(
    template_type: Optional[TemplateType] = Query(None, alias="type"),
    industry_type: Optional[str] = Query(None, alias="industryType"),
    client_size: Optional[str] = Query(None, alias="clientSize"),
    complexity: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_user),
    template_service: TemplateService = Depends(get_template_service)
) -> ApiResponse:
    templates = await template_service.get_recommendations(
        template_type=template_type.value if template_type else None,
        industry_type=industry_type,
        client_size=client_size,
        complexity=complexity
    )
    return ok(templates)


@router.get("/{template_id}", response_model=ApiResponse, summary="Get Template")
async def get_template(
    template_id: str,
    actor: Actor = Depends(get_current_user),
    template_service: TemplateService = Depends(get_template_service)
) -> ApiResponse:
    return ok(await template_service.get(template_id))


@router.put("/{template_id}", response_model=ApiResponse, summary="Update Template")
async def update_template(
    template_id: str,
    body: TemplateUpdateRequest,
    actor: Actor = Depends(get_current_user),
    template_service: TemplateService = Depends(get_template_service)
) -> ApiResponse:
    return ok(await template_service.update(template_id, body.to_payload()), "Template updated successfully")


@router.delete("/{template_id}", response_model=ApiResponse, summary="Delete Template")
async def delete_template(
    template_id: str,
    actor: Actor = Depends(get_current_user),
    template_service: TemplateService = Depends(get_template_service)
) -> ApiResponse:
    template = await template_service.delete(template_id)
    return ok({"id": template["id"], "templateId": template["templateId"]}, "Template deleted successfully")


@router.post(
    "/{template_id}/clone",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Clone Template"
)
async def clone_template(
    template_id: str,
    body: Optional[TemplateCloneRequest] = None,
    actor: Actor = Depends(get_current_user),
    template_service: TemplateService = Depends(get_template_service)
) -> ApiResponse:
    body = body or TemplateCloneRequest()
    cloned = await template_service.clone(
        template_id, created_by=actor.user_id, name=body.name, description=body.description
    )
    return ok(cloned, "Template cloned successfully")


@router.put("/{template_id}/publish", response_model=ApiResponse, summary="Publish Template")
async def publish_template(
    template_id: str,
    actor: Actor = Depends(get_current_user),
    template_service: TemplateService = Depends(get_template_service)
) -> ApiResponse:
    return ok(await template_service.publish(template_id, approved_by=actor.user_id), "Template published")


@router.put("/{template_id}/default", response_model=ApiResponse, summary="Make Template The Default Of Its Type")
async def set_default_template(
    template_id: str,
    actor: Actor = Depends(get_current_user),
    template_service: TemplateService = Depends(get_template_service)
) -> ApiResponse:
    return ok(await template_service.set_as_default(template_id))


@router.post("/{template_id}/usage", response_model=ApiResponse, summary="Record Template Usage")
async def update_usage_stats(
    template_id: str,
    body: TemplateUsageRequest,
    actor: Actor = Depends(get_current_user),
    template_service: TemplateService = Depends(get_template_service)
) -> ApiResponse:
    template = await template_service.update_usage_stats(
        template_id, success=body.success, completion_time=body.completion_time
    )
    return ok(template)
