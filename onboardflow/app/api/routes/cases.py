"""
Onboarding Case API Routes

REST endpoints for onboarding cases: CRUD, status changes with audit and
notification fan-out, team assignment, progress reports and reminders.
Failures propagate as custom exceptions and are rendered by the global
error handlers.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from onboardflow.app.api.deps import (
    Actor,
    PageParams,
    get_case_service,
    get_current_user,
    get_page_params
)
from onboardflow.app.models.api.common import ApiResponse, ok, paginated
from onboardflow.app.models.api.workflow_schemas import (
    CaseCreateRequest,
    CaseStatusUpdateRequest,
    CaseUpdateRequest,
    TeamAssignRequest
)
from onboardflow.app.models.domain.workflow import CaseStatus, Priority
from onboardflow.app.services.case_service import CaseService
from onboardflow.app.utils.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/cases", tags=["cases"])


@router.post(
    "",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Onboarding Case"
)
async def create_case(
    body: CaseCreateRequest,
    actor: Actor = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service)
) -> ApiResponse:
    case = await case_service.create_case(body.to_payload(), actor.user_id)
    return ok(case, "Case created successfully")


@router.get("", response_model=ApiResponse, summary="List Onboarding Cases")
async def list_cases(
    case_status: Optional[CaseStatus] = Query(None, alias="status"),
    priority: Optional[Priority] = Query(None),
    client_id: Optional[str] = Query(None, alias="clientId"),
    assigned_champion: Optional[str] = Query(None, alias="assignedChampion"),
    workflow_type_id: Optional[str] = Query(None, alias="workflowTypeId"),
    team_member: Optional[str] = Query(None, alias="teamMember", description="Cases whose team includes this user"),
    paging: PageParams = Depends(get_page_params),
    actor: Actor = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service)
) -> ApiResponse:
    filters = {
        "status": case_status.value if case_status else None,
        "priority": priority.value if priority else None,
        "clientId": client_id,
        "assignedChampion": assigned_champion,
        "workflowTypeId": workflow_type_id,
        "assignedTeam": team_member,
    }
    result = await case_service.list_cases(
        filters, sort=paging.sort, page=paging.page, limit=paging.limit, expand=["clientId", "assignedChampion"]
    )
    return paginated(result, paging.page, paging.limit)


@router.get("/{case_id}", response_model=ApiResponse, summary="Get Onboarding Case")
async def get_case(
    case_id: str = Path(..., description="Case store id"),
    actor: Actor = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service)
) -> ApiResponse:
    case = await case_service.get_case(
        case_id, expand=["clientId", "workflowTypeId", "assignedChampion", "assignedTeam", "linkedGuides"]
    )
    return ok(case)


@router.get("/{case_id}/details", response_model=ApiResponse, summary="Get Case With Stages And Tasks")
async def get_case_details(
    case_id: str,
    actor: Actor = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service)
) -> ApiResponse:
    return ok(await case_service.get_case_details(case_id))


@router.put("/{case_id}", response_model=ApiResponse, summary="Update Onboarding Case")
async def update_case(
    case_id: str,
    body: CaseUpdateRequest,
    actor: Actor = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service)
) -> ApiResponse:
    case = await case_service.update_case(case_id, body.to_payload(), actor.user_id)
    return ok(case, "Case updated successfully")


@router.delete("/{case_id}", response_model=ApiResponse, summary="Delete Onboarding Case")
async def delete_case(
    case_id: str,
    actor: Actor = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service)
) -> ApiResponse:
    case = await case_service.delete_case(case_id, actor.user_id)
    return ok({"id": case["id"], "caseId": case["caseId"]}, "Case deleted successfully")


@router.put("/{case_id}/status", response_model=ApiResponse, summary="Update Case Status")
async def update_case_status(
    case_id: str,
    body: CaseStatusUpdateRequest,
    actor: Actor = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service)
) -> ApiResponse:
    case = await case_service.update_case_status(case_id, body.status, actor.user_id, body.comments)
    return ok(case, "Case status updated successfully")


@router.post("/{case_id}/team", response_model=ApiResponse, summary="Assign Team Members")
async def assign_team(
    case_id: str,
    body: TeamAssignRequest,
    actor: Actor = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service)
) -> ApiResponse:
    case = await case_service.assign_team(case_id, body.member_ids, actor.user_id)
    return ok(case, "Team assigned successfully")


@router.get("/{case_id}/progress", response_model=ApiResponse, summary="Case Progress Report")
async def get_progress_report(
    case_id: str,
    actor: Actor = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service)
) -> ApiResponse:
    return ok(await case_service.get_progress_report(case_id))


@router.post("/{case_id}/reminders", response_model=ApiResponse, summary="Send Overdue Task Reminders")
async def send_reminders(
    case_id: str,
    actor: Actor = Depends(get_current_user),
    case_service: CaseService = Depends(get_case_service)
) -> ApiResponse:
    result = await case_service.send_reminders(case_id, actor.user_id)
    logger.info("Reminders requested", case_id=case_id, reminders_sent=result["remindersSent"])
    return ok(result, f"{result['remindersSent']} reminders sent")
