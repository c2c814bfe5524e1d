"""
Task API Routes

Task CRUD, assignee-only status changes, assignment, comments, bulk
creation and per-user and aggregate task views.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from onboardflow.app.api.deps import (
    Actor,
    PageParams,
    get_current_user,
    get_page_params,
    get_task_service
)
from onboardflow.app.models.api.common import ApiResponse, ok, paginated
from onboardflow.app.models.api.workflow_schemas import (
    CommentRequest,
    StageTasksBulkRequest,
    TaskAssignRequest,
    TaskBulkRequest,
    TaskCreateRequest,
    TaskStatusUpdateRequest,
    TaskUpdateRequest
)
from onboardflow.app.models.domain.workflow import Priority, TaskStatus
from onboardflow.app.services.task_service import TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _value(member) -> Optional[str]:
    return member.value if member is not None else None


@router.post("", response_model=ApiResponse, status_code=status.HTTP_201_CREATED, summary="Create Task")
async def create_task(
    body: TaskCreateRequest,
    actor: Actor = Depends(get_current_user),
    task_service: TaskService = Depends(get_task_service)
) -> ApiResponse:
    return ok(await task_service.create_task(body.to_payload(), actor.user_id), "Task created successfully")


@router.post(
    "/bulk",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Multiple Tasks"
)
async def create_multiple_tasks(
    body: TaskBulkRequest,
    actor: Actor = Depends(get_current_user),
    task_service: TaskService = Depends(get_task_service)
) -> ApiResponse:
    payload = body.to_payload()
    tasks = await task_service.create_multiple_tasks(
        payload["onboardingCaseId"], payload["tasks"], actor.user_id, stage_id=payload.get("stageId")
    )
    return ok(tasks, f"{len(tasks)} tasks created successfully")


@router.post(
    "/stage/{stage_id}/bulk",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add Tasks To Stage"
)
async def add_tasks_to_stage(
    stage_id: str,
    body: StageTasksBulkRequest,
    actor: Actor = Depends(get_current_user),
    task_service: TaskService = Depends(get_task_service)
) -> ApiResponse:
    tasks = await task_service.add_tasks_to_stage(stage_id, body.to_payload()["tasks"], actor.user_id)
    return ok(tasks, f"{len(tasks)} tasks added to stage")


@router.get("/my/{user_id}", response_model=ApiResponse, summary="Tasks Assigned To A User")
async def get_user_tasks(
    user_id: str,
    task_status: Optional[TaskStatus] = Query(None, alias="status"),
    priority: Optional[Priority] = Query(None),
    overdue_only: bool = Query(False, alias="overdueOnly"),
    actor: Actor = Depends(get_current_user),
    task_service: TaskService = Depends(get_task_service)
) -> ApiResponse:
    result = await task_service.get_user_tasks(
        user_id, status=_value(task_status), priority=_value(priority), overdue_only=overdue_only
    )
    return ok(result)


@router.get("/analytics", response_model=ApiResponse, summary="Task Analytics")
async def get_task_analytics(
    case_id: Optional[str] = Query(None, alias="onboardingCaseId"),
    stage_id: Optional[str] = Query(None, alias="stageId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    actor: Actor = Depends(get_current_user),
    task_service: TaskService = Depends(get_task_service)
) -> ApiResponse:
    return ok(await task_service.get_task_analytics(case_id=case_id, stage_id=stage_id, user_id=user_id))


@router.get("", response_model=ApiResponse, summary="List Tasks")
async def list_tasks(
    case_id: Optional[str] = Query(None, alias="onboardingCaseId"),
    stage_id: Optional[str] = Query(None, alias="stageId"),
    assigned_to: Optional[str] = Query(None, alias="assignedTo"),
    task_status: Optional[TaskStatus] = Query(None, alias="status"),
    priority: Optional[Priority] = Query(None),
    paging: PageParams = Depends(get_page_params),
    actor: Actor = Depends(get_current_user),
    task_service: TaskService = Depends(get_task_service)
) -> ApiResponse:
    result = await task_service.list_tasks(
        {
            "onboardingCaseId": case_id,
            "stageId": stage_id,
            "assignedTo": assigned_to,
            "status": _value(task_status),
            "priority": _value(priority),
        },
        sort=paging.sort or [("sequence", 1)],
        page=paging.page,
        limit=paging.limit
    )
    return paginated(result, paging.page, paging.limit)


@router.get("/{task_id}", response_model=ApiResponse, summary="Get Task")
async def get_task(
    task_id: str,
    actor: Actor = Depends(get_current_user),
    task_service: TaskService = Depends(get_task_service)
) -> ApiResponse:
    return ok(await task_service.get_task(task_id, expand=["assignedTo", "stageId"]))


@router.put("/{task_id}", response_model=ApiResponse, summary="Update Task")
async def update_task(
    task_id: str,
    body: TaskUpdateRequest,
    actor: Actor = Depends(get_current_user),
    task_service: TaskService = Depends(get_task_service)
) -> ApiResponse:
    task = await task_service.update_task(task_id, body.to_payload(), actor.user_id)
    return ok(task, "Task updated successfully")


@router.delete("/{task_id}", response_model=ApiResponse, summary="Delete Task")
async def delete_task(
    task_id: str,
    actor: Actor = Depends(get_current_user),
    task_service: TaskService = Depends(get_task_service)
) -> ApiResponse:
    task = await task_service.delete_task(task_id, actor.user_id)
    return ok({"id": task["id"], "taskId": task["taskId"]}, "Task deleted successfully")


@router.put("/{task_id}/status", response_model=ApiResponse, summary="Update Task Status")
async def update_task_status(
    task_id: str,
    body: TaskStatusUpdateRequest,
    actor: Actor = Depends(get_current_user),
    task_service: TaskService = Depends(get_task_service)
) -> ApiResponse:
    task = await task_service.update_task_status(
        task_id, body.status, actor.user_id, comments=body.comments, time_spent=body.time_spent
    )
    return ok(task, "Task status updated successfully")


@router.post("/{task_id}/assign", response_model=ApiResponse, summary="Assign Task")
async def assign_task(
    task_id: str,
    body: TaskAssignRequest,
    actor: Actor = Depends(get_current_user),
    task_service: TaskService = Depends(get_task_service)
) -> ApiResponse:
    return ok(await task_service.assign_task(task_id, body.user_ids, actor.user_id), "Task assigned successfully")


@router.post(
    "/{task_id}/comments",
    response_model=ApiResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Comment On Task"
)
async def add_comment(
    task_id: str,
    body: CommentRequest,
    actor: Actor = Depends(get_current_user),
    task_service: TaskService = Depends(get_task_service)
) -> ApiResponse:
    return ok(await task_service.add_comment(task_id, body.text, actor.user_id), "Comment added")
