"""
Audit Log API Routes

Read access to the audit trail, security alerts and compliance reporting.
Entries are append-only; review is the only write exposed here.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from onboardflow.app.api.deps import (
    Actor,
    PageParams,
    get_audit_service,
    get_current_user,
    get_page_params
)
from onboardflow.app.models.api.admin_schemas import AuditReviewRequest
from onboardflow.app.models.api.common import ApiResponse, ok, paginated
from onboardflow.app.services.audit_service import AuditService

router = APIRouter(prefix="/audit-logs", tags=["audit"])


@router.get("", response_model=ApiResponse, summary="List Audit Entries")
async def list_audit_logs(
    entity_type: Optional[str] = Query(None, alias="entityType"),
    entity_id: Optional[str] = Query(None, alias="entityId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    action: Optional[str] = Query(None),
    risk_level: Optional[str] = Query(None, alias="riskLevel"),
    is_reviewed: Optional[bool] = Query(None, alias="isReviewed"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    paging: PageParams = Depends(get_page_params),
    actor: Actor = Depends(get_current_user),
    audit_service: AuditService = Depends(get_audit_service)
) -> ApiResponse:
    result = await audit_service.list_logs(
        {
            "entityType": entity_type,
            "entityId": entity_id,
            "userId": user_id,
            "action": action,
            "riskLevel": risk_level,
            "isReviewed": is_reviewed,
        },
        start_date=start_date,
        end_date=end_date,
        sort=paging.sort,
        page=paging.page,
        limit=paging.limit
    )
    return paginated(result, paging.page, paging.limit)


@router.get("/alerts", response_model=ApiResponse, summary="Unreviewed High Risk Entries")
async def get_security_alerts(
    limit: int = Query(50, ge=1, le=500),
    actor: Actor = Depends(get_current_user),
    audit_service: AuditService = Depends(get_audit_service)
) -> ApiResponse:
    return ok(await audit_service.get_security_alerts(limit=limit))


@router.get("/compliance-report", response_model=ApiResponse, summary="Compliance Report")
async def get_compliance_report(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    actor: Actor = Depends(get_current_user),
    audit_service: AuditService = Depends(get_audit_service)
) -> ApiResponse:
    return ok(await audit_service.get_compliance_report(start_date=start_date, end_date=end_date))


@router.get("/{log_id}", response_model=ApiResponse, summary="Get Audit Entry")
async def get_audit_log(
    log_id: str,
    actor: Actor = Depends(get_current_user),
    audit_service: AuditService = Depends(get_audit_service)
) -> ApiResponse:
    return ok(await audit_service.get_log(log_id))


@router.put("/{log_id}/review", response_model=ApiResponse, summary="Mark Audit Entry Reviewed")
async def review_audit_log(
    log_id: str,
    body: AuditReviewRequest,
    actor: Actor = Depends(get_current_user),
    audit_service: AuditService = Depends(get_audit_service)
) -> ApiResponse:
    return ok(await audit_service.mark_reviewed(log_id, actor.user_id, notes=body.notes), "Entry reviewed")
