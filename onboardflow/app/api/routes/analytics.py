"""
Analytics API Routes
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query

from onboardflow.app.api.deps import Actor, get_analytics_service, get_current_user
from onboardflow.app.models.api.common import ApiResponse, ok
from onboardflow.app.services.analytics_service import AnalyticsService

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/onboarding", response_model=ApiResponse, summary="Onboarding Analytics")
async def get_onboarding_analytics(
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    champion_id: Optional[str] = Query(None, alias="championId"),
    client_id: Optional[str] = Query(None, alias="clientId"),
    actor: Actor = Depends(get_current_user),
    analytics_service: AnalyticsService = Depends(get_analytics_service)
) -> ApiResponse:
    analytics = await analytics_service.get_onboarding_analytics(
        start_date=start_date, end_date=end_date, champion_id=champion_id, client_id=client_id
    )
    return ok(analytics)


@router.get("/users/{user_id}", response_model=ApiResponse, summary="User Performance")
async def get_user_performance(
    user_id: str,
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    actor: Actor = Depends(get_current_user),
    analytics_service: AnalyticsService = Depends(get_analytics_service)
) -> ApiResponse:
    return ok(await analytics_service.get_user_performance(user_id, start_date=start_date, end_date=end_date))


@router.get("/guides", response_model=ApiResponse, summary="Guide Effectiveness")
async def get_guide_analytics(
    guide_status: Optional[str] = Query(None, alias="status"),
    category: Optional[str] = Query(None),
    actor: Actor = Depends(get_current_user),
    analytics_service: AnalyticsService = Depends(get_analytics_service)
) -> ApiResponse:
    return ok(await analytics_service.get_guide_analytics({"status": guide_status, "category": category}))


@router.get("/dashboard", response_model=ApiResponse, summary="Dashboard Summary")
async def get_dashboard_summary(
    actor: Actor = Depends(get_current_user),
    analytics_service: AnalyticsService = Depends(get_analytics_service)
) -> ApiResponse:
    return ok(await analytics_service.get_dashboard_summary(user_id=actor.user_id))
