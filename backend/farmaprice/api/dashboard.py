"""Dashboard endpoints"""
from fastapi import APIRouter, Depends, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from farmaprice.api.deps import get_dashboard_service, get_insight_generator, get_scorer, get_user_id
from farmaprice.core.config import settings
from farmaprice.core.database import get_db
from farmaprice.schemas.dashboard import DashboardSummary, InsightGenerationResponse, ScoreUpdateResponse
from farmaprice.services.competitor_scoring import CompetitorScorer
from farmaprice.services.dashboard_service import DashboardService
from farmaprice.services.insight_service import InsightGenerator

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


@router.get("", response_model=DashboardSummary, response_model_by_alias=True)
@limiter.limit(f"{settings.RATE_LIMIT_PER_MINUTE}/minute")
async def get_dashboard(
    request: Request,
    refresh: bool = Query(False, description="Skip the cached summary"),
    user_id: str = Depends(get_user_id),
    dashboard: DashboardService = Depends(get_dashboard_service),
):
    """KPIs, volatile products, top competitors, price trends and recent insights."""
    return await dashboard.get_summary(user_id, force_refresh=refresh)


@router.post("/scores", response_model=ScoreUpdateResponse)
@limiter.limit(f"{settings.RATE_LIMIT_PER_MINUTE}/minute")
async def update_scores(
    request: Request,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    scorer: CompetitorScorer = Depends(get_scorer),
):
    """Recompute competitor aggressiveness scores and ranks."""
    updated = await scorer.update_scores(db, user_id)
    return ScoreUpdateResponse(updated=updated)


@router.post("/insights", response_model=InsightGenerationResponse, response_model_by_alias=True)
@limiter.limit(f"{settings.RATE_LIMIT_PER_MINUTE}/minute")
async def generate_insights(
    request: Request,
    user_id: str = Depends(get_user_id),
    db: AsyncSession = Depends(get_db),
    dashboard: DashboardService = Depends(get_dashboard_service),
    scorer: CompetitorScorer = Depends(get_scorer),
    generator: InsightGenerator = Depends(get_insight_generator),
):
    """Generate fresh insights, rescore competitors and rebuild the dashboard."""
    summary = await dashboard.get_summary(user_id)
    insights = await generator.generate(user_id, summary)
    await scorer.update_scores(db, user_id)
    refreshed = await dashboard.get_summary(user_id, force_refresh=True)
    return InsightGenerationResponse(insights=insights, dashboard=refreshed)
