"""Dashboard schemas"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class DashboardKPIs(BaseModel):
    total_products: int = 0
    monitored_products: int = 0
    total_competitors: int = 0
    active_competitors: int = 0
    avg_margin_change: float = 0.0
    active_alerts: int = 0


class VolatileProduct(BaseModel):
    product_id: int
    product_name: str
    volatility_score: float = 0.0
    min_price: float = 0.0
    max_price: float = 0.0
    avg_price: float = 0.0
    price_change_pct: float = 0.0


class TopCompetitor(BaseModel):
    pharmacy_id: int
    pharmacy_name: str
    aggressiveness_score: float = 0.0
    competitiveness_rank: Optional[int] = None
    distance_km: Optional[float] = None  # None when the centre or the pharmacy location is unknown
    total_products: int = 0
    avg_price: float = 0.0
    last_update: Optional[str] = None


class PriceTrendPoint(BaseModel):
    day_date: str
    avg_own_price: float = 0.0
    avg_competitor_price: float = 0.0
    price_advantage_pct: float = 0.0
    total_products: int = 0


class InsightResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    insight_type: str
    title: str
    content: str
    confidence_score: Optional[float] = None
    created_at: Optional[str] = None


class DashboardSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kpis: DashboardKPIs = Field(default_factory=DashboardKPIs)
    volatile_products: List[VolatileProduct] = Field(default_factory=list, alias="volatileProducts")
    top_competitors: List[TopCompetitor] = Field(default_factory=list, alias="topCompetitors")
    price_trends: List[PriceTrendPoint] = Field(default_factory=list, alias="priceTrends")
    ai_insights: List[InsightResponse] = Field(default_factory=list, alias="aiInsights")
    last_update: str = Field(..., alias="lastUpdate")
    cached: bool = False


class ScoreUpdateResponse(BaseModel):
    success: bool = True
    updated: int


class InsightGenerationResponse(BaseModel):
    success: bool = True
    insights: List[InsightResponse]
    dashboard: DashboardSummary
