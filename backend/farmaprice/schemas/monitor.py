"""Price monitoring schemas"""
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from farmaprice.schemas.search import Coordinates

PriceStatus = Literal['competitive', 'moderate', 'high', 'no_price']
PriceTrend = Literal['up', 'down', 'neutral']


class PharmacyPriceDetail(BaseModel):
    """One competitor's price for a monitored product"""
    pharmacy_name: str
    product_name: str
    price: float
    distance_km: Optional[float] = None
    address: Optional[str] = None
    cnpj: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    collected_at: Optional[str] = None


class MonitoredProduct(BaseModel):
    """Own price joined against the competitor market for one product"""
    product_id: int
    name: str
    active_ingredient: Optional[str] = None
    category_name: str = "Sem categoria"
    own_price: Optional[float] = None

    competitor_prices: List[float] = Field(default_factory=list)
    lowest_competitor_price: Optional[float] = None
    highest_competitor_price: Optional[float] = None
    avg_competitor_price: Optional[float] = None
    volatility: float = 0.0
    trend: PriceTrend = 'neutral'
    price_change: float = 0.0
    status: PriceStatus = 'no_price'
    total_competitors: int = 0
    pharmacy_details: List[PharmacyPriceDetail] = Field(default_factory=list)

    # Set when the product's fetch failed and this is a placeholder
    degraded: bool = False


class MonitoringStats(BaseModel):
    total_products: int = 0
    products_monitored: int = 0
    competitive_count: int = 0
    moderate_count: int = 0
    high_count: int = 0
    no_price_count: int = 0
    avg_savings_percentage: float = 0.0


class MonitoringResponse(BaseModel):
    profile_id: int
    profile_name: str
    coordinates: Coordinates
    radius_km: int
    products: List[MonitoredProduct]
    stats: MonitoringStats
    checked_at: str
