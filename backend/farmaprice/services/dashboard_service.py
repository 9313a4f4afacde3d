"""Dashboard Summary Builder - KPIs, top-N lists and trend series in one cached response"""
import logging
import math
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from farmaprice.core.concurrency import settle_all
from farmaprice.core.config import settings
from farmaprice.models.alert import PriceAlert
from farmaprice.models.insight import AIInsight
from farmaprice.models.observation import PriceObservation
from farmaprice.models.pharmacy import Pharmacy
from farmaprice.models.product import Product
from farmaprice.models.search_profile import SearchProfile, SearchProfileProduct
from farmaprice.schemas.dashboard import (
    DashboardKPIs,
    DashboardSummary,
    InsightResponse,
    PriceTrendPoint,
    TopCompetitor,
    VolatileProduct,
)
from farmaprice.schemas.search import Coordinates
from farmaprice.services.cache import ResponseCache
from farmaprice.services.profile_service import LocationUnavailable, get_active_profile, resolve_coordinates

logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0
LATEST_INSIGHTS = 5


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    lat1, lon1, lat2, lon2 = map(math.radians, (a.lat, a.lon, b.lat, b.lon))
    h = (
        math.sin((lat2 - lat1) / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin((lon2 - lon1) / 2) ** 2
    )
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(h)))


def dashboard_cache_key(user_id: str) -> str:
    return f"dashboard_{user_id}"


def insight_response(insight: AIInsight) -> InsightResponse:
    return InsightResponse(
        id=insight.id,
        insight_type=insight.insight_type,
        title=insight.title,
        content=insight.content,
        confidence_score=float(insight.confidence_score) if insight.confidence_score is not None else None,
        created_at=insight.created_at.isoformat() if insight.created_at else None,
    )


def _naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


async def _active_product_ids(db: AsyncSession, user_id: str) -> List[int]:
    result = await db.execute(
        select(SearchProfileProduct.product_id)
        .join(SearchProfile, SearchProfile.id == SearchProfileProduct.search_profile_id)
        .where(SearchProfile.user_id == user_id, SearchProfile.is_active == True)  # noqa: E712
    )
    return sorted(set(result.scalars().all()))


def _user_observations(user_id: str, since: datetime):
    """Observations of the user's own pharmacy set collected since ``since``."""
    return (
        select(PriceObservation, Pharmacy.is_own_pharmacy)
        .join(Pharmacy, Pharmacy.id == PriceObservation.pharmacy_id)
        .where(Pharmacy.user_id == user_id, PriceObservation.collected_at >= since)
    )


async def query_kpis(db: AsyncSession, user_id: str, now: datetime) -> DashboardKPIs:
    activity_since = now - timedelta(hours=settings.KPI_ACTIVITY_WINDOW_HOURS)
    margin_since = now - timedelta(days=settings.VOLATILITY_WINDOW_DAYS)

    product_ids = await _active_product_ids(db, user_id)

    result = await db.execute(
        select(Pharmacy.id).where(Pharmacy.user_id == user_id, Pharmacy.is_own_pharmacy == False)  # noqa: E712
    )
    competitor_ids = set(result.scalars().all())

    result = await db.execute(_user_observations(user_id, margin_since))
    recent_products = set()
    active_competitors = set()
    competitor_prices: Dict[int, List[float]] = defaultdict(list)
    for observation, is_own in result.all():
        if _naive_utc(observation.collected_at) >= activity_since:
            recent_products.add(observation.product_id)
            if not is_own:
                active_competitors.add(observation.pharmacy_id)
        if not is_own and observation.price and observation.price > 0:
            competitor_prices[observation.product_id].append(float(observation.price))

    margins = []
    if product_ids:
        result = await db.execute(select(Product.id, Product.own_price).where(Product.id.in_(product_ids)))
        for product_id, own_price in result.all():
            avg = _mean(competitor_prices.get(product_id, []))
            if avg and own_price and own_price > 0:
                margins.append((float(own_price) - avg) / avg * 100)
            else:
                margins.append(0.0)

    result = await db.execute(
        select(func.count(PriceAlert.id)).where(
            PriceAlert.user_id == user_id,
            PriceAlert.is_active == True,  # noqa: E712
        )
    )

    return DashboardKPIs(
        total_products=len(product_ids),
        monitored_products=len(recent_products.intersection(product_ids)),
        total_competitors=len(competitor_ids),
        active_competitors=len(active_competitors),
        avg_margin_change=round(_mean(margins) or 0.0, 2),
        active_alerts=result.scalar() or 0,
    )


async def query_volatile_products(
    db: AsyncSession,
    user_id: str,
    now: datetime,
    limit: Optional[int] = None,
) -> List[VolatileProduct]:
    """Monitored products ranked by price spread over the trailing window."""
    since = now - timedelta(days=settings.VOLATILITY_WINDOW_DAYS)
    product_ids = await _active_product_ids(db, user_id)
    if not product_ids:
        return []

    result = await db.execute(
        select(PriceObservation.product_id, PriceObservation.price, Product.name)
        .join(Pharmacy, Pharmacy.id == PriceObservation.pharmacy_id)
        .join(Product, Product.id == PriceObservation.product_id)
        .where(
            Pharmacy.user_id == user_id,
            PriceObservation.product_id.in_(product_ids),
            PriceObservation.collected_at >= since,
            PriceObservation.is_available == True,  # noqa: E712
        )
    )

    prices: Dict[int, List[float]] = defaultdict(list)
    names: Dict[int, str] = {}
    for product_id, price, name in result.all():
        prices[product_id].append(float(price))
        names[product_id] = name

    volatile = []
    for product_id, values in prices.items():
        if len(values) < settings.MIN_OBSERVATIONS_FOR_VOLATILITY:
            continue
        low, high, avg = min(values), max(values), sum(values) / len(values)
        volatile.append(VolatileProduct(
            product_id=product_id,
            product_name=names[product_id],
            volatility_score=round((high - low) / avg * 100, 2) if avg > 0 else 0.0,
            min_price=round(low, 2),
            max_price=round(high, 2),
            avg_price=round(avg, 2),
            price_change_pct=round((high - low) / low * 100, 2) if low > 0 else 0.0,
        ))

    volatile.sort(key=lambda v: (-v.volatility_score, v.product_id))
    return volatile[:limit or settings.DASHBOARD_TOP_N]


async def query_top_competitors(
    db: AsyncSession,
    user_id: str,
    now: datetime,
    limit: Optional[int] = None,
) -> List[TopCompetitor]:
    """Competitors with recent prices, by stored aggressiveness score then product coverage."""
    since = now - timedelta(days=settings.VOLATILITY_WINDOW_DAYS)

    center = None
    profile = await get_active_profile(db, user_id)
    if profile is not None:
        try:
            center = await resolve_coordinates(db, profile)
        except LocationUnavailable:
            center = None

    result = await db.execute(
        select(Pharmacy).where(Pharmacy.user_id == user_id, Pharmacy.is_own_pharmacy == False)  # noqa: E712
    )
    competitors = {p.id: p for p in result.scalars().all()}
    if not competitors:
        return []

    result = await db.execute(
        select(
            PriceObservation.pharmacy_id,
            PriceObservation.product_id,
            PriceObservation.price,
            PriceObservation.is_available,
            PriceObservation.collected_at,
        ).where(
            PriceObservation.pharmacy_id.in_(list(competitors)),
            PriceObservation.collected_at >= since,
        )
    )

    products: Dict[int, set] = defaultdict(set)
    prices: Dict[int, List[float]] = defaultdict(list)
    last_seen: Dict[int, datetime] = {}
    for pharmacy_id, product_id, price, is_available, collected_at in result.all():
        collected_at = _naive_utc(collected_at)
        if pharmacy_id not in last_seen or collected_at > last_seen[pharmacy_id]:
            last_seen[pharmacy_id] = collected_at
        # Out-of-stock rows only count as activity
        if is_available and price is not None and price > 0:
            products[pharmacy_id].add(product_id)
            prices[pharmacy_id].append(float(price))

    top = []
    for pharmacy_id, product_set in products.items():
        pharmacy = competitors[pharmacy_id]
        distance = None
        if center is not None and pharmacy.latitude is not None and pharmacy.longitude is not None:
            distance = haversine_km(
                center, Coordinates(lat=float(pharmacy.latitude), lon=float(pharmacy.longitude))
            )
        top.append(TopCompetitor(
            pharmacy_id=pharmacy.id,
            pharmacy_name=pharmacy.name,
            aggressiveness_score=float(pharmacy.aggressiveness_score or 0),
            competitiveness_rank=pharmacy.competitiveness_rank,
            distance_km=round(distance, 2) if distance is not None else None,
            total_products=len(product_set),
            avg_price=round(_mean(prices[pharmacy_id]) or 0.0, 2),
            last_update=last_seen[pharmacy_id].isoformat(),
        ))

    top.sort(key=lambda c: (-c.aggressiveness_score, -c.total_products, c.pharmacy_id))
    return top[:limit or settings.DASHBOARD_TOP_N]


async def query_price_trends(db: AsyncSession, user_id: str, now: datetime) -> List[PriceTrendPoint]:
    """Daily own vs competitor average, newest day first."""
    since = now - timedelta(days=settings.VOLATILITY_WINDOW_DAYS)
    result = await db.execute(
        _user_observations(user_id, since).where(PriceObservation.is_available == True)  # noqa: E712
    )

    own: Dict = defaultdict(list)
    competitor: Dict = defaultdict(list)
    day_products: Dict = defaultdict(set)
    for observation, is_own in result.all():
        day = _naive_utc(observation.collected_at).date()
        (own if is_own else competitor)[day].append(float(observation.price))
        day_products[day].add(observation.product_id)

    points = []
    for day in sorted(day_products, reverse=True):
        own_avg = _mean(own[day])
        competitor_avg = _mean(competitor[day])
        advantage = 0.0
        if competitor_avg and own_avg is not None:
            advantage = (competitor_avg - own_avg) / competitor_avg * 100
        points.append(PriceTrendPoint(
            day_date=day.isoformat(),
            avg_own_price=round(own_avg or 0.0, 2),
            avg_competitor_price=round(competitor_avg or 0.0, 2),
            price_advantage_pct=round(advantage, 2),
            total_products=len(day_products[day]),
        ))
    return points


async def query_insights(db: AsyncSession, user_id: str, now: datetime) -> List[InsightResponse]:
    result = await db.execute(
        select(AIInsight)
        .where(
            AIInsight.user_id == user_id,
            AIInsight.is_active == True,  # noqa: E712
            or_(AIInsight.expires_at.is_(None), AIInsight.expires_at > now),
        )
        .order_by(AIInsight.created_at.desc(), AIInsight.id.desc())
        .limit(LATEST_INSIGHTS)
    )
    return [insight_response(i) for i in result.scalars().all()]


class DashboardService:
    """
    Builds the dashboard summary.

    The five queries run concurrently, each in its own session. Empty results
    are normal and come back as zero/empty defaults. The joined summary is
    cached per user; ``force_refresh`` skips the cache read but still writes.
    """

    def __init__(self, session_factory: async_sessionmaker, cache: ResponseCache):
        self.session_factory = session_factory
        self.cache = cache

    async def _run(self, query, user_id: str, now: datetime):
        async with self.session_factory() as db:
            return await query(db, user_id, now)

    async def get_summary(
        self,
        user_id: str,
        force_refresh: bool = False,
        now: Optional[datetime] = None,
    ) -> DashboardSummary:
        cache_key = dashboard_cache_key(user_id)
        if not force_refresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug(f"Cache hit: {cache_key}")
                return cached.model_copy(update={"cached": True})

        now = now or datetime.utcnow()
        outcomes = await settle_all([
            self._run(query_kpis, user_id, now),
            self._run(query_volatile_products, user_id, now),
            self._run(query_top_competitors, user_id, now),
            self._run(query_price_trends, user_id, now),
            self._run(query_insights, user_id, now),
        ])

        failed = [o.error for o in outcomes if not o.ok]
        if failed:
            for error in failed:
                logger.error(f"Dashboard query failed for user {user_id}: {error!r}")
            raise failed[0]

        kpis, volatile, competitors, trends, insights = (o.value for o in outcomes)
        summary = DashboardSummary(
            kpis=kpis or DashboardKPIs(),
            volatile_products=volatile or [],
            top_competitors=competitors or [],
            price_trends=trends or [],
            ai_insights=insights or [],
            last_update=now.isoformat(),
        )
        self.cache.set(cache_key, summary)
        return summary
