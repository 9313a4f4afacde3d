"""Price Monitor - joins each monitored product's own price against nearby competitors"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from farmaprice.core.concurrency import settle_all
from farmaprice.core.config import settings
from farmaprice.models.product import Product
from farmaprice.schemas.monitor import MonitoredProduct, MonitoringStats, PharmacyPriceDetail
from farmaprice.schemas.search import Coordinates
from farmaprice.services.observation_service import ObservationService
from farmaprice.services.search_service import SearchService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PriceSpread:
    """min/max/mean of the positive competitor prices for one product"""
    lowest: Optional[float]
    highest: Optional[float]
    average: Optional[float]  # unrounded


def price_spread(prices: Sequence[float]) -> PriceSpread:
    valid = [p for p in prices if p > 0]
    if not valid:
        return PriceSpread(None, None, None)
    return PriceSpread(min(valid), max(valid), sum(valid) / len(valid))


def calculate_volatility(prices: Sequence[float]) -> float:
    """Spread over mean, in percent: (max - min) / average * 100, one decimal."""
    valid = [p for p in prices if p > 0]
    if not valid:
        return 0.0
    average = sum(valid) / len(valid)
    if average <= 0:
        return 0.0
    return round((max(valid) - min(valid)) / average * 100, 1)


def _has_price(value: Optional[float]) -> bool:
    return value is not None and value > 0


def determine_status(
    own_price: Optional[float],
    avg_competitor_price: Optional[float],
    highest_competitor_price: Optional[float],
) -> str:
    """
    Classify the own price against the market.

    competitive: below the competitor average
    high: above the highest competitor (or the average when no highest is known)
    moderate: anything in between
    no_price: own price or competitor average missing
    """
    if not _has_price(own_price) or not _has_price(avg_competitor_price):
        return 'no_price'

    if own_price < avg_competitor_price:
        return 'competitive'
    ceiling = highest_competitor_price if _has_price(highest_competitor_price) else avg_competitor_price
    if own_price > ceiling:
        return 'high'
    return 'moderate'


def calculate_trend(
    own_price: Optional[float],
    avg_competitor_price: Optional[float],
    dead_zone_pct: Optional[float] = None,
) -> Tuple[str, float]:
    """
    Position of the own price relative to the market average.

    Returns (trend, percentage). Differences inside the dead zone are reported
    as neutral with 0 change. 'up' means the own price is above the market.
    """
    if not _has_price(own_price) or not _has_price(avg_competitor_price):
        return 'neutral', 0.0

    dead_zone = settings.TREND_DEAD_ZONE_PCT if dead_zone_pct is None else dead_zone_pct
    percentage = (own_price - avg_competitor_price) / avg_competitor_price * 100

    if abs(percentage) < dead_zone:
        return 'neutral', 0.0
    return ('up' if percentage > 0 else 'down'), round(percentage, 1)


def calculate_stats(products: Sequence[MonitoredProduct]) -> MonitoringStats:
    """Status counts and the average saving of the own price versus the market."""
    with_prices = [p for p in products if _has_price(p.own_price) and _has_price(p.avg_competitor_price)]

    avg_savings = 0.0
    if with_prices:
        avg_savings = sum(
            (p.avg_competitor_price - p.own_price) / p.avg_competitor_price * 100
            for p in with_prices
        ) / len(with_prices)

    return MonitoringStats(
        total_products=len(products),
        products_monitored=sum(1 for p in products if p.total_competitors > 0),
        competitive_count=sum(1 for p in products if p.status == 'competitive'),
        moderate_count=sum(1 for p in products if p.status == 'moderate'),
        high_count=sum(1 for p in products if p.status == 'high'),
        no_price_count=sum(1 for p in products if p.status == 'no_price'),
        avg_savings_percentage=round(avg_savings, 1),
    )


def _base_fields(product: Product) -> dict:
    return {
        "product_id": product.id,
        "name": product.name,
        "active_ingredient": product.active_ingredient,
        "category_name": product.category.name if product.category else "Sem categoria",
        "own_price": float(product.own_price) if product.own_price is not None else None,
    }


def degraded_result(product: Product) -> MonitoredProduct:
    """Placeholder for a product whose fetch or computation failed."""
    return MonitoredProduct(**_base_fields(product), degraded=True)


class PriceMonitor:
    """
    Per-product monitoring pass.

    Every product is searched concurrently (through the search cache). A
    product that fails yields a degraded placeholder; the pass itself never
    raises because of one product, and results keep the input order.
    """

    def __init__(self, search_service: SearchService, observations: Optional[ObservationService] = None):
        self.search_service = search_service
        self.observations = observations

    async def monitor_products(
        self,
        products: Sequence[Product],
        center: Coordinates,
        radius_km: int,
        user_id: Optional[str] = None,
    ) -> List[MonitoredProduct]:
        if not products:
            return []

        outcomes = await settle_all(
            self._monitor_product(product, center, radius_km, user_id) for product in products
        )

        results = []
        for product, outcome in zip(products, outcomes):
            if outcome.ok:
                results.append(outcome.value)
            else:
                logger.warning(f"Monitoring failed for product {product.name!r}: {outcome.error}")
                results.append(degraded_result(product))
        return results

    async def _monitor_product(
        self,
        product: Product,
        center: Coordinates,
        radius_km: int,
        user_id: Optional[str],
    ) -> MonitoredProduct:
        response = await self.search_service.search_products(
            termo=product.name,
            raio=radius_km,
            lat=center.lat,
            lon=center.lon,
            ordem="preco",
        )
        records = response.produtos
        logger.debug(f"{product.name}: {len(records)} competitor records")

        competitor_prices = [r.valor for r in records if r.has_valid_price]
        spread = price_spread(competitor_prices)
        base = _base_fields(product)
        own_price = base["own_price"]
        trend, change = calculate_trend(own_price, spread.average)

        details = sorted(
            (
                PharmacyPriceDetail(
                    pharmacy_name=r.estabelecimento.nome,
                    product_name=r.desc,
                    price=r.valor,
                    distance_km=r.distkm,
                    address=r.estabelecimento.endereco,
                    cnpj=r.estabelecimento.cnpj,
                    coordinates=r.estabelecimento.coordenadas,
                    collected_at=r.data_coleta,
                )
                for r in records
                if r.has_valid_price
            ),
            key=lambda d: d.price,
        )

        if self.observations is not None and user_id:
            await self._persist(user_id, product, records)

        return MonitoredProduct(
            **base,
            competitor_prices=competitor_prices,
            lowest_competitor_price=spread.lowest,
            highest_competitor_price=spread.highest,
            avg_competitor_price=round(spread.average, 2) if spread.average is not None else None,
            volatility=calculate_volatility(competitor_prices),
            trend=trend,
            price_change=change,
            status=determine_status(own_price, spread.average, spread.highest),
            total_competitors=len(records),
            pharmacy_details=details,
        )

    async def _persist(self, user_id: str, product: Product, records) -> None:
        # The comparison is returned even if saving history fails
        try:
            written = await self.observations.record_competitor_prices(user_id, product.id, records)
            logger.debug(f"{product.name}: saved {written} observations")
        except Exception:
            logger.exception(f"Could not save observations for product {product.name!r}")
