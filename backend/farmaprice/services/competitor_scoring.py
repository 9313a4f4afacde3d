"""Competitor Scoring - batch aggressiveness score and ranking per user"""
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from farmaprice.core.config import settings
from farmaprice.models.observation import PriceObservation
from farmaprice.models.pharmacy import Pharmacy

logger = logging.getLogger(__name__)


@dataclass
class CompetitorActivity:
    """What one competitor did inside the scoring window"""
    prices: List[float]
    product_ids: Set[int]
    active_days: Set


def aggressiveness_score(
    competitor_avg: Optional[float],
    market_avg: Optional[float],
    active_days: int,
) -> float:
    """
    0-100 rating: higher means cheaper than the market and updated more often.

    Starts at the baseline, gains up to the price weight for being below the
    market average, and a fixed bonus per day with at least one observation.
    """
    score = settings.SCORE_BASELINE

    if market_avg and competitor_avg and market_avg > 0 and competitor_avg > 0:
        if competitor_avg < market_avg:
            score += (market_avg - competitor_avg) / market_avg * settings.SCORE_PRICE_WEIGHT

    score += active_days * settings.SCORE_ACTIVE_DAY_BONUS

    return round(max(0.0, min(100.0, score)), 2)


def _mean(values: List[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


class CompetitorScorer:
    """
    Recomputes aggressiveness scores and competitiveness ranks.

    Runs on demand, never on a dashboard read: it scans every observation of
    the user's competitors in the trailing window.
    """

    def __init__(self, window_days: Optional[int] = None):
        self.window_days = window_days or settings.SCORING_WINDOW_DAYS

    async def update_scores(self, db: AsyncSession, user_id: str, now: Optional[datetime] = None) -> int:
        """Score and rank every non-own competitor of ``user_id``. Returns how many were scored."""
        now = now or datetime.utcnow()
        since = now - timedelta(days=self.window_days)

        result = await db.execute(
            select(Pharmacy)
            .where(Pharmacy.user_id == user_id, Pharmacy.is_own_pharmacy == False)  # noqa: E712
            .order_by(Pharmacy.id)
        )
        competitors = result.scalars().all()
        if not competitors:
            return 0

        result = await db.execute(
            select(
                PriceObservation.pharmacy_id,
                PriceObservation.product_id,
                PriceObservation.price,
                PriceObservation.is_available,
                PriceObservation.collected_at,
            )
            .join(Pharmacy, Pharmacy.id == PriceObservation.pharmacy_id)
            .where(Pharmacy.user_id == user_id, PriceObservation.collected_at >= since)
        )
        rows = result.all()

        activity: Dict[int, CompetitorActivity] = defaultdict(lambda: CompetitorActivity([], set(), set()))
        # Market prices per product across all of the user's pharmacies
        market: Dict[int, List[float]] = defaultdict(list)

        for pharmacy_id, product_id, price, is_available, collected_at in rows:
            entry = activity[pharmacy_id]
            entry.active_days.add(collected_at.date())
            if is_available and price is not None and price > 0:
                entry.prices.append(float(price))
                entry.product_ids.add(product_id)
                market[product_id].append(float(price))

        scores = []
        for pharmacy in competitors:
            entry = activity.get(pharmacy.id)
            if entry is None:
                score = aggressiveness_score(None, None, 0)
            else:
                market_prices = [p for product_id in entry.product_ids for p in market[product_id]]
                score = aggressiveness_score(
                    _mean(entry.prices),
                    _mean(market_prices),
                    len(entry.active_days),
                )
            scores.append((pharmacy, score))

        # Ties keep id order
        ranked = sorted(scores, key=lambda item: (-item[1], item[0].id))
        for rank, (pharmacy, score) in enumerate(ranked, start=1):
            pharmacy.aggressiveness_score = Decimal(str(score))
            pharmacy.competitiveness_rank = rank

        await db.commit()
        logger.info(f"Scored {len(ranked)} competitors for user {user_id}")
        return len(ranked)
