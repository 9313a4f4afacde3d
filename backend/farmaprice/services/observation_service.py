"""Observation Service - append-only competitor price log and lazy competitor registry"""
import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from farmaprice.models.observation import PriceObservation
from farmaprice.models.pharmacy import Pharmacy
from farmaprice.schemas.search import CompetitorPrice, Establishment

logger = logging.getLogger(__name__)

SOURCE_MENOR_PRECO = "menor_preco_api"


def competitor_match_key(establishment: Establishment) -> Optional[str]:
    """
    Identity used to match an observed establishment against the registry.

    Best-effort: the exact display name, scoped to one user by the caller.
    Branches of a chain that share a name collapse into one competitor.
    """
    name = (establishment.nome or "").strip()
    return name or None


class CompetitorRegistry:
    """Resolves observed establishments to Pharmacy rows, creating them on first sight."""

    async def resolve(
        self,
        db: AsyncSession,
        user_id: str,
        establishment: Establishment,
    ) -> Optional[Pharmacy]:
        key = competitor_match_key(establishment)
        if key is None:
            return None

        pharmacy = await self._find(db, user_id, key)
        if pharmacy:
            return pharmacy

        coords = establishment.coordenadas
        pharmacy = Pharmacy(
            user_id=user_id,
            name=key,
            cnpj=establishment.cnpj,
            address=establishment.endereco,
            latitude=Decimal(str(coords.lat)) if coords else None,
            longitude=Decimal(str(coords.lon)) if coords else None,
            is_own_pharmacy=False,
            aggressiveness_score=Decimal("0"),
        )
        db.add(pharmacy)
        try:
            await db.commit()
        except IntegrityError:
            # Created concurrently by another product's monitoring task
            await db.rollback()
            return await self._find(db, user_id, key)

        await db.refresh(pharmacy)
        return pharmacy

    async def _find(self, db: AsyncSession, user_id: str, key: str) -> Optional[Pharmacy]:
        result = await db.execute(
            select(Pharmacy).where(
                Pharmacy.user_id == user_id,
                Pharmacy.name == key,
            )
        )
        return result.scalar_one_or_none()


class ObservationService:
    """
    Writes competitor price observations.

    Observations are immutable facts: one row per competitor record per
    successful fetch, never updated. Each record is written in its own
    transaction so a failing row is logged and skipped without affecting the
    others. Opens its own sessions so concurrent monitoring tasks never share one.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        registry: Optional[CompetitorRegistry] = None,
    ):
        self.session_factory = session_factory
        self.registry = registry or CompetitorRegistry()

    async def record_competitor_prices(
        self,
        user_id: str,
        product_id: int,
        records: Sequence[CompetitorPrice],
        collected_at: Optional[datetime] = None,
    ) -> int:
        """Persist one observation per named competitor record. Returns rows written."""
        collected_at = collected_at or datetime.utcnow()
        written = 0

        async with self.session_factory() as db:
            for record in records:
                try:
                    pharmacy = await self.registry.resolve(db, user_id, record.estabelecimento)
                    if pharmacy is None:
                        continue

                    db.add(PriceObservation(
                        pharmacy_id=pharmacy.id,
                        product_id=product_id,
                        price=Decimal(str(round(max(record.valor, 0.0), 2))),
                        is_available=record.has_valid_price,
                        source=SOURCE_MENOR_PRECO,
                        collected_at=collected_at,
                    ))
                    await db.commit()
                    written += 1
                except SQLAlchemyError:
                    await db.rollback()
                    logger.exception(
                        f"Failed to save observation of product {product_id} "
                        f"at {record.estabelecimento.nome!r}; skipping"
                    )

        return written
