"""Price Observation model (immutable event log)"""
from sqlalchemy import Column, Integer, BigInteger, String, Numeric, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.sql import func

from farmaprice.core.database import Base


class PriceObservation(Base):
    __tablename__ = "price_observations"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, index=True)
    pharmacy_id = Column(Integer, ForeignKey("pharmacies.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)

    price = Column(Numeric(10, 2), nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    source = Column(String(50), nullable=False, default="menor_preco_api")

    collected_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("price >= 0", name="ck_observation_price_non_negative"),
    )
