"""Pharmacy (competitor registry) model"""
from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, UniqueConstraint
from sqlalchemy.sql import func

from farmaprice.core.database import Base


class Pharmacy(Base):
    __tablename__ = "pharmacies"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    cnpj = Column(String(20))
    address = Column(String)
    latitude = Column(Numeric(10, 7))
    longitude = Column(Numeric(10, 7))
    phone = Column(String(30))

    # The user's own store; never scored or ranked
    is_own_pharmacy = Column(Boolean, nullable=False, default=False)

    # Derived by the scoring pass, not on read
    aggressiveness_score = Column(Numeric(5, 2), nullable=False, default=0)
    competitiveness_rank = Column(Integer)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_pharmacy_user_name"),
    )
