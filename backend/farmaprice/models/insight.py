"""AI insight model"""
from sqlalchemy import Column, Integer, String, Text, Numeric, Boolean, DateTime, Index
from sqlalchemy.sql import func

from farmaprice.core.database import Base


class AIInsight(Base):
    __tablename__ = "ai_insights"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)

    # market_analysis, pricing_opportunity, competitor_behavior
    insight_type = Column(String(30), nullable=False)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    confidence_score = Column(Numeric(5, 2))

    is_active = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    __table_args__ = (
        Index("idx_ai_insights_active", "user_id", "is_active", "expires_at"),
    )
