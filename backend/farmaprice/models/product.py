"""Product and medicine category models"""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from farmaprice.core.database import Base


class MedicineCategory(Base):
    __tablename__ = "medicine_categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    external_id = Column(String(50))
    name = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(String)
    sku = Column(String(50))
    category_id = Column(Integer, ForeignKey("medicine_categories.id", ondelete="SET NULL"), index=True)
    active_ingredient = Column(String(255), index=True)

    # Set by the user only; NULL means "not yet priced"
    own_price = Column(Numeric(10, 2))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    category = relationship("MedicineCategory", lazy="selectin")
