"""Search profile models: where to search, how far, and for which products"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Numeric,
    Boolean,
    DateTime,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from farmaprice.core.database import Base

LOCATION_AUTO = "auto"
LOCATION_CITY = "city"
LOCATION_CEP = "cep"


class ReferenceCity(Base):
    __tablename__ = "reference_cities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    latitude = Column(Numeric(10, 7), nullable=False)
    longitude = Column(Numeric(10, 7), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class SearchProfile(Base):
    __tablename__ = "search_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    profile_name = Column(String(100), nullable=False)
    is_active = Column(Boolean, nullable=False, default=False)
    search_radius_km = Column(Integer, nullable=False, default=3)

    # auto = device coordinates pinned once, city = reference city, cep = postal code
    location_type = Column(String(10), nullable=False, default=LOCATION_AUTO)
    selected_city_id = Column(Integer, ForeignKey("reference_cities.id", ondelete="SET NULL"))
    cep = Column(String(9))
    saved_latitude = Column(Numeric(10, 7))
    saved_longitude = Column(Numeric(10, 7))
    location_updated_at = Column(DateTime(timezone=True))

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    selected_city = relationship("ReferenceCity", lazy="selectin")
    products = relationship("Product", secondary="search_profile_products", lazy="selectin")

    __table_args__ = (
        UniqueConstraint("user_id", "profile_name", name="uq_profile_name_per_user"),
        CheckConstraint("search_radius_km >= 1 AND search_radius_km <= 50", name="ck_profile_radius"),
        CheckConstraint("location_type IN ('auto', 'city', 'cep')", name="ck_profile_location_type"),
    )


# At most one active profile per user, enforced by the store itself
Index(
    "uq_search_profiles_one_active",
    SearchProfile.user_id,
    unique=True,
    sqlite_where=SearchProfile.is_active == True,  # noqa: E712
    postgresql_where=SearchProfile.is_active == True,  # noqa: E712
)


class SearchProfileProduct(Base):
    __tablename__ = "search_profile_products"

    id = Column(Integer, primary_key=True, index=True)
    search_profile_id = Column(Integer, ForeignKey("search_profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("search_profile_id", "product_id", name="uq_profile_product"),
    )
