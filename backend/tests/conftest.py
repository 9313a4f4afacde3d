"""Shared fixtures: a throwaway SQLite database, session factory and a manual clock."""
from datetime import datetime
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import farmaprice.models  # noqa: F401
from farmaprice.core.database import Base
from farmaprice.models import (
    Pharmacy,
    PriceObservation,
    Product,
    ReferenceCity,
    SearchProfile,
)
from farmaprice.schemas.search import CompetitorPrice, Coordinates, Establishment

NOW = datetime(2025, 11, 20, 12, 0, 0)


class FakeClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def engine(tmp_path):
    # File-backed so concurrent sessions each get their own connection
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


def competitor_price(
    name: str,
    price: float,
    product: str = "Dipirona 500mg",
    coords: Coordinates = None,
    distance: float = 1.0,
) -> CompetitorPrice:
    return CompetitorPrice(
        desc=product,
        valor=price,
        estabelecimento=Establishment(nome=name, coordenadas=coords),
        distkm=distance,
        tempo="há 5 min",
    )


async def add_product(db, name: str, own_price=None) -> Product:
    product = Product(name=name, own_price=Decimal(str(own_price)) if own_price is not None else None)
    db.add(product)
    await db.commit()
    await db.refresh(product)
    return product


async def add_pharmacy(db, user_id: str, name: str, own: bool = False, lat=None, lon=None) -> Pharmacy:
    pharmacy = Pharmacy(
        user_id=user_id,
        name=name,
        is_own_pharmacy=own,
        latitude=Decimal(str(lat)) if lat is not None else None,
        longitude=Decimal(str(lon)) if lon is not None else None,
    )
    db.add(pharmacy)
    await db.commit()
    await db.refresh(pharmacy)
    return pharmacy


async def add_observation(db, pharmacy: Pharmacy, product: Product, price: float, collected_at: datetime,
                          available: bool = True) -> PriceObservation:
    observation = PriceObservation(
        pharmacy_id=pharmacy.id,
        product_id=product.id,
        price=Decimal(str(price)),
        is_available=available,
        collected_at=collected_at,
    )
    db.add(observation)
    await db.commit()
    return observation


async def add_profile(db, user_id: str, name: str, active: bool = False, products=(), **fields) -> SearchProfile:
    profile = SearchProfile(user_id=user_id, profile_name=name, is_active=active, **fields)
    profile.products = list(products)
    db.add(profile)
    await db.commit()
    await db.refresh(profile)
    return profile


async def add_city(db, name: str = "Curitiba", lat: float = -25.4284, lon: float = -49.2733) -> ReferenceCity:
    city = ReferenceCity(name=name, latitude=Decimal(str(lat)), longitude=Decimal(str(lon)))
    db.add(city)
    await db.commit()
    await db.refresh(city)
    return city
