"""Tests for reference data seeding."""

import pytest
from sqlalchemy import func, select

from farmaprice.models import MedicineCategory, Product, ReferenceCity
from farmaprice.services.seed_service import CATEGORIES, CITIES, PRODUCTS, seed_data


async def count(db, model):
    return (await db.execute(select(func.count()).select_from(model))).scalar()


@pytest.mark.asyncio
async def test_seed_runs_once(db, session_factory):
    """Test that seeding fills empty tables and is skipped afterwards."""
    await seed_data(session_factory)
    await seed_data(session_factory)

    assert await count(db, ReferenceCity) == len(CITIES)
    assert await count(db, MedicineCategory) == len(CATEGORIES)
    assert await count(db, Product) == len(PRODUCTS)


@pytest.mark.asyncio
async def test_seeded_products_have_categories(db, session_factory):
    """Test that every seeded product is linked to its category."""
    await seed_data(session_factory)

    products = (await db.execute(select(Product))).scalars().all()

    assert all(p.category is not None for p in products)
    assert all(p.own_price is None for p in products)
