"""Seed service for reference data"""
import logging
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from farmaprice.core.database import AsyncSessionLocal
from farmaprice.models.product import MedicineCategory, Product
from farmaprice.models.search_profile import ReferenceCity

logger = logging.getLogger(__name__)

# Paraná, the pricing API's coverage area
CITIES = [
    ('Curitiba', '-25.4284', '-49.2733'),
    ('Londrina', '-23.3045', '-51.1696'),
    ('Maringá', '-23.4205', '-51.9333'),
    ('Ponta Grossa', '-25.0950', '-50.1619'),
    ('Cascavel', '-24.9555', '-53.4552'),
    ('São José dos Pinhais', '-25.5302', '-49.2061'),
    ('Foz do Iguaçu', '-25.5163', '-54.5854'),
    ('Guarapuava', '-25.3935', '-51.4562'),
]

CATEGORIES = [
    ('Analgésicos', 'Medicamentos para alívio de dor'),
    ('Antibióticos', 'Medicamentos para combater infecções bacterianas'),
    ('Anti-inflamatórios', 'Medicamentos para reduzir inflamação'),
    ('Antiácidos', 'Medicamentos para neutralizar acidez estomacal'),
    ('Anti-hipertensivos', 'Medicamentos para controle da pressão arterial'),
    ('Antidiabéticos', 'Medicamentos para controle do diabetes'),
    ('Antialérgicos', 'Medicamentos para alívio de alergias'),
    ('Vitaminas e Suplementos', 'Suplementos nutricionais e vitamínicos'),
]

# (name, active ingredient, category)
PRODUCTS = [
    ('Dipirona Sódica 500mg', 'Dipirona', 'Analgésicos'),
    ('Paracetamol 750mg', 'Paracetamol', 'Analgésicos'),
    ('Novalgina 500mg', 'Dipirona', 'Analgésicos'),
    ('Amoxicilina 500mg', 'Amoxicilina', 'Antibióticos'),
    ('Azitromicina 500mg', 'Azitromicina', 'Antibióticos'),
    ('Ibuprofeno 600mg', 'Ibuprofeno', 'Anti-inflamatórios'),
    ('Nimesulida 100mg', 'Nimesulida', 'Anti-inflamatórios'),
    ('Omeprazol 20mg', 'Omeprazol', 'Antiácidos'),
    ('Pantoprazol 40mg', 'Pantoprazol', 'Antiácidos'),
    ('Losartana Potássica 50mg', 'Losartana', 'Anti-hipertensivos'),
    ('Anlodipino 5mg', 'Anlodipino', 'Anti-hipertensivos'),
    ('Metformina 850mg', 'Metformina', 'Antidiabéticos'),
    ('Loratadina 10mg', 'Loratadina', 'Antialérgicos'),
    ('Vitamina C 1g', 'Ácido Ascórbico', 'Vitaminas e Suplementos'),
]


async def seed_data(session_factory: async_sessionmaker = AsyncSessionLocal):
    """Seed reference cities, categories and common products if empty"""
    async with session_factory() as db:
        # Check if already seeded
        result = await db.execute(select(ReferenceCity).limit(1))
        if result.scalar_one_or_none():
            return  # Already seeded

        db.add_all([
            ReferenceCity(name=name, latitude=Decimal(lat), longitude=Decimal(lon))
            for name, lat, lon in CITIES
        ])

        categories = {
            name: MedicineCategory(name=name, description=description)
            for name, description in CATEGORIES
        }
        db.add_all(categories.values())
        await db.flush()

        db.add_all([
            Product(name=name, active_ingredient=ingredient, category_id=categories[category].id)
            for name, ingredient, category in PRODUCTS
        ])
        await db.commit()
        logger.info(
            f"Database seeded with {len(CITIES)} cities, {len(CATEGORIES)} categories "
            f"and {len(PRODUCTS)} products"
        )
