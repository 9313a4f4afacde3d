"""Tests for the monitor, profile and dashboard endpoints."""

from datetime import datetime, timedelta

import httpx
import pytest
import pytest_asyncio
from sqlalchemy import select

from conftest import add_city, add_observation, add_pharmacy, add_product, add_profile
from farmaprice.core.database import get_db
from farmaprice.main import create_app
from farmaprice.models import Pharmacy, PriceObservation
from farmaprice.services.insight_service import InsightGenerator
from farmaprice.services.upstream_client import MenorPrecoClient

USER = {"x-user-id": "user-1"}


def upstream_handler(request):
    term = request.url.params.get("termo")
    if term == "Omeprazol 20mg":
        return httpx.Response(503)
    return httpx.Response(200, json={"produtos": [
        {"desc": term, "valor": 8.0, "estabelecimento": {"nm_fan": "Farmácia A", "latlng": "-25.43,-49.27"}},
        {"desc": term, "valor": 12.0, "estabelecimento": {"nm_fan": "Farmácia B"}},
    ]})


@pytest_asyncio.fixture
async def client(session_factory):
    upstream = MenorPrecoClient(
        base_url="https://pricing.test/api/v1",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(upstream_handler)),
    )
    app = create_app(
        session_factory,
        init_database=False,
        client=upstream,
        insight_generator=InsightGenerator(session_factory, http_client=httpx.AsyncClient(), api_key=""),
    )

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest.mark.asyncio
async def test_monitor_active_profile(client, db):
    """Test a monitoring pass with one product degraded by an upstream failure."""
    city = await add_city(db)
    dipirona = await add_product(db, "Dipirona 500mg", own_price=9)
    omeprazol = await add_product(db, "Omeprazol 20mg", own_price=20)
    await add_profile(
        db, "user-1", "Centro", active=True, products=[dipirona, omeprazol],
        location_type="city", selected_city_id=city.id, search_radius_km=5,
    )

    response = await client.post("/api/v1/monitor", headers=USER)

    assert response.status_code == 200
    body = response.json()
    assert body["profile_name"] == "Centro"
    assert body["radius_km"] == 5
    assert body["coordinates"]["lat"] == pytest.approx(-25.4284)
    by_name = {p["name"]: p for p in body["products"]}
    assert by_name["Dipirona 500mg"]["status"] == 'competitive'
    assert by_name["Dipirona 500mg"]["avg_competitor_price"] == 10.0
    assert by_name["Omeprazol 20mg"]["degraded"] is True
    assert body["stats"]["total_products"] == 2
    assert body["stats"]["products_monitored"] == 1

    pharmacies = (await db.execute(select(Pharmacy).where(Pharmacy.user_id == "user-1"))).scalars().all()
    observations = (await db.execute(select(PriceObservation))).scalars().all()
    assert sorted(p.name for p in pharmacies) == ["Farmácia A", "Farmácia B"]
    assert len(observations) == 2


@pytest.mark.asyncio
async def test_monitor_without_active_profile(client, db):
    """Test that monitoring needs an active profile."""
    await add_profile(db, "user-1", "Centro")

    response = await client.post("/api/v1/monitor", headers=USER)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_monitor_without_location(client, db):
    """Test that an auto profile without saved coordinates cannot be monitored."""
    await add_profile(db, "user-1", "Centro", active=True, location_type="auto")

    response = await client.post("/api/v1/monitor", headers=USER)

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_profiles_list_and_activate(client, db):
    """Test listing profiles and switching the active one."""
    await add_profile(db, "user-1", "A", active=True)
    b = await add_profile(db, "user-1", "B")
    await add_profile(db, "user-2", "C", active=True)

    listed = await client.get("/api/v1/profiles", headers=USER)
    assert listed.json()["count"] == 2

    response = await client.post(f"/api/v1/profiles/{b.id}/activate", headers=USER)
    assert response.status_code == 200
    assert response.json()["is_active"] is True

    listed = await client.get("/api/v1/profiles", headers=USER)
    active = {p["profile_name"]: p["is_active"] for p in listed.json()["profiles"]}
    assert active == {"A": False, "B": True}


@pytest.mark.asyncio
async def test_activate_foreign_profile(client, db):
    """Test that another user's profile is not found."""
    foreign = await add_profile(db, "user-2", "C")

    response = await client.post(f"/api/v1/profiles/{foreign.id}/activate", headers=USER)

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_dashboard_summary(client, db):
    """Test the dashboard payload shape and its cache flag."""
    product = await add_product(db, "Dipirona 500mg", own_price=10)
    await add_profile(db, "user-1", "Centro", active=True, products=[product])
    competitor = await add_pharmacy(db, "user-1", "Farmácia A")
    await add_observation(db, competitor, product, 8.0, datetime.utcnow() - timedelta(hours=1))

    first = await client.get("/api/v1/dashboard", headers=USER)
    second = await client.get("/api/v1/dashboard", headers=USER)
    refreshed = await client.get("/api/v1/dashboard", params={"refresh": "true"}, headers=USER)

    assert first.status_code == 200
    body = first.json()
    assert set(body) >= {"kpis", "volatileProducts", "topCompetitors", "priceTrends", "aiInsights", "lastUpdate"}
    assert body["kpis"]["active_competitors"] == 1
    assert body["topCompetitors"][0]["pharmacy_name"] == "Farmácia A"
    assert body["cached"] is False
    assert second.json()["cached"] is True
    assert refreshed.json()["cached"] is False


@pytest.mark.asyncio
async def test_score_update(client, db):
    """Test that rescoring reports how many competitors were ranked."""
    await add_pharmacy(db, "user-1", "Farmácia A")
    await add_pharmacy(db, "user-1", "Farmácia B")
    await add_pharmacy(db, "user-1", "Minha Farmácia", own=True)

    response = await client.post("/api/v1/dashboard/scores", headers=USER)

    assert response.status_code == 200
    assert response.json() == {"success": True, "updated": 2}


@pytest.mark.asyncio
async def test_generate_insights(client, db):
    """Test that generated insights appear in the refreshed dashboard."""
    await add_pharmacy(db, "user-1", "Farmácia A")

    response = await client.post("/api/v1/dashboard/insights", headers=USER)

    assert response.status_code == 200
    body = response.json()
    assert len(body["insights"]) == 3
    assert len(body["dashboard"]["aiInsights"]) == 3
    assert body["dashboard"]["cached"] is False
