"""Tests for the search endpoint."""

import httpx
import pytest
from fastapi.testclient import TestClient

from farmaprice.main import create_app
from farmaprice.services.cache import RequestQuota
from farmaprice.services.upstream_client import MenorPrecoClient

PRODUCTS = {
    "dipirona": [
        {"desc": "Dipirona 500mg", "valor": 5.5, "datahora": "2025-11-20T10:00:00",
         "estabelecimento": {"nm_fan": "Farmácia A", "latlng": "-25.43,-49.27"}},
        {"desc": "Dipirona 500mg", "valor": 6.0, "estabelecimento": {"nm_fan": "Farmácia B"}},
    ],
}


def upstream_handler(request):
    if request.url.params.get("termo") == "falha":
        return httpx.Response(503)
    if "tp_comb" in request.url.params:
        return httpx.Response(200, json={"produtos": [{"desc": "Gasolina", "valor": 6.29, "estabelecimento": {"nm_fan": "Posto"}}]})
    return httpx.Response(200, json={"produtos": PRODUCTS.get(request.url.params.get("termo"), [])})


@pytest.fixture
def app():
    upstream = MenorPrecoClient(
        base_url="https://pricing.test/api/v1",
        max_retries=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(upstream_handler)),
    )
    return create_app(init_database=False, client=upstream)


@pytest.fixture
def client(app):
    return TestClient(app)


def test_health(client):
    """Test the liveness endpoint."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_products(client):
    """Test a product search with normalized records and a summary."""
    response = client.get("/api/v1/search", params={"action": "products", "termo": "dipirona", "raio": 5})

    assert response.status_code == 200
    body = response.json()
    assert len(body["produtos"]) == 2
    assert body["produtos"][0]["estabelecimento"]["nome"] == "Farmácia A"
    assert body["produtos"][0]["dataColeta"] == "2025-11-20T10:00:00"
    assert body["produtos"][1]["estabelecimento"]["coordenadas"] is None
    assert body["resumo"] == {"total": 2, "min": 5.5, "max": 6.0, "avg": 5.75}
    assert body["cached"] is False

    again = client.get("/api/v1/search", params={"action": "products", "termo": "dipirona", "raio": 5})
    assert again.json()["cached"] is True


def test_missing_term(client):
    """Test that a product search without a term is rejected."""
    response = client.get("/api/v1/search", params={"action": "products"})

    assert response.status_code == 400
    assert "error" in response.json()


def test_invalid_action(client):
    """Test that unknown actions list the valid ones."""
    response = client.get("/api/v1/search", params={"action": "delete"})

    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "Ação inválida"
    assert body["validActions"] == ["categories", "products", "fuel"]
    assert "products" in body["usage"]


def test_fuel(client):
    """Test a fuel search by type."""
    response = client.get("/api/v1/search", params={"action": "fuel", "tipo": "1"})

    assert response.status_code == 200
    assert response.json()["tipo"] == "Gasolina Comum"
    assert response.json()["postos"][0]["valor"] == 6.29


def test_upstream_failure_is_500(client):
    """Test that an unreachable pricing API is reported as a server error."""
    response = client.get("/api/v1/search", params={"action": "products", "termo": "falha"})

    assert response.status_code == 500
    assert response.json()["error"] == "Erro interno do servidor"
    assert response.json()["message"]


def test_rate_limit(app, client, clock):
    """Test that a caller over quota gets 429 with a retry hint."""
    app.state.quota = RequestQuota(max_requests=1, window_seconds=60, clock=clock)
    params = {"action": "products", "termo": "dipirona"}

    assert client.get("/api/v1/search", params=params, headers={"x-user-id": "u1"}).status_code == 200
    limited = client.get("/api/v1/search", params=params, headers={"x-user-id": "u1"})
    other = client.get("/api/v1/search", params=params, headers={"x-user-id": "u2"})

    assert limited.status_code == 429
    assert limited.json() == {"error": "Rate limit excedido. Tente novamente em instantes."}
    assert limited.headers["retry-after"] == "60"
    assert other.status_code == 200


def test_snapshot(client):
    """Test a multi-term snapshot grouped by establishment."""
    response = client.post(
        "/api/v1/search",
        params={"action": "snapshot"},
        json={"termos": ["dipirona", "falha"], "raio": 3},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["totalProdutos"] == 2
    assert body["totalEstabelecimentos"] == 2
    assert [d["success"] for d in body["detalhes"]] == [True, False]


def test_post_requires_snapshot_action(client):
    """Test that POST only serves snapshots."""
    response = client.post("/api/v1/search", params={"action": "products"}, json={})

    assert response.status_code == 400
    assert response.json() == {"error": "POST só suporta action=snapshot"}


def test_snapshot_without_terms(client):
    """Test that a snapshot needs a term list."""
    response = client.post("/api/v1/search", params={"action": "snapshot"}, json={"raio": 3})

    assert response.status_code == 400


def test_snapshot_body_must_match_schema(client):
    """Test that a snapshot body with the wrong shape is a bad request."""
    as_string = client.post("/api/v1/search", params={"action": "snapshot"}, json={"termos": "dipirona"})
    as_list = client.post("/api/v1/search", params={"action": "snapshot"}, json=["dipirona"])

    assert as_string.status_code == 400
    assert "termos" in as_string.json()["error"]
    assert as_list.status_code == 400
