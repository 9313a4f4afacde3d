"""Tests for insight generation."""

from datetime import timedelta

import httpx
import pytest
from sqlalchemy import select

from conftest import NOW
from farmaprice.models import AIInsight
from farmaprice.schemas.dashboard import DashboardKPIs, DashboardSummary, TopCompetitor, VolatileProduct
from farmaprice.services.insight_service import (
    InsightGenerator,
    build_prompt,
    fallback_insights,
    parse_insights,
)


def make_summary(**overrides):
    fields = dict(
        kpis=DashboardKPIs(total_products=10, monitored_products=8, active_competitors=4, avg_margin_change=2.5),
        volatile_products=[VolatileProduct(product_id=1, product_name="Dipirona 500mg", volatility_score=35.5)],
        top_competitors=[TopCompetitor(pharmacy_id=1, pharmacy_name="Farmácia A", aggressiveness_score=72.4, total_products=6)],
        last_update=NOW.isoformat(),
    )
    fields.update(overrides)
    return DashboardSummary(**fields)


def completion(content):
    return {"choices": [{"message": {"content": content}}]}


def test_prompt_mentions_the_numbers():
    """Test that the prompt carries the KPIs and top lists."""
    prompt = build_prompt(make_summary())

    assert "Produtos monitorados: 8 de 10" in prompt
    assert "Dipirona 500mg - Volatilidade: 35.5%" in prompt
    assert "Farmácia A - Agressividade: 72.4" in prompt


def test_parse_numbered_answer():
    """Test that numbered lines become titles and the rest becomes content."""
    text = (
        "1. Mercado estável\n"
        "Preços médios sem grandes variações.\n"
        "\n"
        "2. Ajuste a dipirona\n"
        "Margem para subir 3%.\n"
        "Concorrentes acima da média.\n"
        "3. Farmácia A agressiva\n"
    )

    insights = parse_insights(text)

    assert [i.insight_type for i in insights] == ['market_analysis', 'pricing_opportunity', 'competitor_behavior']
    assert insights[0].title == "Mercado estável"
    assert insights[1].content == "Margem para subir 3%. Concorrentes acima da média."
    assert insights[2].content == ""
    assert all(i.confidence_score == 80.0 for i in insights)


def test_parse_ignores_preamble_and_caps_title():
    """Test that text before the first numbered line is dropped."""
    insights = parse_insights("Segue a análise:\n1. " + "x" * 150)

    assert len(insights) == 1
    assert len(insights[0].title) == 100
    assert parse_insights("") == []


def test_fallback_uses_the_summary():
    """Test the templated insights."""
    insights = fallback_insights(make_summary())

    assert [i.confidence_score for i in insights] == [70.0, 65.0, 70.0]
    assert "competitiva" in insights[0].content
    assert "Dipirona 500mg" in insights[1].content
    assert "Farmácia A" in insights[2].content


def test_fallback_without_lists():
    """Test the templated insights for a user with no data yet."""
    insights = fallback_insights(make_summary(kpis=DashboardKPIs(), volatile_products=[], top_competitors=[]))

    assert "desafiada" in insights[0].content
    assert insights[1].content.startswith("Continue monitorando")
    assert insights[2].content.startswith("Expanda")


@pytest.mark.asyncio
async def test_generate_without_api_key_uses_fallback(db, session_factory):
    """Test that no configured key means templated insights, stored with an expiry."""
    generator = InsightGenerator(session_factory, http_client=httpx.AsyncClient(), api_key="")

    insights = await generator.generate("user-1", make_summary(), now=NOW)

    assert [i.title for i in insights] == ['Análise de Mercado', 'Oportunidade de Ajuste', 'Comportamento Competitivo']
    assert all(i.id is not None for i in insights)
    stored = (await db.execute(select(AIInsight))).scalars().all()
    assert len(stored) == 3
    assert all(s.user_id == "user-1" and s.is_active for s in stored)
    assert all(s.expires_at.replace(tzinfo=None) == NOW + timedelta(hours=24) for s in stored)


@pytest.mark.asyncio
async def test_generate_parses_completion(session_factory):
    """Test that a completion answer is parsed and stored."""
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=completion("1. Título A\nConteúdo A\n2. Título B\nConteúdo B"))

    generator = InsightGenerator(
        session_factory,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        api_url="https://llm.test/v1/chat/completions",
        api_key="secret",
        model="test-model",
    )

    insights = await generator.generate("user-1", make_summary(), now=NOW)

    assert [(i.title, i.content) for i in insights] == [("Título A", "Conteúdo A"), ("Título B", "Conteúdo B")]
    assert insights[0].confidence_score == 80.0
    assert requests[0].headers["authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_completion_failure_falls_back(session_factory):
    """Test that an endpoint error still yields insights."""
    generator = InsightGenerator(
        session_factory,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503))),
        api_key="secret",
    )

    insights = await generator.generate("user-1", make_summary(), now=NOW)

    assert len(insights) == 3
    assert insights[0].insight_type == 'market_analysis'


@pytest.mark.asyncio
async def test_unparseable_completion_falls_back(session_factory):
    """Test that an answer without numbered lines is not stored as-is."""
    generator = InsightGenerator(
        session_factory,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json=completion("Sem dados suficientes."))
        )),
        api_key="secret",
    )

    insights = await generator.generate("user-1", make_summary(), now=NOW)

    assert [i.confidence_score for i in insights] == [70.0, 65.0, 70.0]
