"""Insight Service - short market commentary generated from the dashboard summary"""
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from farmaprice.core.config import settings
from farmaprice.models.insight import AIInsight
from farmaprice.schemas.dashboard import DashboardSummary, InsightResponse
from farmaprice.services.dashboard_service import insight_response

logger = logging.getLogger(__name__)

INSIGHT_TYPES = ['market_analysis', 'pricing_opportunity', 'competitor_behavior']
PARSED_CONFIDENCE = 80.0

SYSTEM_PROMPT = (
    "You are a pharmaceutical market analyst specializing in competitive pricing strategy "
    "for Brazilian pharmacies. Provide concise, actionable insights in Portuguese (Brazilian). "
    "Focus on practical recommendations."
)

NUMBERED_LINE = re.compile(r"^\s*\d+\.\s*")


@dataclass
class DraftInsight:
    insight_type: str
    title: str
    content: str
    confidence_score: float


def build_prompt(summary: DashboardSummary) -> str:
    kpis = summary.kpis
    volatile = "\n".join(
        f"{i}. {p.product_name} - Volatilidade: {p.volatility_score}%, Variação: {p.price_change_pct}%"
        for i, p in enumerate(summary.volatile_products[:3], start=1)
    )
    competitors = "\n".join(
        f"{i}. {c.pharmacy_name} - Agressividade: {c.aggressiveness_score}, Produtos: {c.total_products}"
        for i, c in enumerate(summary.top_competitors[:3], start=1)
    )
    return (
        "Analise os seguintes dados de uma farmácia:\n\n"
        "KPIs:\n"
        f"- Produtos monitorados: {kpis.monitored_products} de {kpis.total_products}\n"
        f"- Competidores ativos: {kpis.active_competitors}\n"
        f"- Mudança média de margem: {kpis.avg_margin_change}%\n"
        f"- Alertas ativos: {kpis.active_alerts}\n\n"
        f"Produtos mais voláteis:\n{volatile}\n\n"
        f"Top competidores:\n{competitors}\n\n"
        "Forneça 3 insights práticos e acionáveis:\n"
        "1. Uma análise de mercado geral\n"
        "2. Uma oportunidade de precificação específica\n"
        "3. Uma recomendação sobre comportamento dos competidores\n\n"
        "Formato: Cada insight deve ter um título curto (máx 50 chars) e uma descrição (máx 150 chars)."
    )


def parse_insights(text: str) -> List[DraftInsight]:
    """Numbered lines start an insight (the title); following lines are its content."""
    insights: List[DraftInsight] = []
    for line in (text or "").splitlines():
        if not line.strip():
            continue
        if NUMBERED_LINE.match(line):
            insight_type = INSIGHT_TYPES[len(insights)] if len(insights) < len(INSIGHT_TYPES) else 'market_analysis'
            title = NUMBERED_LINE.sub("", line).strip()[:100]
            insights.append(DraftInsight(insight_type, title, "", PARSED_CONFIDENCE))
        elif insights:
            current = insights[-1]
            current.content = f"{current.content} {line.strip()}".strip()
    return insights


def fallback_insights(summary: DashboardSummary) -> List[DraftInsight]:
    kpis = summary.kpis
    position = 'competitiva' if kpis.avg_margin_change > 0 else 'desafiada'

    if summary.volatile_products:
        top = summary.volatile_products[0]
        opportunity = (
            f"{top.product_name} apresenta alta volatilidade ({top.volatility_score}%). "
            "Considere ajustar preços para capturar margem."
        )
    else:
        opportunity = 'Continue monitorando produtos para identificar oportunidades de precificação.'

    if summary.top_competitors:
        rival = summary.top_competitors[0]
        behavior = (
            f"{rival.pharmacy_name} demonstra alta agressividade ({round(rival.aggressiveness_score)}). "
            f"Monitore seus {rival.total_products} produtos ativamente."
        )
    else:
        behavior = 'Expanda seu monitoramento para incluir mais competidores na região.'

    return [
        DraftInsight(
            'market_analysis',
            'Análise de Mercado',
            f"Com {kpis.monitored_products} produtos monitorados e {kpis.active_competitors} competidores "
            f"ativos, sua posição no mercado está {position}. Recomendamos foco em produtos de alta volatilidade.",
            70.0,
        ),
        DraftInsight('pricing_opportunity', 'Oportunidade de Ajuste', opportunity, 65.0),
        DraftInsight('competitor_behavior', 'Comportamento Competitivo', behavior, 70.0),
    ]


class InsightGenerator:
    """
    Turns a dashboard summary into three short insights and stores them.

    The text comes from a chat-completions endpoint when one is configured;
    any failure there, or an answer with nothing parseable, falls back to
    templated insights built from the same numbers.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        http_client: Optional[httpx.AsyncClient] = None,
        api_url: Optional[str] = None,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
    ):
        self.session_factory = session_factory
        self.http_client = http_client or httpx.AsyncClient(timeout=30.0)
        self.api_url = api_url or settings.INSIGHT_API_URL
        self.api_key = settings.INSIGHT_API_KEY if api_key is None else api_key
        self.model = model or settings.INSIGHT_MODEL

    async def close(self) -> None:
        await self.http_client.aclose()

    async def complete(self, prompt: str) -> Optional[str]:
        """Ask the completion endpoint; None when unavailable."""
        if not self.api_key:
            return None
        try:
            response = await self.http_client.post(
                self.api_url,
                headers={"Authorization": f"Bearer {self.api_key}"},
                json={
                    "model": self.model,
                    "messages": [
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    "temperature": 0.7,
                    "max_tokens": 500,
                },
            )
            response.raise_for_status()
            data = response.json()
            return data["choices"][0]["message"]["content"]
        except (httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            logger.warning(f"Insight completion failed: {e}")
            return None

    async def generate(
        self,
        user_id: str,
        summary: DashboardSummary,
        now: Optional[datetime] = None,
    ) -> List[InsightResponse]:
        now = now or datetime.utcnow()
        text = await self.complete(build_prompt(summary))
        drafts = parse_insights(text) if text else []
        if not drafts:
            logger.info(f"Using templated insights for user {user_id}")
            drafts = fallback_insights(summary)

        expires_at = now + timedelta(hours=settings.INSIGHT_TTL_HOURS)
        saved = []
        async with self.session_factory() as db:
            for draft in drafts:
                insight = AIInsight(
                    user_id=user_id,
                    insight_type=draft.insight_type,
                    title=draft.title[:200],
                    content=draft.content[:500],
                    confidence_score=Decimal(str(round(draft.confidence_score))),
                    is_active=True,
                    expires_at=expires_at,
                    created_at=now,
                )
                db.add(insight)
                try:
                    await db.commit()
                except SQLAlchemyError:
                    await db.rollback()
                    logger.exception(f"Failed to save insight {draft.title!r}")
                    continue
                saved.append(insight)

        return [insight_response(i) for i in saved]
