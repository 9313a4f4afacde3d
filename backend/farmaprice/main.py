"""FarmaPrice - FastAPI Backend"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import async_sessionmaker

from farmaprice.api import dashboard, monitor, profiles, search
from farmaprice.core.config import settings
from farmaprice.core.database import AsyncSessionLocal, engine
from farmaprice.core.logging import setup_logging
from farmaprice.services.cache import RequestQuota, dashboard_cache, search_cache
from farmaprice.services.competitor_scoring import CompetitorScorer
from farmaprice.services.dashboard_service import DashboardService
from farmaprice.services.geocoding import PostalCodeGeocoder
from farmaprice.services.insight_service import InsightGenerator
from farmaprice.services.observation_service import ObservationService
from farmaprice.services.price_monitor import PriceMonitor
from farmaprice.services.search_service import SearchService
from farmaprice.services.upstream_client import MenorPrecoClient

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


def attach_services(
    app: FastAPI,
    session_factory: async_sessionmaker,
    client: Optional[MenorPrecoClient] = None,
    geocoder: Optional[PostalCodeGeocoder] = None,
    insight_generator: Optional[InsightGenerator] = None,
) -> None:
    """Build the per-application collaborators and hang them on app.state."""
    state = app.state
    state.session_factory = session_factory
    state.search_cache = search_cache()
    state.dashboard_cache = dashboard_cache()
    state.quota = RequestQuota()
    state.upstream_client = client or MenorPrecoClient()
    state.geocoder = geocoder or PostalCodeGeocoder()

    state.search_service = SearchService(state.upstream_client, state.search_cache)
    state.price_monitor = PriceMonitor(state.search_service, ObservationService(session_factory))
    state.dashboard_service = DashboardService(session_factory, state.dashboard_cache)
    state.scorer = CompetitorScorer()
    state.insight_generator = insight_generator or InsightGenerator(session_factory)


def create_app(
    session_factory: async_sessionmaker = AsyncSessionLocal,
    init_database: bool = True,
    **collaborators,
) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.LOG_DIR)

        if init_database:
            # Startup - initialize database
            from farmaprice.core.database import init_db
            await init_db()

            # Seed reference data
            from farmaprice.services.seed_service import seed_data
            await seed_data(session_factory)

        logger.info(f"FarmaPrice API started ({settings.ENVIRONMENT})")
        yield
        # Shutdown
        await app.state.upstream_client.close()
        await app.state.geocoder.close()
        await app.state.insight_generator.close()
        if init_database:
            await engine.dispose()

    app = FastAPI(
        title="FarmaPrice API",
        description="Competitor price monitoring for pharmacies",
        version="1.0.0",
        lifespan=lifespan,
    )
    attach_services(app, session_factory, **collaborators)

    # Rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

    # CORS for frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["Health"])
    async def health():
        return {"status": "ok"}

    # Routes
    app.include_router(search.router, prefix="/api/v1/search", tags=["Search"])
    app.include_router(monitor.router, prefix="/api/v1/monitor", tags=["Monitor"])
    app.include_router(dashboard.router, prefix="/api/v1/dashboard", tags=["Dashboard"])
    app.include_router(profiles.router, prefix="/api/v1/profiles", tags=["Profiles"])

    return app


app = create_app()
