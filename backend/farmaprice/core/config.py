"""Application configuration"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./farmaprice.db"
    ENVIRONMENT: str = "development"

    # CORS
    ALLOWED_ORIGINS: List[str] = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # Per-IP limit on the dashboard routes
    RATE_LIMIT_PER_MINUTE: int = 30

    # Upstream pricing API (Menor Preço / Nota Paraná)
    UPSTREAM_BASE_URL: str = "https://menorpreco.notaparana.pr.gov.br/api/v1"
    UPSTREAM_TIMEOUT_SECONDS: float = 30.0
    UPSTREAM_MAX_RETRIES: int = 2

    # Spatial key
    DEFAULT_GEOHASH: str = "6g3ntyecf"
    GEOHASH_PRECISION: int = 9

    # Search radius (km)
    DEFAULT_SEARCH_RADIUS_KM: int = 3
    MIN_SEARCH_RADIUS_KM: int = 1
    MAX_SEARCH_RADIUS_KM: int = 50

    # Response caches
    SEARCH_CACHE_TTL_SECONDS: int = 15 * 60
    SEARCH_CACHE_MAX_ENTRIES: int = 1000
    DASHBOARD_CACHE_TTL_SECONDS: int = 5 * 60
    DASHBOARD_CACHE_MAX_ENTRIES: int = 100

    # Per-caller request quota on the search endpoint
    QUOTA_MAX_REQUESTS: int = 60
    QUOTA_WINDOW_SECONDS: int = 60

    # Price analytics
    TREND_DEAD_ZONE_PCT: float = 2.0
    VOLATILITY_WINDOW_DAYS: int = 7
    KPI_ACTIVITY_WINDOW_HOURS: int = 24
    DASHBOARD_TOP_N: int = 10
    MIN_OBSERVATIONS_FOR_VOLATILITY: int = 3

    # Competitor aggressiveness scoring
    SCORING_WINDOW_DAYS: int = 30
    SCORE_BASELINE: float = 50.0
    SCORE_PRICE_WEIGHT: float = 30.0
    SCORE_ACTIVE_DAY_BONUS: float = 2.0

    # Insight generation (chat-completions compatible endpoint)
    INSIGHT_API_URL: str = "https://api.deepseek.com/v1/chat/completions"
    INSIGHT_API_KEY: str = ""
    INSIGHT_MODEL: str = "deepseek-chat"
    INSIGHT_TTL_HOURS: int = 24

    # Postal code geocoding
    VIACEP_URL: str = "https://viacep.com.br/ws"
    NOMINATIM_URL: str = "https://nominatim.openstreetmap.org/search"

    class Config:
        env_file = ".env"


settings = Settings()
