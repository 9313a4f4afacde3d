"""HTTP client for the Menor Preço pricing API with bounded retries"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from farmaprice.core.config import settings

logger = logging.getLogger(__name__)

# ordem parameter of the upstream product search
ORDER_BY_PRICE = 0
ORDER_BY_DISTANCE = 1


class UpstreamError(RuntimeError):
    """Raised when the pricing API could not be reached after all retries."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MenorPrecoClient:
    """
    Thin async client for the third-party pricing API.

    Each attempt is bounded by the configured timeout. Non-2xx responses,
    transport errors, timeouts and unparseable bodies are retried with
    exponential backoff (1s, 2s, ...). An empty result set is a valid answer
    and is returned as-is. The client knows nothing about caching or quotas.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.base_url = (base_url or settings.UPSTREAM_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.UPSTREAM_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.UPSTREAM_MAX_RETRIES
        self._client = http_client
        self._owns_client = http_client is None
        self._sleep = sleep

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(headers={"Accept": "application/json"})
        return self._client

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET ``endpoint`` (relative to the base URL) and return the decoded JSON.

        Raises:
            UpstreamError: after 1 + max_retries failed attempts, chained to the last error
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        client = self._get_client()
        last_error: Optional[Exception] = None
        last_status: Optional[int] = None

        for attempt in range(self.max_retries + 1):
            try:
                response = await client.get(url, params=params, timeout=self.timeout)
                if not 200 <= response.status_code < 300:
                    last_status = response.status_code
                    raise UpstreamError(
                        f"API returned {response.status_code}: {response.reason_phrase}",
                        status_code=response.status_code,
                    )
                return response.json()

            except (httpx.HTTPError, UpstreamError, ValueError) as e:
                last_error = e
                logger.warning(
                    f"Pricing API attempt {attempt + 1}/{self.max_retries + 1} failed "
                    f"for {endpoint}: {type(e).__name__}: {e}"
                )
                if attempt < self.max_retries:
                    await self._sleep(2 ** attempt)

        logger.error(f"Pricing API unreachable after {self.max_retries + 1} attempts: {endpoint}")
        raise UpstreamError(
            f"Failed to fetch from pricing API: {last_error}",
            status_code=last_status,
        ) from last_error

    async def search_products(
        self,
        geohash: str,
        radius_km: int,
        term: Optional[str] = None,
        order: int = ORDER_BY_PRICE,
        category: Optional[str] = None,
        fuel_type: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Query /produtos around a geohash. Returns the raw upstream payload."""
        params: Dict[str, Any] = {"local": geohash}
        if term is not None:
            params["termo"] = term
        if category:
            params["categoria"] = category
        if fuel_type is not None:
            params.update({"raio": radius_km, "data": -1, "valor_min": 0, "valor_max": 0,
                           "ordem": order, "tp_comb": fuel_type})
        else:
            params.update({"offset": 0, "raio": radius_km, "data": -1, "ordem": order})

        data = await self.fetch("/produtos", params=params)
        return data if isinstance(data, dict) else {}
