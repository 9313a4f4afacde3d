"""Search Service - cached competitor price lookups against the pricing API"""
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Any, List, Optional

from farmaprice.core.concurrency import settle_all
from farmaprice.core.config import settings
from farmaprice.schemas.search import (
    CategorySearchResponse,
    CompetitorPrice,
    FuelSearchResponse,
    PriceSummary,
    ProductSearchResponse,
    SnapshotEstablishment,
    SnapshotProduct,
    SnapshotResponse,
    SnapshotTermResult,
)
from farmaprice.services import geohash
from farmaprice.services.cache import ResponseCache, make_cache_key
from farmaprice.services.normalizer import normalize_all, summarize
from farmaprice.services.upstream_client import MenorPrecoClient, ORDER_BY_DISTANCE, ORDER_BY_PRICE

logger = logging.getLogger(__name__)

FUEL_TYPES = {
    1: "Gasolina Comum",
    2: "Gasolina Aditivada",
    3: "Etanol",
    4: "Diesel",
}


class SearchValidationError(ValueError):
    """A required search parameter is missing or invalid."""


def clamp_radius(raw: Any) -> int:
    """Parse a radius in km, defaulting when absent and clamping into the allowed range."""
    try:
        radius = int(raw) if raw not in (None, "") else settings.DEFAULT_SEARCH_RADIUS_KM
    except (TypeError, ValueError):
        radius = settings.DEFAULT_SEARCH_RADIUS_KM
    return min(settings.MAX_SEARCH_RADIUS_KM, max(settings.MIN_SEARCH_RADIUS_KM, radius))


def parse_coordinate(raw: Any) -> Optional[float]:
    if raw in (None, ""):
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


class SearchService:
    """
    The four search actions exposed by the aggregation endpoint.

    Results are normalized and cached per canonical parameter set; the cache
    is consulted before any upstream call. Quota enforcement happens at the
    HTTP layer, not here.
    """

    def __init__(self, client: MenorPrecoClient, cache: ResponseCache):
        self.client = client
        self.cache = cache

    async def search_categories(
        self,
        termo: Optional[str],
        raio: Any = None,
        lat: Any = None,
        lon: Any = None,
    ) -> CategorySearchResponse:
        if not termo:
            raise SearchValidationError("Parâmetro 'termo' é obrigatório")

        radius = clamp_radius(raio)
        key_hash = geohash.spatial_key(parse_coordinate(lat), parse_coordinate(lon))

        cache_key = make_cache_key("categories", termo=termo, raio=radius, geohash=key_hash)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit: {cache_key}")
            return cached.model_copy(update={"cached": True})

        data = await self.client.search_products(key_hash, radius, term=termo, order=ORDER_BY_PRICE)
        produtos = normalize_all(data.get("produtos"))

        response = CategorySearchResponse(
            categorias=data.get("categorias") or [],
            produtos=produtos,
            resumo=summarize(produtos) if data.get("produtos") else None,
            geohash=key_hash,
        )
        self.cache.set(cache_key, response)
        return response

    async def search_products(
        self,
        termo: Optional[str],
        raio: Any = None,
        lat: Any = None,
        lon: Any = None,
        ordem: Optional[str] = None,
        categoria: Optional[str] = None,
    ) -> ProductSearchResponse:
        if not termo:
            raise SearchValidationError("Parâmetro 'termo' é obrigatório")

        radius = clamp_radius(raio)
        order = ORDER_BY_DISTANCE if ordem == "distancia" else ORDER_BY_PRICE
        key_hash = geohash.spatial_key(parse_coordinate(lat), parse_coordinate(lon))

        cache_key = make_cache_key(
            "products", termo=termo, categoria=categoria, raio=radius, ordem=order, geohash=key_hash
        )
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit: {cache_key}")
            return cached.model_copy(update={"cached": True})

        data = await self.client.search_products(
            key_hash, radius, term=termo, order=order, category=categoria
        )
        produtos = normalize_all(data.get("produtos"))

        if not produtos:
            return ProductSearchResponse(
                produtos=[],
                resumo=PriceSummary(total=0),
                geohash=key_hash,
                message="Nenhum produto encontrado",
            )

        response = ProductSearchResponse(produtos=produtos, resumo=summarize(produtos), geohash=key_hash)
        self.cache.set(cache_key, response)
        return response

    async def search_fuel(
        self,
        tipo: Any,
        raio: Any = None,
        lat: Any = None,
        lon: Any = None,
    ) -> FuelSearchResponse:
        try:
            fuel_type = int(tipo)
        except (TypeError, ValueError):
            fuel_type = None
        if fuel_type not in FUEL_TYPES:
            raise SearchValidationError(
                "Parâmetro 'tipo' inválido. Use: 1=Gasolina Comum, 2=Gasolina Aditivada, 3=Etanol, 4=Diesel"
            )

        radius = clamp_radius(raio)
        key_hash = geohash.spatial_key(parse_coordinate(lat), parse_coordinate(lon))

        cache_key = make_cache_key("fuel", tipo=fuel_type, raio=radius, geohash=key_hash)
        cached = self.cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit: {cache_key}")
            return cached.model_copy(update={"cached": True})

        data = await self.client.search_products(key_hash, radius, order=ORDER_BY_PRICE, fuel_type=fuel_type)
        postos = normalize_all(data.get("produtos"))

        if not postos:
            return FuelSearchResponse(
                postos=[],
                resumo=PriceSummary(total=0),
                geohash=key_hash,
                message="Nenhum posto encontrado",
            )

        response = FuelSearchResponse(
            postos=postos,
            tipo=FUEL_TYPES[fuel_type],
            resumo=summarize(postos),
            geohash=key_hash,
        )
        self.cache.set(cache_key, response)
        return response

    async def snapshot(
        self,
        termos: Any,
        raio: Any = None,
        lat: Any = None,
        lon: Any = None,
    ) -> SnapshotResponse:
        """Search several terms at once and group every price found by establishment."""
        if not isinstance(termos, list) or not termos:
            raise SearchValidationError("Parâmetro 'termos' deve ser um array não vazio")

        outcomes = await settle_all(
            self.search_products(termo, raio=raio, lat=lat, lon=lon) for termo in termos
        )

        details: List[SnapshotTermResult] = []
        for termo, outcome in zip(termos, outcomes):
            if outcome.ok:
                details.append(SnapshotTermResult(termo=str(termo), produtos=outcome.value.produtos, success=True))
            else:
                logger.warning(f"Snapshot search failed for {termo!r}: {outcome.error}")
                details.append(
                    SnapshotTermResult(termo=str(termo), produtos=[], success=False, error=str(outcome.error))
                )

        all_products: List[CompetitorPrice] = [p for detail in details for p in detail.produtos]

        by_establishment: "OrderedDict[str, SnapshotEstablishment]" = OrderedDict()
        for product in all_products:
            estab = product.estabelecimento
            group = by_establishment.get(estab.nome)
            if group is None:
                group = SnapshotEstablishment(
                    nome=estab.nome,
                    cnpj=estab.cnpj,
                    endereco=estab.endereco,
                    coordenadas=estab.coordenadas,
                )
                by_establishment[estab.nome] = group
            group.produtos.append(
                SnapshotProduct(
                    desc=product.desc,
                    valor=product.valor,
                    tempo=product.tempo,
                    data_coleta=product.data_coleta,
                )
            )

        return SnapshotResponse(
            timestamp=datetime.utcnow().isoformat(),
            total_produtos=len(all_products),
            total_estabelecimentos=len(by_establishment),
            estabelecimentos=list(by_establishment.values()),
            detalhes=details,
        )
