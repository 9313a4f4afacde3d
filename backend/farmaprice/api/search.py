"""Search endpoint - action-dispatched competitor price lookups"""
import logging
import math
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from farmaprice.api.deps import get_quota, get_search_service, get_user_id
from farmaprice.schemas.search import SnapshotRequest
from farmaprice.services.cache import RateLimited, RequestQuota
from farmaprice.services.search_service import SearchService, SearchValidationError

logger = logging.getLogger(__name__)

router = APIRouter()

GET_ACTIONS = ["categories", "products", "fuel"]

USAGE = {
    "categories": "?action=categories&termo=produto&raio=3&lat=-25.5&lon=-54.5",
    "products": "?action=products&termo=produto&categoria=123&raio=3&ordem=preco&lat=-25.5&lon=-54.5",
    "fuel": "?action=fuel&tipo=1&raio=3&lat=-25.5&lon=-54.5",
}


def _error(status_code: int, content: dict, headers: Optional[dict] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@router.api_route("", methods=["GET", "POST"])
async def search(
    request: Request,
    action: Optional[str] = Query(None),
    termo: Optional[str] = Query(None),
    categoria: Optional[str] = Query(None),
    raio: Optional[str] = Query(None),
    ordem: Optional[str] = Query(None),
    tipo: Optional[str] = Query(None),
    lat: Optional[str] = Query(None),
    lon: Optional[str] = Query(None),
    user_id: str = Depends(get_user_id),
    quota: RequestQuota = Depends(get_quota),
    service: SearchService = Depends(get_search_service),
):
    """
    Dispatch on ``action``.

    GET: categories, products, fuel. POST: snapshot (JSON body with termos,
    raio, lat, lon). 400 for bad input, 429 over quota, 500 for upstream or
    internal failures.
    """
    try:
        quota.acquire(user_id)
    except RateLimited as e:
        return _error(
            429,
            {"error": "Rate limit excedido. Tente novamente em instantes."},
            headers={"Retry-After": str(math.ceil(e.retry_after))},
        )

    try:
        if request.method == "POST":
            if action != "snapshot":
                return _error(400, {"error": "POST só suporta action=snapshot"})
            try:
                body = SnapshotRequest.model_validate(await request.json())
            except (ValueError, ValidationError):
                raise SearchValidationError(
                    "Corpo da requisição deve ser um objeto JSON com 'termos' como array de textos"
                )
            result = await service.snapshot(body.termos, raio=body.raio, lat=body.lat, lon=body.lon)
        elif action == "categories":
            result = await service.search_categories(termo, raio=raio, lat=lat, lon=lon)
        elif action == "products":
            result = await service.search_products(
                termo, raio=raio, lat=lat, lon=lon, ordem=ordem, categoria=categoria
            )
        elif action == "fuel":
            result = await service.search_fuel(tipo, raio=raio, lat=lat, lon=lon)
        else:
            return _error(400, {"error": "Ação inválida", "validActions": GET_ACTIONS, "usage": USAGE})
    except SearchValidationError as e:
        return _error(400, {"error": str(e)})
    except Exception as e:
        logger.exception(f"Search action {action!r} failed")
        return _error(500, {"error": "Erro interno do servidor", "message": str(e)})

    return JSONResponse(content=result.model_dump(by_alias=True))
