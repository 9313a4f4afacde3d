"""Postal code geocoding: ViaCEP address lookup followed by a Nominatim coordinate search"""
import logging
import re
from typing import Optional

import httpx

from farmaprice.core.config import settings
from farmaprice.schemas.search import Coordinates

logger = logging.getLogger(__name__)

# Paraná state bounding box; the pricing API only covers this state
PARANA_BOUNDS = {
    "min_lat": -26.7,
    "max_lat": -22.5,
    "min_lon": -54.6,
    "max_lon": -47.9,
}


class GeocodingError(Exception):
    """The postal code could not be turned into a coordinate."""


def clean_cep(cep: str) -> str:
    return re.sub(r"\D", "", cep or "")


def is_valid_cep(cep: str) -> bool:
    return len(clean_cep(cep)) == 8


def in_parana(lat: float, lon: float) -> bool:
    return (
        PARANA_BOUNDS["min_lat"] <= lat <= PARANA_BOUNDS["max_lat"]
        and PARANA_BOUNDS["min_lon"] <= lon <= PARANA_BOUNDS["max_lon"]
    )


class PostalCodeGeocoder:
    """Given a postal code, return a coordinate or raise GeocodingError."""

    def __init__(
        self,
        http_client: Optional[httpx.AsyncClient] = None,
        viacep_url: Optional[str] = None,
        nominatim_url: Optional[str] = None,
    ):
        self.http_client = http_client or httpx.AsyncClient(timeout=10.0)
        self.viacep_url = (viacep_url or settings.VIACEP_URL).rstrip("/")
        self.nominatim_url = nominatim_url or settings.NOMINATIM_URL

    async def close(self) -> None:
        await self.http_client.aclose()

    async def geocode(self, cep: str) -> Coordinates:
        digits = clean_cep(cep)
        if len(digits) != 8:
            raise GeocodingError("CEP inválido. Use o formato 12345-678 ou 12345678")

        try:
            response = await self.http_client.get(f"{self.viacep_url}/{digits}/json/")
            response.raise_for_status()
            address = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GeocodingError("Erro ao consultar CEP") from e

        if not isinstance(address, dict) or address.get("erro"):
            raise GeocodingError("CEP não encontrado")
        if address.get("uf") != "PR":
            raise GeocodingError("CEP está fora do estado do Paraná")

        query = f"{address.get('logradouro', '')}, {address.get('localidade', '')}, {address.get('uf')}, Brasil"
        try:
            response = await self.http_client.get(
                self.nominatim_url,
                params={"format": "json", "q": query, "limit": 1},
                headers={"User-Agent": "FarmaPrice/1.0"},
            )
            response.raise_for_status()
            places = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise GeocodingError("Erro ao obter coordenadas") from e

        if not places:
            raise GeocodingError("Não foi possível obter coordenadas para este CEP")

        try:
            lat = float(places[0]["lat"])
            lon = float(places[0]["lon"])
        except (KeyError, TypeError, ValueError) as e:
            raise GeocodingError("Resposta de coordenadas inválida") from e

        if not in_parana(lat, lon):
            raise GeocodingError("As coordenadas do CEP estão fora do estado do Paraná")

        logger.info(f"Geocoded CEP {digits} to ({lat}, {lon})")
        return Coordinates(lat=lat, lon=lon)
