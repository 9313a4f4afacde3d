"""
Response Normalizer - maps upstream product records onto CompetitorPrice.

The pricing API has used several names for the same field over time. Each
field is read through an ordered list of alternatives; the first one present
wins. Coordinates go through an ordered chain of extractors. Supporting a new
upstream variant means adding a name or an extractor to a list.
"""
import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from farmaprice.schemas.search import CompetitorPrice, Coordinates, Establishment, PriceSummary
from farmaprice.services import geohash

logger = logging.getLogger(__name__)

TIME_NOT_REPORTED = "Tempo não informado"

# datetime.fromisoformat before 3.11 only takes 3 or 6 fraction digits
FRACTIONAL_SECONDS = re.compile(r"(\d{2}:\d{2}:\d{2})\.(\d+)")
DEFAULT_PRODUCT_NAME = "Produto"
DEFAULT_ESTABLISHMENT_NAME = "Estabelecimento"

ESTABLISHMENT_FIELDS = ("estabelecimento", "loja", "comercio")
ID_FIELDS = ("id", "codigo")
DESCRIPTION_FIELDS = ("desc", "descricao", "name")
PRICE_FIELDS = ("valor", "preco")
DISTANCE_FIELDS = ("distkm", "distancia")
COLLECTED_AT_FIELDS = ("datahora", "data", "dt_coleta")
TIMESTAMP_FIELDS = COLLECTED_AT_FIELDS + ("ultima_atualizacao", "data_atualizacao")

ESTABLISHMENT_NAME_FIELDS = ("nm_fan", "nm_emp", "nome")
TAX_ID_FIELDS = ("cnpj",)
ADDRESS_FIELDS = ("endereco", "address")
LATLNG_FIELDS = ("latlng",)
LATITUDE_FIELDS = ("lat", "latitude")
LONGITUDE_FIELDS = ("lon", "lng", "longitude")
GEOHASH_FIELDS = ("local", "geohash")


def first_present(record: Mapping[str, Any], names: Sequence[str]) -> Any:
    """Value of the first field in ``names`` that is present and not empty."""
    for name in names:
        value = record.get(name)
        if value is not None and value != "":
            return value
    return None


def parse_number(value: Any) -> Optional[float]:
    """Float for numbers and numeric strings; None for anything else (including NaN/inf)."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


# Coordinate extractors, tried in order -------------------------------------

CoordinateExtractor = Callable[[Mapping[str, Any], Mapping[str, Any]], Optional[Coordinates]]


def _coords_from_latlng_string(record: Mapping[str, Any], establishment: Mapping[str, Any]) -> Optional[Coordinates]:
    raw = first_present(establishment, LATLNG_FIELDS)
    if not isinstance(raw, str):
        return None
    parts = [part.strip() for part in raw.split(",")]
    if len(parts) < 2:
        return None
    lat, lon = parse_number(parts[0]), parse_number(parts[1])
    if lat is None or lon is None:
        return None
    return Coordinates(lat=lat, lon=lon)


def _coords_from_separate_fields(record: Mapping[str, Any], establishment: Mapping[str, Any]) -> Optional[Coordinates]:
    lat = parse_number(first_present(establishment, LATITUDE_FIELDS))
    lon = parse_number(first_present(establishment, LONGITUDE_FIELDS))
    if lat is None or lon is None:
        return None
    return Coordinates(lat=lat, lon=lon)


def _coords_from_geohash(record: Mapping[str, Any], establishment: Mapping[str, Any]) -> Optional[Coordinates]:
    raw = first_present(record, GEOHASH_FIELDS) or first_present(establishment, GEOHASH_FIELDS)
    if not isinstance(raw, str):
        return None
    try:
        point = geohash.decode(raw)
    except ValueError as e:
        logger.debug(f"Ignoring undecodable geohash {raw!r}: {e}")
        return None
    return Coordinates(lat=point.lat, lon=point.lon)


COORDINATE_EXTRACTORS: List[CoordinateExtractor] = [
    _coords_from_latlng_string,
    _coords_from_separate_fields,
    _coords_from_geohash,
]


def extract_coordinates(record: Mapping[str, Any], establishment: Mapping[str, Any]) -> Optional[Coordinates]:
    for extractor in COORDINATE_EXTRACTORS:
        coords = extractor(record, establishment)
        if coords is not None:
            return coords
    return None


# Timestamps ------------------------------------------------------------------

def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an upstream timestamp into a naive UTC datetime."""
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    text = FRACTIONAL_SECONDS.sub(lambda m: f"{m.group(1)}.{m.group(2)[:6].ljust(6, '0')}", text)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def time_ago(moment: Optional[datetime], now: Optional[datetime] = None) -> str:
    """Convert a datetime to a short Portuguese 'há N ...' label."""
    if moment is None:
        return TIME_NOT_REPORTED

    now = now or datetime.utcnow()
    minutes = max(0, int((now - moment).total_seconds() // 60))

    if minutes < 60:
        return f"há {minutes} min"
    hours = minutes // 60
    if hours < 24:
        return f"há {hours} hora{'s' if hours != 1 else ''}"
    days = hours // 24
    return f"há {days} dia{'s' if days != 1 else ''}"


# Record normalization -------------------------------------------------------

def normalize(raw: Dict[str, Any], now: Optional[datetime] = None) -> CompetitorPrice:
    """
    Map one upstream product record onto the canonical shape.

    Total for any JSON object: missing or malformed fields degrade to defaults
    (price 0, unknown coordinates/distance, "time not reported").

    Raises:
        TypeError: if ``raw`` is not a JSON object
    """
    if not isinstance(raw, Mapping):
        raise TypeError(f"Expected a JSON object, got {type(raw).__name__}")

    establishment = first_present(raw, ESTABLISHMENT_FIELDS)
    if not isinstance(establishment, Mapping):
        establishment = {}

    price = parse_number(first_present(raw, PRICE_FIELDS))
    collected_at = parse_timestamp(first_present(raw, COLLECTED_AT_FIELDS))
    recency_source = parse_timestamp(first_present(raw, TIMESTAMP_FIELDS))

    return CompetitorPrice(
        id=_optional_str(first_present(raw, ID_FIELDS)),
        desc=str(first_present(raw, DESCRIPTION_FIELDS) or DEFAULT_PRODUCT_NAME),
        valor=price if price is not None else 0.0,
        estabelecimento=Establishment(
            nome=str(first_present(establishment, ESTABLISHMENT_NAME_FIELDS) or DEFAULT_ESTABLISHMENT_NAME),
            cnpj=_optional_str(first_present(establishment, TAX_ID_FIELDS)),
            endereco=_optional_str(first_present(establishment, ADDRESS_FIELDS)),
            coordenadas=extract_coordinates(raw, establishment),
        ),
        distkm=parse_number(first_present(raw, DISTANCE_FIELDS)),
        tempo=time_ago(recency_source, now),
        data_coleta=collected_at.isoformat() if collected_at else None,
    )


def normalize_all(records: Any, now: Optional[datetime] = None) -> List[CompetitorPrice]:
    """Normalize an upstream list, skipping entries that are not JSON objects."""
    if not isinstance(records, list):
        return []
    now = now or datetime.utcnow()
    normalized = []
    for record in records:
        try:
            normalized.append(normalize(record, now))
        except TypeError as e:
            logger.warning(f"Skipping malformed upstream record: {e}")
    return normalized


def summarize(products: Sequence[CompetitorPrice]) -> PriceSummary:
    """min/max/avg over positive prices; total counts every record."""
    if not products:
        return PriceSummary(total=0)

    prices = [p.valor for p in products if p.has_valid_price]
    if not prices:
        return PriceSummary(total=len(products))

    return PriceSummary(
        total=len(products),
        min=round(min(prices), 2),
        max=round(max(prices), 2),
        avg=round(sum(prices) / len(prices), 2),
    )
