"""Geohash encoding used as the spatial cache/query key"""
import math
from typing import NamedTuple, Optional, Tuple

from farmaprice.core.config import settings

BASE32 = "0123456789bcdefghjkmnpqrstuvwxyz"
_BASE32_INDEX = {char: index for index, char in enumerate(BASE32)}


class GeoPoint(NamedTuple):
    lat: float
    lon: float


def is_valid_coordinate(lat: Optional[float], lon: Optional[float]) -> bool:
    """True for finite coordinates inside [-90, 90] x [-180, 180]."""
    if lat is None or lon is None:
        return False
    try:
        lat, lon = float(lat), float(lon)
    except (TypeError, ValueError):
        return False
    if math.isnan(lat) or math.isnan(lon):
        return False
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0


def encode(lat: float, lon: float, precision: int = 9) -> str:
    """
    Encode a coordinate as a geohash of ``precision`` characters.

    Bits alternate longitude/latitude starting with longitude, five bits per
    output character.
    """
    if not is_valid_coordinate(lat, lon):
        raise ValueError(f"Coordinate out of range: ({lat}, {lon})")
    if precision < 1:
        raise ValueError("precision must be at least 1")

    lat_min, lat_max = -90.0, 90.0
    lon_min, lon_max = -180.0, 180.0
    geohash = []
    index = 0
    bit = 0
    even_bit = True

    while len(geohash) < precision:
        if even_bit:
            lon_mid = (lon_min + lon_max) / 2
            if lon >= lon_mid:
                index = index * 2 + 1
                lon_min = lon_mid
            else:
                index = index * 2
                lon_max = lon_mid
        else:
            lat_mid = (lat_min + lat_max) / 2
            if lat >= lat_mid:
                index = index * 2 + 1
                lat_min = lat_mid
            else:
                index = index * 2
                lat_max = lat_mid
        even_bit = not even_bit

        bit += 1
        if bit == 5:
            geohash.append(BASE32[index])
            bit = 0
            index = 0

    return "".join(geohash)


def bounds(geohash: str) -> Tuple[float, float, float, float]:
    """Return the cell of a geohash as (lat_min, lat_max, lon_min, lon_max)."""
    if not geohash:
        raise ValueError("Empty geohash")

    lat_min, lat_max = -90.0, 90.0
    lon_min, lon_max = -180.0, 180.0
    even_bit = True

    for char in geohash.lower():
        index = _BASE32_INDEX.get(char)
        if index is None:
            raise ValueError(f"Invalid geohash character: {char!r}")
        for n in range(4, -1, -1):
            bit_set = (index >> n) & 1
            if even_bit:
                lon_mid = (lon_min + lon_max) / 2
                if bit_set:
                    lon_min = lon_mid
                else:
                    lon_max = lon_mid
            else:
                lat_mid = (lat_min + lat_max) / 2
                if bit_set:
                    lat_min = lat_mid
                else:
                    lat_max = lat_mid
            even_bit = not even_bit

    return lat_min, lat_max, lon_min, lon_max


def decode(geohash: str) -> GeoPoint:
    """Centroid of the geohash cell. Lossy: not the originally encoded point."""
    lat_min, lat_max, lon_min, lon_max = bounds(geohash)
    return GeoPoint(lat=(lat_min + lat_max) / 2, lon=(lon_min + lon_max) / 2)


def spatial_key(
    lat: Optional[float],
    lon: Optional[float],
    precision: Optional[int] = None,
    default: Optional[str] = None,
) -> str:
    """
    Geohash for a query location, or the configured default key.

    Location is best-effort: missing or out-of-range coordinates fall back to
    the default reference point instead of failing the request.
    """
    if not is_valid_coordinate(lat, lon):
        return default or settings.DEFAULT_GEOHASH
    return encode(float(lat), float(lon), precision or settings.GEOHASH_PRECISION)
