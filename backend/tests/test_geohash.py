"""Tests for geohash encoding."""

import pytest

from farmaprice.services import geohash


def test_encode_known_points():
    """Test encoding against well-known reference hashes."""
    assert geohash.encode(57.64911, 10.40744, 9) == "u4pruydqq"
    assert geohash.encode(42.6, -5.6, 5) == "ezs42"


@pytest.mark.parametrize("lat,lon", [(-25.4284, -49.2733), (0.0, 0.0), (90.0, 180.0), (-90.0, -180.0)])
@pytest.mark.parametrize("precision", [1, 5, 9, 12])
def test_encode_length_and_alphabet(lat, lon, precision):
    """Test that hashes have the requested length and use only the base32 alphabet."""
    result = geohash.encode(lat, lon, precision)

    assert len(result) == precision
    assert set(result) <= set(geohash.BASE32)


@pytest.mark.parametrize("lat,lon", [(-25.4284, -49.2733), (57.64911, 10.40744), (-23.3045, -51.1696)])
def test_decode_lands_in_the_same_cell(lat, lon):
    """Test that decoding returns the centroid of the cell containing the point."""
    encoded = geohash.encode(lat, lon, 9)
    lat_min, lat_max, lon_min, lon_max = geohash.bounds(encoded)
    point = geohash.decode(encoded)

    assert lat_min <= lat <= lat_max
    assert lon_min <= lon <= lon_max
    assert lat_min <= point.lat <= lat_max
    assert lon_min <= point.lon <= lon_max


def test_encode_rejects_out_of_range():
    """Test that invalid coordinates raise instead of producing a hash."""
    with pytest.raises(ValueError):
        geohash.encode(91.0, 0.0)
    with pytest.raises(ValueError):
        geohash.encode(0.0, -180.5)


def test_decode_rejects_invalid_hash():
    """Test that empty hashes and characters outside the alphabet are rejected."""
    with pytest.raises(ValueError):
        geohash.decode("")
    with pytest.raises(ValueError):
        geohash.decode("6g3ai")


def test_spatial_key_falls_back_to_default():
    """Test that missing or out-of-range locations use the default key."""
    assert geohash.spatial_key(None, None) == "6g3ntyecf"
    assert geohash.spatial_key(120.0, 10.0) == "6g3ntyecf"
    assert geohash.spatial_key(None, -49.27, default="6gkzwgjz") == "6gkzwgjz"


def test_spatial_key_encodes_valid_location():
    """Test that a valid location is encoded at the configured precision."""
    assert geohash.spatial_key(57.64911, 10.40744) == "u4pruydqq"
