"""Tests for fixed-point coordinate helpers.

Tests cover:
  - 6-decimal formatting (sign, integer part, zero-padded fraction)
  - parsing back what the oracle params carry
  - coordinate range validation
  - location keys and the keeper payload codec
"""

import pytest

from lib.errors import InvalidCoordinate
from lib.fixed_point import (
    MAX_LATITUDE,
    MAX_LONGITUDE,
    decode_keys,
    encode_keys,
    format_fixed6,
    location_key,
    parse_fixed6,
    validate_coordinate,
)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("value, expected", [
    (0, "0.000000"),
    (1_000_000, "1.000000"),
    (-1, "-0.000001"),
    (-90_000_000, "-90.000000"),
    (179_999_999, "179.999999"),
])
def test_format_fixed6(value, expected):
    assert format_fixed6(value) == expected


def test_format_small_negative_keeps_sign():
    """Values in (-1, 0) must not lose their sign to integer division."""
    assert format_fixed6(-500_000) == "-0.500000"
    assert format_fixed6(-1_000_001) == "-1.000001"


def test_parse_fixed6():
    assert parse_fixed6("-0.000001") == -1
    assert parse_fixed6("10.5") == 10_500_000
    assert parse_fixed6("179.999999") == 179_999_999


@pytest.mark.parametrize("text", ["abc", "1.1234567", "", "1.2.3"])
def test_parse_fixed6_rejects(text):
    with pytest.raises(ValueError):
        parse_fixed6(text)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def test_bounds_are_inclusive():
    validate_coordinate(MAX_LATITUDE, MAX_LONGITUDE)
    validate_coordinate(-MAX_LATITUDE, -MAX_LONGITUDE)


@pytest.mark.parametrize("lat, lon", [
    (90_000_001, 0),
    (-90_000_001, 0),
    (0, 180_000_001),
    (0, -180_000_001),
])
def test_out_of_range(lat, lon):
    with pytest.raises(InvalidCoordinate):
        validate_coordinate(lat, lon)


@pytest.mark.parametrize("lat, lon", [(1.5, 0), (0, "1"), (True, 0)])
def test_non_integer_coordinates(lat, lon):
    with pytest.raises(InvalidCoordinate, match="integers"):
        validate_coordinate(lat, lon)


def test_invalid_coordinate_is_value_error():
    with pytest.raises(ValueError):
        validate_coordinate(MAX_LATITUDE + 1, 0)


# ---------------------------------------------------------------------------
# Keys and payloads
# ---------------------------------------------------------------------------

def test_location_key_deterministic():
    assert location_key(10_000_000, 106_000_000) == location_key(10_000_000, 106_000_000)
    assert len(location_key(0, 0)) == 32


def test_location_key_order_matters():
    assert location_key(1, 2) != location_key(2, 1)
    assert location_key(-1, 0) != location_key(1, 0)


def test_payload_codec():
    keys = [location_key(1, 2), location_key(3, 4)]
    payload = encode_keys(keys)
    assert len(payload) == 64
    assert decode_keys(payload) == keys
    assert decode_keys(b"") == []


def test_payload_bad_length():
    with pytest.raises(ValueError, match="multiple of 32"):
        decode_keys(b"\x00" * 33)
    with pytest.raises(ValueError):
        encode_keys([b"short"])
