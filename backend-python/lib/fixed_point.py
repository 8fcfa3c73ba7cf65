"""Fixed-point coordinate helpers: range checks, 6-decimal formatting, location keys."""

import hashlib

from lib.errors import InvalidCoordinate


SCALE = 1_000_000
MAX_LATITUDE = 90 * SCALE
MAX_LONGITUDE = 180 * SCALE


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_coordinate(lat: int, lon: int) -> None:
    """Raise InvalidCoordinate unless (lat, lon) is an in-range fixed-point pair."""
    if not _is_int(lat) or not _is_int(lon):
        raise InvalidCoordinate(
            f"coordinates must be integers scaled by 1e6, got ({lat!r}, {lon!r})"
        )
    if not -MAX_LATITUDE <= lat <= MAX_LATITUDE:
        raise InvalidCoordinate(f"latitude {lat} outside ±{MAX_LATITUDE}",
                                details={"lat": lat})
    if not -MAX_LONGITUDE <= lon <= MAX_LONGITUDE:
        raise InvalidCoordinate(f"longitude {lon} outside ±{MAX_LONGITUDE}",
                                details={"lon": lon})


def format_fixed6(value: int) -> str:
    """
    Render a 1e6-scaled integer as a decimal string with exactly 6 fraction digits.

    Examples
    --------
    >>> format_fixed6(-1)
    '-0.000001'
    >>> format_fixed6(179_999_999)
    '179.999999'
    """
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), SCALE)
    return f"{sign}{whole}.{frac:06d}"


def parse_fixed6(text: str) -> int:
    """Inverse of format_fixed6 for strings with at most 6 fraction digits."""
    text = text.strip()
    negative = text.startswith("-")
    if negative or text.startswith("+"):
        text = text[1:]
    whole, _, frac = text.partition(".")
    if not whole.isdigit() or (frac and not frac.isdigit()) or len(frac) > 6:
        raise ValueError(f"not a fixed-6 decimal: {text!r}")
    value = int(whole) * SCALE + int(frac.ljust(6, "0") or 0)
    return -value if negative else value


def _pack_int256(value: int) -> bytes:
    return value.to_bytes(32, "big", signed=True)


def location_key(lat: int, lon: int) -> bytes:
    """Deterministic 32-byte key for a coordinate pair."""
    return hashlib.sha256(_pack_int256(lat) + _pack_int256(lon)).digest()


def encode_keys(keys: list) -> bytes:
    """Concatenate 32-byte location keys into an opaque payload."""
    for k in keys:
        if len(k) != 32:
            raise ValueError("location keys must be 32 bytes")
    return b"".join(keys)


def decode_keys(payload: bytes) -> list:
    """Split an encode_keys() payload back into keys."""
    if len(payload) % 32:
        raise ValueError(f"payload length {len(payload)} is not a multiple of 32")
    return [payload[i:i + 32] for i in range(0, len(payload), 32)]
