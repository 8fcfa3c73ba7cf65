"""Off-chain weather request script: realtime fetch, response encoding, reading extraction."""

import json
import os
import time
from typing import List, Optional

import requests

from lib.fixed_point import SCALE


# ── API configuration ─────────────────────────────────────────────────

TOMORROW_REALTIME_API = "https://api.tomorrow.io/v4/weather/realtime"
API_KEY_ENV = "TOMORROW_API_KEY"

# Fields forwarded from the provider payload into the oracle response.
ESSENTIAL_FIELDS = (
    "temperature",
    "rainIntensity",
    "precipitationProbability",
    "humidity",
    "windSpeed",
)


# ── HTTP with retry ───────────────────────────────────────────────────

def get_json(url: str, params: dict, timeout: int = 60, max_retries: int = 3) -> dict:
    """GET request with exponential backoff retry."""
    for attempt in range(max_retries + 1):
        try:
            r = requests.get(url, params=params, timeout=timeout)
            if r.status_code == 200:
                return r.json()
            if r.status_code == 429 and attempt < max_retries:
                time.sleep(2 ** (attempt + 1))
                continue
            if r.status_code in (500, 502, 503, 504) and attempt < max_retries:
                time.sleep(2 ** (attempt + 1))
                continue
            r.raise_for_status()
        except requests.exceptions.RequestException:
            if attempt == max_retries:
                raise
            time.sleep(2 ** (attempt + 1))
    raise RuntimeError(f"Max retries exceeded for {url}")


# ── Argument handling ─────────────────────────────────────────────────

def coordinate_pairs(args: List[str]) -> list:
    """``["lat", "lon", "lat", "lon", ...]`` -> ``[(lat, lon), ...]`` as floats."""
    if not args or len(args) % 2:
        raise ValueError(f"expected [lat, lon] pairs, got {args!r}")
    return [(float(args[i]), float(args[i + 1])) for i in range(0, len(args), 2)]


def encode_documents(docs: list) -> bytes:
    """One location -> a JSON object; several -> a JSON array."""
    body = docs[0] if len(docs) == 1 else docs
    return json.dumps(body, separators=(",", ":")).encode("utf-8")


# ── Realtime fetch ────────────────────────────────────────────────────

def fetch_realtime_weather(lat: float, lng: float, api_key: Optional[str] = None) -> dict:
    """
    Fetch realtime conditions for one location.

    Returns
    -------
    dict with keys:
        lat, lng, temperature, rainIntensity, precipitationProbability,
        humidity, windSpeed, timestamp
    """
    api_key = api_key or os.getenv(API_KEY_ENV)
    if not api_key:
        raise ValueError(f"No API key: set {API_KEY_ENV}")

    data = get_json(TOMORROW_REALTIME_API, {
        "location": f"{lat},{lng}",
        "apikey": api_key,
    })

    weather = (data.get("data") or {}).get("values")
    if not weather:
        raise RuntimeError("No weather data received")

    doc = {"lat": lat, "lng": lng}
    for name in ESSENTIAL_FIELDS:
        doc[name] = weather.get(name)
    doc["timestamp"] = data["data"].get("time")
    return doc


def realtime_source(args: List[str], api_key: Optional[str] = None) -> bytes:
    """Request-script entry point: string args in, UTF-8 JSON bytes out."""
    docs = [fetch_realtime_weather(lat, lng, api_key) for lat, lng in coordinate_pairs(args)]
    return encode_documents(docs)


# ── Response decoding ─────────────────────────────────────────────────

def decode_weather(response: bytes):
    """Parse a response produced by realtime_source / synthetic_source."""
    return json.loads(response.decode("utf-8"))


def reading_from_response(response: bytes, field: str = "temperature") -> int:
    """
    Extract one numeric field as a signed 1e6-scaled integer.

    Only single-location responses carry a single reading.
    """
    doc = decode_weather(response)
    if isinstance(doc, list):
        raise ValueError("multi-location response has no single reading")
    value = doc.get(field)
    if value is None:
        raise ValueError(f"response has no '{field}' field")
    return int(round(float(value) * SCALE))
