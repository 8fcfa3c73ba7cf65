"""Synthetic weather observations for demos/testing (no API calls)."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import numpy as np

from lib.fetcher import ESSENTIAL_FIELDS, coordinate_pairs, encode_documents


def _rng(lat: float, lng: float, seed: int, step: int) -> np.random.Generator:
    # SeedSequence entropy must be non-negative
    return np.random.default_rng([
        seed & 0xFFFFFFFF,
        int(round(lat * 1e6)) & 0xFFFFFFFF,
        int(round(lng * 1e6)) & 0xFFFFFFFF,
        step & 0xFFFFFFFF,
    ])


def simulate_weather(
    lat: float,
    lng: float,
    seed: int = 42,
    step: int = 0,
    timestamp: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Create a fake realtime observation (NO API calls).

    Parameters
    ----------
    seed : int
        Deterministic seed; same (seed, lat, lng, step) -> same observation.
    step : int
        Polling round, so repeated polls of one location differ.
    timestamp : int, optional
        Observation time (unix seconds); defaults to now.

    Returns
    -------
    dict shaped like fetch_realtime_weather().
    """
    rng = _rng(lat, lng, seed, step)

    # warmer near the equator
    base_temp = 30.0 - 0.45 * abs(lat)
    temperature = base_temp + rng.normal(0.0, 4.0)
    rain = float(rng.exponential(1.5)) if rng.random() < 0.35 else 0.0

    values = {
        "temperature": round(float(temperature), 2),
        "rainIntensity": round(rain, 2),
        "precipitationProbability": int(rng.integers(0, 101)),
        "humidity": int(np.clip(rng.normal(70.0, 15.0), 5, 100)),
        "windSpeed": round(float(rng.gamma(2.0, 1.8)), 2),
    }

    when = datetime.fromtimestamp(
        timestamp if timestamp is not None else datetime.now(timezone.utc).timestamp(),
        tz=timezone.utc,
    )

    doc = {"lat": lat, "lng": lng}
    doc.update({k: values[k] for k in ESSENTIAL_FIELDS})
    doc["timestamp"] = when.strftime("%Y-%m-%dT%H:%M:%SZ")
    return doc


def synthetic_source(args: List[str], seed: int = 42, step: int = 0,
                     timestamp: Optional[int] = None) -> bytes:
    """Drop-in replacement for fetcher.realtime_source."""
    docs = [
        simulate_weather(lat, lng, seed=seed, step=step, timestamp=timestamp)
        for lat, lng in coordinate_pairs(args)
    ]
    return encode_documents(docs)
