"""
Location deduplication store.

Two structures:
  - ``keys``: every location key ever seen, in first-seen order.  Append
    only; never reordered, never compacted.
  - ``locations``: key -> coordinates + active flag (the live overlay).

A key is active iff it is in ``keys`` and has not been deactivated since.
Re-registering a known key is a no-op and does not reactivate it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from lib.chain import Chain
from lib.errors import NotFound
from lib.fixed_point import location_key, validate_coordinate
from src.access import AccessControl, non_reentrant, only_owner, transactional
from src.events import EventLog

logger = logging.getLogger(__name__)


@dataclass
class Location:
    latitude: int
    longitude: int
    active: bool = True


@dataclass
class LocationState:
    locations: Dict[bytes, Location] = field(default_factory=dict)
    keys: List[bytes] = field(default_factory=list)


class LocationStore:

    def __init__(self, chain: Chain, access: AccessControl, events: EventLog):
        self.chain = chain
        self.access = access
        self.events = events
        self.state = LocationState()
        chain.track(self)

    @transactional
    def register_location(self, lat: int, lon: int) -> bytes:
        validate_coordinate(lat, lon)
        key = location_key(lat, lon)
        if key not in self.state.locations:
            self.state.locations[key] = Location(lat, lon)
            self.state.keys.append(key)
            self.events.emit("LocationRegistered", location_key=key,
                             latitude=lat, longitude=lon)
        return key

    @transactional
    @non_reentrant
    @only_owner
    def deactivate_location(self, sender: str, lat: int, lon: int) -> bytes:
        validate_coordinate(lat, lon)
        key = location_key(lat, lon)
        location = self.state.locations.get(key)
        if location is None or not location.active:
            raise NotFound(f"no active location at ({lat}, {lon})")
        location.active = False
        self.events.emit("LocationDeactivated", location_key=key,
                         latitude=lat, longitude=lon)
        return key

    # ── reads ────────────────────────────────────────────────────────

    def is_active(self, key: bytes) -> bool:
        location = self.state.locations.get(key)
        return location is not None and location.active

    def coordinates(self, key: bytes) -> Tuple[int, int]:
        location = self.state.locations.get(key)
        if location is None:
            raise NotFound(f"unknown location key {key.hex()}")
        return location.latitude, location.longitude

    def location_keys(self) -> List[bytes]:
        return list(self.state.keys)

    def list_active(self) -> List[Tuple[int, int]]:
        """Active (lat, lon) pairs in first-seen order; linear in total history."""
        locations = self.state.locations
        count = sum(1 for k in self.state.keys if locations[k].active)
        active: List[Tuple[int, int]] = []
        for k in self.state.keys:
            if len(active) == count:
                break
            loc = locations[k]
            if loc.active:
                active.append((loc.latitude, loc.longitude))
        return active

    def __len__(self) -> int:
        return len(self.state.keys)
