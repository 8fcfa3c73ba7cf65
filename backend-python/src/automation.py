"""
Keeper-facing automation: a read-only predicate and the action it gates.

``check_upkeep`` reports work whenever the location *history* is non-empty
(even if every location has since been deactivated; ``perform_upkeep``
then issues nothing).  Its payload is the full historical key sequence.

Every perform issues a fresh request per active location.  There is no
in-flight suppression: with the ``"latest"`` request policy, triggering
again before the previous batch is fulfilled orphans all but the last
request.
"""

from __future__ import annotations

import logging
from typing import List, Tuple

from lib.chain import Chain
from lib.errors import InvalidPayload
from lib.fixed_point import decode_keys, encode_keys
from src.access import AccessControl, non_reentrant, transactional
from src.events import EventLog
from src.locations import LocationStore
from src.oracles.functions_consumer import FunctionsConsumer

logger = logging.getLogger(__name__)


class WeatherUpkeep:

    def __init__(self, chain: Chain, access: AccessControl, events: EventLog,
                 locations: LocationStore, consumer: FunctionsConsumer):
        self.chain = chain
        self.access = access
        self.events = events
        self.locations = locations
        self.consumer = consumer

    def check_upkeep(self, check_data: bytes = b"") -> Tuple[bool, bytes]:
        keys = self.locations.location_keys()
        return len(keys) > 0, encode_keys(keys)

    @transactional
    @non_reentrant
    def perform_upkeep(self, sender: str, perform_data: bytes) -> List[bytes]:
        try:
            keys = decode_keys(perform_data)
        except ValueError as exc:
            raise InvalidPayload(str(exc)) from exc
        return self._request(keys)

    @transactional
    @non_reentrant
    def request_all_active_weather(self, sender: str) -> List[bytes]:
        """Time-based entry point: anyone may force a fetch for all active locations."""
        return self._request(self.locations.location_keys())

    def _request(self, keys: List[bytes]) -> List[bytes]:
        request_ids: List[bytes] = []
        for key in keys:
            if not self.locations.is_active(key):
                continue
            lat, lon = self.locations.coordinates(key)
            request_id = self.consumer.dispatch([(lat, lon)])
            self.events.emit("WeatherRequested", request_id=request_id,
                             location_key=key, latitude=lat, longitude=lon)
            request_ids.append(request_id)
        logger.info("upkeep issued %d request(s) over %d key(s)", len(request_ids), len(keys))
        return request_ids
