"""
Subscription-based oracle consumer: request/fulfillment state machine.

    IDLE --send_request--> PENDING --matching fulfillment--> IDLE
                              |
                              +--mismatched id--> UnexpectedRequestId (stays PENDING)

Outstanding-request policies
----------------------------
``"set"`` (default)
    Every dispatched id is outstanding until its own fulfillment arrives;
    each id is accepted at most once.
``"latest"``
    Legacy single slot: a new request overwrites the slot, so the earlier
    request's callback is rejected when it arrives (it is orphaned).

The callback is authorised in two steps, in this order: the caller must be
the configured router, then the request id must be outstanding (exact
equality).  Nothing is mutated before both checks pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

from lib.chain import Chain, normalize_address
from lib.errors import NotFound, SubscriptionNotSet, Unauthorized, UnexpectedRequestId
from lib.fixed_point import format_fixed6, location_key, validate_coordinate
from src.access import AccessControl, non_reentrant, only_owner, transactional
from src.events import EventLog

logger = logging.getLogger(__name__)

REQUEST_POLICIES = ("set", "latest")
DEFAULT_SOURCE = "tomorrow-io-realtime"
DEFAULT_DON_ID = "fun-avalanche-fuji-1"
DEFAULT_GAS_LIMIT = 300_000


class OracleStatus(Enum):
    IDLE = "IDLE"
    PENDING = "PENDING"


@dataclass
class OracleRequest:
    request_id: bytes
    location_keys: Tuple[bytes, ...]
    args: List[str]
    sent_at: int
    fulfilled_at: Optional[int] = None
    orphaned: bool = False
    response: bytes = b""
    error: bytes = b""


@dataclass
class FunctionsState:
    subscription_id: Optional[int] = None
    source: str = DEFAULT_SOURCE
    gas_limit: int = DEFAULT_GAS_LIMIT
    don_id: str = DEFAULT_DON_ID
    outstanding: List[bytes] = field(default_factory=list)
    requests: Dict[bytes, OracleRequest] = field(default_factory=dict)
    last_request_id: Optional[bytes] = None
    last_response: bytes = b""
    last_error: bytes = b""


def build_args(locations: Sequence[Tuple[int, int]]) -> List[str]:
    """``[(lat, lon), ...]`` -> ``["lat", "lon", ...]`` as fixed-6-decimal strings."""
    args: List[str] = []
    for lat, lon in locations:
        validate_coordinate(lat, lon)
        args.extend((format_fixed6(lat), format_fixed6(lon)))
    return args


class FunctionsConsumer:
    """Ledger side of the subscription-based oracle round trip.

    Parameters
    ----------
    chain, access, events
        Shared ledger plumbing.
    address : str
        The ledger address the router sees as the consumer.
    router : str
        Trusted router address; the only caller allowed to fulfil.
    subscription_id : int, optional
        Billing subscription; requests fail until it is set.
    request_policy : str
        ``"set"`` or ``"latest"`` (see module docstring).
    """

    def __init__(self, chain: Chain, access: AccessControl, events: EventLog,
                 address: str, router: str, subscription_id: Optional[int] = None,
                 source: str = DEFAULT_SOURCE, don_id: str = DEFAULT_DON_ID,
                 gas_limit: int = DEFAULT_GAS_LIMIT, request_policy: str = "set",
                 pause_blocks_oracle: bool = True):
        if request_policy not in REQUEST_POLICIES:
            raise ValueError(f"request_policy must be one of {REQUEST_POLICIES}")
        self.chain = chain
        self.access = access
        self.events = events
        self.address = address
        self.router = normalize_address(router)
        self.request_policy = request_policy
        self.pause_blocks_oracle = pause_blocks_oracle
        self.state = FunctionsState(subscription_id=subscription_id, source=source,
                                    don_id=don_id, gas_limit=gas_limit)
        chain.track(self)

    # ── configuration ────────────────────────────────────────────────

    @transactional
    @only_owner
    def set_subscription_id(self, sender: str, subscription_id: int) -> None:
        self.state.subscription_id = subscription_id
        self.events.emit("SubscriptionUpdated", subscription_id=subscription_id)

    @transactional
    @only_owner
    def set_source(self, sender: str, source: str, gas_limit: Optional[int] = None) -> None:
        self.state.source = source
        if gas_limit is not None:
            self.state.gas_limit = gas_limit
        self.events.emit("SourceUpdated", gas_limit=self.state.gas_limit)

    # ── state ────────────────────────────────────────────────────────

    @property
    def status(self) -> OracleStatus:
        return OracleStatus.PENDING if self.state.outstanding else OracleStatus.IDLE

    @property
    def last_request_id(self) -> Optional[bytes]:
        return self.state.last_request_id

    @property
    def last_response(self) -> bytes:
        return self.state.last_response

    @property
    def last_error(self) -> bytes:
        return self.state.last_error

    def outstanding(self) -> List[bytes]:
        return list(self.state.outstanding)

    def get_request(self, request_id: bytes) -> OracleRequest:
        req = self.state.requests.get(request_id)
        if req is None:
            raise NotFound(f"unknown request {request_id.hex()}")
        return req

    # ── dispatch ─────────────────────────────────────────────────────

    @transactional
    @non_reentrant
    @only_owner
    def send_request(self, sender: str, locations: Sequence[Tuple[int, int]]) -> bytes:
        return self.dispatch(locations)

    def dispatch(self, locations: Sequence[Tuple[int, int]]) -> bytes:
        """Issue one request for ``locations`` (used by send_request and automation)."""
        if self.pause_blocks_oracle:
            self.access.require_not_paused()
        if self.state.subscription_id is None:
            raise SubscriptionNotSet("no subscription id configured")
        if not locations:
            raise ValueError("at least one location is required")
        args = build_args(locations)

        router = self.chain.contract_at(self.router)
        request_id = router.send_request(
            self.address, self.state.subscription_id, self.state.source,
            args, self.state.don_id, self.state.gas_limit,
        )

        if self.request_policy == "latest":
            for orphan in self.state.outstanding:
                self.state.requests[orphan].orphaned = True
                logger.warning("request %s orphaned by %s", orphan.hex()[:12],
                               request_id.hex()[:12])
            self.state.outstanding = [request_id]
        else:
            self.state.outstanding.append(request_id)

        self.state.requests[request_id] = OracleRequest(
            request_id=request_id,
            location_keys=tuple(location_key(lat, lon) for lat, lon in locations),
            args=args,
            sent_at=self.chain.timestamp,
        )
        self.state.last_request_id = request_id
        self.events.emit("RequestSent", request_id=request_id, args=list(args))
        return request_id

    # ── fulfillment ──────────────────────────────────────────────────

    @transactional
    def handle_oracle_fulfillment(self, sender: str, request_id: bytes,
                                  response: bytes, error: bytes) -> None:
        if normalize_address(sender) != self.router:
            raise Unauthorized("only the router can fulfil requests")
        if request_id not in self.state.outstanding:
            raise UnexpectedRequestId(
                f"request {request_id.hex()} is not outstanding",
                details={"request_id": request_id.hex()},
            )

        self.state.outstanding.remove(request_id)
        req = self.state.requests[request_id]
        req.fulfilled_at = self.chain.timestamp
        req.response = bytes(response)
        req.error = bytes(error)
        self.state.last_response = req.response
        self.state.last_error = req.error
        self.events.emit("Response", request_id=request_id, response=req.response,
                         error=req.error)
        if error:
            logger.warning("request %s fulfilled with error: %s", request_id.hex()[:12],
                           error.decode("utf-8", "replace"))
