"""
Job-based oracle client: one request per location, fee paid in a fee token.

Unlike the subscription consumer, any number of requests may be in flight;
readings are stored per ``(location_key, request_id)``.  A later reading for
the same pair overwrites the earlier one (last write wins).
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from lib.chain import ZERO_ADDRESS, Chain, normalize_address
from lib.errors import (
    FeeNotSet,
    FeeTokenNotSet,
    InsufficientBalance,
    InsufficientFeeBalance,
    InvalidAmount,
    InvalidPayload,
    JobNotSet,
    NotFound,
    OracleNotSet,
    TransferFailed,
    Unauthorized,
    UnexpectedRequestId,
)
from lib.fixed_point import format_fixed6, location_key, validate_coordinate
from src.access import AccessControl, non_reentrant, only_owner, transactional
from src.events import EventLog

logger = logging.getLogger(__name__)


@dataclass
class DirectRequestState:
    oracle: Optional[str] = None
    job_id: Optional[str] = None
    fee: int = 0
    fee_token: Optional[str] = None
    nonce: int = 0
    pending: Dict[bytes, bytes] = field(default_factory=dict)
    readings: Dict[Tuple[bytes, bytes], int] = field(default_factory=dict)
    latest: Dict[bytes, bytes] = field(default_factory=dict)


class DirectRequestClient:
    """Requests a single location's weather from an operator-configured oracle job."""

    def __init__(self, chain: Chain, access: AccessControl, events: EventLog,
                 address: str, oracle: Optional[str] = None,
                 job_id: Optional[str] = None, fee: int = 0,
                 fee_token: Optional[str] = None, pause_blocks_oracle: bool = True):
        self.chain = chain
        self.access = access
        self.events = events
        self.address = address
        self.pause_blocks_oracle = pause_blocks_oracle
        self.state = DirectRequestState(
            oracle=normalize_address(oracle) if oracle else None,
            job_id=job_id or None,
            fee=fee,
            fee_token=normalize_address(fee_token) if fee_token else None,
        )
        chain.track(self)

    # ── configuration ────────────────────────────────────────────────

    @transactional
    @only_owner
    def set_oracle(self, sender: str, oracle: str) -> None:
        oracle = normalize_address(oracle)
        self.state.oracle = None if oracle == ZERO_ADDRESS else oracle
        self.events.emit("OracleUpdated", oracle=oracle)

    @transactional
    @only_owner
    def set_job_id(self, sender: str, job_id: str) -> None:
        self.state.job_id = job_id or None
        self.events.emit("JobIdUpdated", job_id=job_id)

    @transactional
    @only_owner
    def set_fee(self, sender: str, fee: int) -> None:
        if fee < 0:
            raise InvalidAmount("fee must be >= 0")
        self.state.fee = fee
        self.events.emit("FeeUpdated", fee=fee)

    @transactional
    @only_owner
    def set_fee_token(self, sender: str, fee_token: str) -> None:
        fee_token = normalize_address(fee_token)
        self.state.fee_token = None if fee_token == ZERO_ADDRESS else fee_token
        self.events.emit("FeeTokenUpdated", fee_token=fee_token)

    def fee_balance(self) -> int:
        if self.state.fee_token is None:
            return 0
        token = self.chain.contract_at(self.state.fee_token)
        return token.balance_of(self.address) if token is not None else 0

    @transactional
    @non_reentrant
    @only_owner
    def withdraw_fee_token(self, sender: str) -> int:
        if self.state.fee_token is None:
            raise FeeTokenNotSet("fee token not configured")
        amount = self.fee_balance()
        if amount <= 0:
            raise InsufficientBalance("no fee token to withdraw")
        token = self.chain.contract_at(self.state.fee_token)
        if not token.transfer(self.address, self.access.owner, amount):
            raise TransferFailed("fee token withdrawal failed")
        self.events.emit("FeeTokenWithdrawn", recipient=self.access.owner, amount=amount)
        return amount

    # ── request ──────────────────────────────────────────────────────

    def _next_request_id(self) -> bytes:
        self.state.nonce += 1
        return hashlib.sha256(f"{self.address}:{self.state.nonce}".encode()).digest()

    @transactional
    @non_reentrant
    @only_owner
    def request_single_location_weather(self, sender: str, lat: int, lon: int) -> bytes:
        if self.pause_blocks_oracle:
            self.access.require_not_paused()
        validate_coordinate(lat, lon)
        if self.state.oracle is None:
            raise OracleNotSet("oracle address not configured")
        if not self.state.job_id:
            raise JobNotSet("job id not configured")
        if self.state.fee <= 0:
            raise FeeNotSet("fee not configured")
        if self.state.fee_token is None:
            raise FeeTokenNotSet("fee token not configured")
        if self.fee_balance() < self.state.fee:
            raise InsufficientFeeBalance(
                f"fee balance {self.fee_balance()} below fee {self.state.fee}"
            )

        oracle = self.chain.contract_at(self.state.oracle)
        if oracle is None:
            raise TransferFailed(f"no oracle contract at {self.state.oracle}")
        token = self.chain.contract_at(self.state.fee_token)
        if not token.transfer(self.address, self.state.oracle, self.state.fee):
            raise TransferFailed("fee payment failed")

        key = location_key(lat, lon)
        request_id = self._next_request_id()
        self.state.pending[request_id] = key
        oracle.oracle_request(self.address, request_id, self.state.job_id,
                              self.state.fee,
                              {"lat": format_fixed6(lat), "lon": format_fixed6(lon)})
        self.events.emit("WeatherRequested", request_id=request_id, location_key=key,
                         latitude=lat, longitude=lon)
        return request_id

    # ── fulfillment ──────────────────────────────────────────────────

    @transactional
    def fulfill_weather(self, sender: str, request_id: bytes, value: int,
                        lat: int, lon: int) -> None:
        if self.state.oracle is None or normalize_address(sender) != self.state.oracle:
            raise Unauthorized("source must be the configured oracle")
        if request_id not in self.state.pending:
            raise UnexpectedRequestId(f"request {request_id.hex()} is not pending")
        key = self.state.pending[request_id]
        if location_key(lat, lon) != key:
            raise InvalidPayload(
                f"fulfillment for ({lat}, {lon}) does not match request {request_id.hex()}",
                details={"request_id": request_id.hex()},
            )
        del self.state.pending[request_id]

        self.state.readings[(key, request_id)] = int(value)
        self.state.latest[key] = request_id
        self.events.emit("WeatherReceived", request_id=request_id, location_key=key,
                         latitude=lat, longitude=lon, value=int(value))

    # ── reads ────────────────────────────────────────────────────────

    def pending(self) -> Dict[bytes, bytes]:
        return dict(self.state.pending)

    def get_reading(self, lat: int, lon: int, request_id: bytes) -> int:
        key = location_key(lat, lon)
        try:
            return self.state.readings[(key, request_id)]
        except KeyError:
            raise NotFound(f"no reading for ({lat}, {lon}) / {request_id.hex()}") from None

    def latest_reading(self, lat: int, lon: int) -> int:
        key = location_key(lat, lon)
        request_id = self.state.latest.get(key)
        if request_id is None:
            raise NotFound(f"no reading for ({lat}, {lon})")
        return self.state.readings[(key, request_id)]
