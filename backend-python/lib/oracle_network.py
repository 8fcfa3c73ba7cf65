"""
Simulated oracle networks the ledger talks to.

Two collaborators, one per request style:

FunctionsRouter
    Subscription-based compute network.  A consumer dispatches an opaque
    source plus positional string args and gets a request id back at once;
    the response arrives later through ``fulfill`` / ``execute``.
JobOracle
    Operator-configured oracle + job.  The requester pays a fee in the fee
    token, sends key/value params, and is called back with a numeric value.

Neither fulfils synchronously inside the dispatching call: the round trip
is always two separate calls.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from lib.chain import Chain, normalize_address
from lib.errors import LedgerError, NotFound, SubscriptionNotSet, Unauthorized
from lib.fixed_point import parse_fixed6

logger = logging.getLogger(__name__)

Executor = Callable[[str, List[str]], bytes]


def _request_id(address: str, nonce: int) -> bytes:
    return hashlib.sha256(f"{address}:{nonce}".encode()).digest()


# ============================================================================
# Subscription-based router
# ============================================================================

@dataclass
class RouterRequest:
    request_id: bytes
    consumer: str
    subscription_id: int
    source: str
    args: List[str]
    don_id: str
    gas_limit: int
    fulfilled: bool = False


@dataclass
class RouterState:
    subscriptions: Dict[int, List[str]] = field(default_factory=dict)
    requests: Dict[bytes, RouterRequest] = field(default_factory=dict)
    nonce: int = 0


class FunctionsRouter:
    """Off-chain compute network endpoint.

    Parameters
    ----------
    chain : Chain
        Host environment.
    executor : callable(source, args) -> bytes, optional
        Runs the request script when ``execute`` is called.
    """

    def __init__(self, chain: Chain, executor: Optional[Executor] = None):
        self.chain = chain
        self.executor = executor
        self.state = RouterState()
        self.address = chain.deploy(self, label="functions-router")
        chain.track(self)

    # ------------------------------------------------------------------

    def create_subscription(self) -> int:
        sub_id = len(self.state.subscriptions) + 1
        self.state.subscriptions[sub_id] = []
        return sub_id

    def add_consumer(self, subscription_id: int, consumer: str) -> None:
        if subscription_id not in self.state.subscriptions:
            raise SubscriptionNotSet(f"unknown subscription {subscription_id}")
        consumer = normalize_address(consumer)
        if consumer not in self.state.subscriptions[subscription_id]:
            self.state.subscriptions[subscription_id].append(consumer)

    def send_request(self, sender: str, subscription_id: int, source: str,
                     args: List[str], don_id: str, gas_limit: int) -> bytes:
        sender = normalize_address(sender)
        consumers = self.state.subscriptions.get(subscription_id)
        if consumers is None:
            raise SubscriptionNotSet(f"unknown subscription {subscription_id}")
        if sender not in consumers:
            raise Unauthorized(f"{sender} is not a consumer of subscription {subscription_id}")

        self.state.nonce += 1
        request_id = _request_id(self.address, self.state.nonce)
        self.state.requests[request_id] = RouterRequest(
            request_id=request_id,
            consumer=sender,
            subscription_id=subscription_id,
            source=source,
            args=list(args),
            don_id=don_id,
            gas_limit=gas_limit,
        )
        logger.debug("router request %s from %s args=%s", request_id.hex()[:12], sender, args)
        return request_id

    def pending(self) -> List[bytes]:
        return [rid for rid, r in self.state.requests.items() if not r.fulfilled]

    def get_request(self, request_id: bytes) -> RouterRequest:
        if request_id not in self.state.requests:
            raise NotFound(f"unknown request {request_id.hex()}")
        return self.state.requests[request_id]

    # ------------------------------------------------------------------

    def fulfill(self, request_id: bytes, response: bytes = b"", error: bytes = b"") -> None:
        """Deliver a result to the consumer through its fulfillment callback."""
        req = self.get_request(request_id)
        consumer = self.chain.contract_at(req.consumer)
        with self.chain.atomic():
            req.fulfilled = True
            consumer.handle_oracle_fulfillment(self.address, request_id, response, error)

    def execute(self, request_id: bytes, executor: Optional[Executor] = None) -> None:
        """Run the request script and fulfil with its output (or its error)."""
        req = self.get_request(request_id)
        run = executor or self.executor
        if run is None:
            raise ValueError("no executor configured")
        try:
            response, error = run(req.source, req.args), b""
        except Exception as exc:
            logger.warning("request %s failed off-chain: %s", request_id.hex()[:12], exc)
            response, error = b"", str(exc).encode("utf-8")
        self.fulfill(request_id, response, error)

    def execute_pending(self, executor: Optional[Executor] = None) -> int:
        """Execute every unfulfilled request; returns how many callbacks were accepted."""
        delivered = 0
        for rid in self.pending():
            try:
                self.execute(rid, executor)
            except LedgerError as exc:
                logger.warning("request %s refused by consumer: %s", rid.hex()[:12], exc)
                continue
            delivered += 1
        return delivered


# ============================================================================
# Job-based oracle
# ============================================================================

@dataclass
class JobRequest:
    request_id: bytes
    requester: str
    job_id: str
    payment: int
    params: Dict[str, str]
    fulfilled: bool = False


@dataclass
class JobOracleState:
    requests: Dict[bytes, JobRequest] = field(default_factory=dict)


class JobOracle:
    """Oracle contract that runs a configured job and calls the requester back."""

    def __init__(self, chain: Chain, fee_token: str):
        self.chain = chain
        self.fee_token = normalize_address(fee_token)
        self.state = JobOracleState()
        self.address = chain.deploy(self, label="job-oracle")
        chain.track(self)

    def oracle_request(self, sender: str, request_id: bytes, job_id: str,
                       payment: int, params: Dict[str, str]) -> None:
        self.state.requests[request_id] = JobRequest(
            request_id=request_id,
            requester=normalize_address(sender),
            job_id=job_id,
            payment=payment,
            params=dict(params),
        )

    def pending(self) -> List[bytes]:
        return [rid for rid, r in self.state.requests.items() if not r.fulfilled]

    def fulfill(self, request_id: bytes, value: int) -> None:
        req = self.state.requests.get(request_id)
        if req is None:
            raise NotFound(f"unknown request {request_id.hex()}")
        requester = self.chain.contract_at(req.requester)
        with self.chain.atomic():
            req.fulfilled = True
            requester.fulfill_weather(
                self.address,
                request_id,
                value,
                parse_fixed6(req.params["lat"]),
                parse_fixed6(req.params["lon"]),
            )
