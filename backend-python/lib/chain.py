"""
In-process execution environment for the ledger.

``Chain`` supplies what the contracts need from their host:
  - a clock (``timestamp``, seconds) that only moves forward
  - native-currency balances and value transfers
  - an address book of deployed objects (tokens, routers, the ledger)
  - all-or-nothing transactions via ``atomic()``

Every object that keeps mutable state exposes it as a ``state`` attribute
and registers itself with ``track()``.  ``atomic()`` snapshots all tracked
states and restores them if the block raises, so a failed call leaves no
partial effects behind.  An object may supply ``checkpoint()`` /
``rollback(mark)`` instead of being deep-copied (the append-only event log
saves only its length).
"""

from __future__ import annotations

import copy
import hashlib
import logging
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Callable, Dict, Optional

from lib.errors import InsufficientBalance, InvalidAddress, LedgerError, TransferFailed

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x" + "0" * 40

ReceiveHook = Callable[[str, int], None]


def normalize_address(address: str) -> str:
    """Lower-case hex address; raises InvalidAddress for malformed input."""
    if not isinstance(address, str) or not address.startswith("0x") or len(address) != 42:
        raise InvalidAddress(f"malformed address: {address!r}")
    try:
        int(address[2:], 16)
    except ValueError:
        raise InvalidAddress(f"malformed address: {address!r}") from None
    return address.lower()


def derive_address(label: str) -> str:
    """Deterministic address for a human label ("alice", "treasury", ...)."""
    return "0x" + hashlib.sha256(label.encode()).hexdigest()[:40]


class Chain:
    """Clock, native balances, address book and transaction snapshots."""

    def __init__(self, timestamp: Optional[int] = None):
        self.timestamp = int(timestamp if timestamp is not None else time.time())
        self.balances: Dict[str, int] = defaultdict(int)
        self._contracts: Dict[str, Any] = {}
        self._receivers: Dict[str, ReceiveHook] = {}
        self._tracked: list = []
        self._deploy_nonce = 0

    # ── clock ────────────────────────────────────────────────────────

    def advance(self, seconds: int) -> int:
        if seconds < 0:
            raise ValueError("time only moves forward")
        self.timestamp += int(seconds)
        return self.timestamp

    # ── address book ─────────────────────────────────────────────────

    def account(self, label: str) -> str:
        return derive_address(label)

    def deploy(self, contract: Any, label: Optional[str] = None,
               address: Optional[str] = None) -> str:
        """Give ``contract`` an address and make it resolvable by ``contract_at``."""
        if address is None:
            self._deploy_nonce += 1
            address = derive_address(f"{label or type(contract).__name__}:{self._deploy_nonce}")
        address = normalize_address(address)
        if address in self._contracts:
            raise InvalidAddress(f"address already in use: {address}")
        self._contracts[address] = contract
        return address

    def contract_at(self, address: str) -> Any:
        return self._contracts.get(normalize_address(address))

    def set_receiver(self, address: str, hook: Optional[ReceiveHook]) -> None:
        """Install a hook called whenever ``address`` receives native value."""
        address = normalize_address(address)
        if hook is None:
            self._receivers.pop(address, None)
        else:
            self._receivers[address] = hook

    # ── state snapshots ──────────────────────────────────────────────

    def track(self, obj: Any) -> Any:
        if not hasattr(obj, "state"):
            raise TypeError(f"{type(obj).__name__} has no 'state' attribute")
        self._tracked.append(obj)
        return obj

    @staticmethod
    def _checkpoint(obj: Any) -> Any:
        if hasattr(obj, "checkpoint"):
            return obj.checkpoint()
        return copy.deepcopy(obj.state)

    @staticmethod
    def _rollback(obj: Any, saved: Any) -> None:
        if hasattr(obj, "rollback"):
            obj.rollback(saved)
        else:
            obj.state = saved

    @contextmanager
    def atomic(self):
        """Run the block as one indivisible step: on error every tracked state is restored."""
        saved = [self._checkpoint(obj) for obj in self._tracked]
        balances = dict(self.balances)
        try:
            yield self
        except BaseException:
            for obj, mark in zip(self._tracked, saved):
                self._rollback(obj, mark)
            self.balances = defaultdict(int, balances)
            raise

    # ── native currency ──────────────────────────────────────────────

    def balance_of(self, address: str) -> int:
        return self.balances.get(normalize_address(address), 0)

    def mint(self, address: str, amount: int) -> None:
        """Credit native currency out of thin air (genesis / faucet)."""
        if amount < 0:
            raise ValueError("amount must be >= 0")
        self.balances[normalize_address(address)] += int(amount)

    def _move(self, sender: str, recipient: str, amount: int) -> None:
        sender = normalize_address(sender)
        recipient = normalize_address(recipient)
        if amount < 0:
            raise ValueError("amount must be >= 0")
        if self.balances.get(sender, 0) < amount:
            raise InsufficientBalance(
                f"{sender} holds {self.balances.get(sender, 0)}, needs {amount}"
            )
        self.balances[sender] -= amount
        self.balances[recipient] += amount

    def attach_value(self, sender: str, recipient: str, amount: int) -> None:
        """Move the value attached to a call (``msg.value``); no receive hook runs."""
        self._move(sender, recipient, amount)

    def transfer_native(self, sender: str, recipient: str, amount: int) -> None:
        """
        Send native currency and run the recipient's receive hook.

        Any failure (zero recipient, short balance, a hook that rejects)
        surfaces as TransferFailed and leaves balances untouched.
        """
        if normalize_address(recipient) == ZERO_ADDRESS:
            raise TransferFailed("transfer to the zero address")
        with self.atomic():
            try:
                self._move(sender, recipient, amount)
                hook = self._receivers.get(normalize_address(recipient))
                if hook is not None:
                    hook(normalize_address(sender), amount)
            except LedgerError as exc:
                if isinstance(exc, TransferFailed):
                    raise
                raise TransferFailed(f"native transfer to {recipient} failed: {exc}") from exc
        logger.debug("native transfer %s -> %s: %d", sender, recipient, amount)
