"""
Payout and treasury accounting.

Funds the ledger holds (pool-mode premiums, plain deposits) are tracked per
asset: ``received`` grows when value comes in, ``paid_out`` when the
operator disburses or sweeps.  For every asset::

    paid_out + held_balance <= received + (direct token transfers)

Assets are keyed ``"NATIVE"`` or by token address.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from lib.chain import ZERO_ADDRESS, Chain, normalize_address
from lib.errors import (
    InsufficientBalance,
    InvalidAddress,
    InvalidAmount,
    TransferFailed,
    ValidationError,
)
from src.access import AccessControl, non_reentrant, only_owner, transactional
from src.events import EventLog
from src.registry import Registry

logger = logging.getLogger(__name__)

NATIVE = "NATIVE"


# ============================================================================
# Per-asset counters
# ============================================================================

@dataclass
class AccountingState:
    received: Dict[str, int] = field(default_factory=dict)
    paid_out: Dict[str, int] = field(default_factory=dict)


class Accounting:

    def __init__(self, chain: Chain):
        self.state = AccountingState()
        chain.track(self)

    def credit(self, asset: str, amount: int) -> None:
        self.state.received[asset] = self.state.received.get(asset, 0) + amount

    def debit(self, asset: str, amount: int) -> None:
        self.state.paid_out[asset] = self.state.paid_out.get(asset, 0) + amount

    def received(self, asset: str = NATIVE) -> int:
        return self.state.received.get(asset, 0)

    def paid_out(self, asset: str = NATIVE) -> int:
        return self.state.paid_out.get(asset, 0)


def asset_key(token: Optional[str]) -> str:
    return NATIVE if token is None else normalize_address(token)


# ============================================================================
# Treasury operations
# ============================================================================

class Treasury:
    """Operator-directed disbursement of funds held at ``address``."""

    def __init__(self, chain: Chain, access: AccessControl, events: EventLog,
                 registry: Registry, accounting: Accounting, address: str):
        self.chain = chain
        self.access = access
        self.events = events
        self.registry = registry
        self.accounting = accounting
        self.address = address

    # ── balances ─────────────────────────────────────────────────────

    def balance(self, token: Optional[str] = None) -> int:
        if token is None:
            return self.chain.balance_of(self.address)
        contract = self.chain.contract_at(token)
        return contract.balance_of(self.address) if contract is not None else 0

    def receive(self, sender: str, value: int) -> None:
        """Receive hook for plain native deposits."""
        self.accounting.credit(NATIVE, value)
        self.events.emit("FundsReceived", sender=sender, amount=value)

    # ── transfers out ────────────────────────────────────────────────

    def _send(self, recipient: str, amount: int, token: Optional[str]) -> None:
        if token is None:
            self.chain.transfer_native(self.address, recipient, amount)
            return
        contract = self.chain.contract_at(token)
        if contract is None:
            raise TransferFailed(f"no token contract at {token}")
        if not contract.transfer(self.address, recipient, amount):
            raise TransferFailed(f"token transfer of {amount} to {recipient} failed")

    def _require_balance(self, amount: int, token: Optional[str]) -> None:
        held = self.balance(token)
        if held < amount:
            raise InsufficientBalance(
                f"ledger holds {held} of {asset_key(token)}, needs {amount}",
                details={"held": held, "requested": amount},
            )

    @transactional
    @non_reentrant
    @only_owner
    def payout(self, sender: str, recipient: str, claim_id: str, amount: int,
               token: Optional[str] = None) -> None:
        recipient = normalize_address(recipient)
        if recipient == ZERO_ADDRESS:
            raise InvalidAddress("recipient is the zero address")
        if amount <= 0:
            raise InvalidAmount("payout amount must be > 0")
        if not claim_id:
            raise ValidationError("claim id must not be empty")
        if token is not None:
            token = self.registry.require_allowed_token(token)
        self._require_balance(amount, token)

        self._send(recipient, amount, token)
        asset = asset_key(token)
        self.accounting.debit(asset, amount)
        self.events.emit("PayoutExecuted", claim_id=claim_id, recipient=recipient,
                         amount=amount, asset=asset)
        logger.info("payout %s: %d %s to %s", claim_id, amount, asset, recipient)

    @transactional
    @non_reentrant
    @only_owner
    def emergency_withdraw(self, sender: str, amount: Optional[int] = None) -> int:
        """Sweep native balance (all of it when ``amount`` is None) to the operator."""
        return self._sweep(sender, amount, None)

    @transactional
    @non_reentrant
    @only_owner
    def emergency_withdraw_token(self, sender: str, token: str,
                                 amount: Optional[int] = None) -> int:
        return self._sweep(sender, amount, normalize_address(token))

    def _sweep(self, sender: str, amount: Optional[int], token: Optional[str]) -> int:
        held = self.balance(token)
        if amount is None:
            amount = held
        if amount <= 0:
            raise InsufficientBalance(f"no {asset_key(token)} to withdraw")
        self._require_balance(amount, token)

        self._send(self.access.owner, amount, token)
        asset = asset_key(token)
        self.accounting.debit(asset, amount)
        self.events.emit("EmergencyWithdrawal", recipient=self.access.owner,
                         amount=amount, asset=asset)
        logger.warning("emergency withdrawal of %d %s", amount, asset)
        return amount
