"""
Payment processing: validate a purchase, move the premium, register the
covered location and record the policy.

Every precondition is checked before the first transfer, and the whole call
runs in one transaction: a failed transfer leaves no location, policy or
event behind.

Deployment choices (fixed at construction, never per call):

pricing_mode
    ``"package"``  — premium is the package's native/token price.
    ``"explicit"`` — caller supplies the premium; no package needed.
settlement_mode
    ``"treasury"`` — forward the premium to the treasury wallet at once.
    ``"pool"``     — hold it in the ledger for operator-directed payouts.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from lib.chain import Chain, normalize_address
from lib.errors import (
    IncorrectPremium,
    InsufficientAllowance,
    InsufficientBalance,
    InvalidStartDate,
    TransferFailed,
    ValidationError,
)
from lib.fixed_point import validate_coordinate
from src.access import AccessControl, non_reentrant, transactional, when_not_paused
from src.events import EventLog
from src.locations import LocationStore
from src.registry import NO_POLICY, Registry
from src.treasury import NATIVE, Accounting

logger = logging.getLogger(__name__)

COVERAGE_TERM_SECONDS = 365 * 24 * 60 * 60

PRICING_MODES = ("package", "explicit")
SETTLEMENT_MODES = ("treasury", "pool")

CURRENCY_NATIVE = "NATIVE"
CURRENCY_TOKEN = "TOKEN"


@dataclass(frozen=True)
class PurchaseReceipt:
    policy_id: int
    location_key: bytes
    start_date: int
    end_date: int
    amount: int
    currency: str


class PaymentProcessor:

    def __init__(self, chain: Chain, access: AccessControl, events: EventLog,
                 registry: Registry, locations: LocationStore,
                 accounting: Accounting, address: str,
                 pricing_mode: str = "package", settlement_mode: str = "treasury",
                 track_policies: bool = True):
        if pricing_mode not in PRICING_MODES:
            raise ValueError(f"pricing_mode must be one of {PRICING_MODES}")
        if settlement_mode not in SETTLEMENT_MODES:
            raise ValueError(f"settlement_mode must be one of {SETTLEMENT_MODES}")
        self.chain = chain
        self.access = access
        self.events = events
        self.registry = registry
        self.locations = locations
        self.accounting = accounting
        self.address = address
        self.pricing_mode = pricing_mode
        self.settlement_mode = settlement_mode
        self.track_policies = track_policies

    # ── validation ───────────────────────────────────────────────────

    def _price(self, package_id: Optional[str], premium: Optional[int],
               currency: str) -> int:
        if self.pricing_mode == "explicit":
            if premium is None or premium <= 0:
                raise IncorrectPremium("premium must be > 0")
            return premium

        if not package_id:
            raise ValidationError("package id must not be empty")
        package = self.registry.require_active_package(package_id)
        price = package.price_native if currency == CURRENCY_NATIVE else package.price_token
        if premium is not None and premium != price:
            raise IncorrectPremium("Incorrect premium amount")
        return price

    def _validate_common(self, lat: int, lon: int, start_date: int) -> None:
        validate_coordinate(lat, lon)
        if start_date <= self.chain.timestamp:
            raise InvalidStartDate("Start date must be in the future",
                                   details={"start_date": start_date,
                                            "now": self.chain.timestamp})

    # ── purchases ────────────────────────────────────────────────────

    @transactional
    @non_reentrant
    @when_not_paused
    def purchase_with_native(self, sender: str, package_id: Optional[str],
                             lat: int, lon: int, start_date: int, value: int,
                             premium: Optional[int] = None) -> PurchaseReceipt:
        sender = normalize_address(sender)
        self._validate_common(lat, lon, start_date)
        price = self._price(package_id, premium, CURRENCY_NATIVE)
        if value != price:
            raise IncorrectPremium("Incorrect premium amount",
                                   details={"expected": price, "paid": value})
        if self.chain.balance_of(sender) < value:
            raise InsufficientBalance(f"{sender} cannot pay {value}")

        self.chain.attach_value(sender, self.address, value)
        if self.settlement_mode == "treasury":
            self.chain.transfer_native(self.address, self.registry.treasury_wallet, value)
        else:
            self.accounting.credit(NATIVE, value)

        return self._finalise(sender, package_id, lat, lon, start_date, value,
                              CURRENCY_NATIVE, None)

    @transactional
    @non_reentrant
    @when_not_paused
    def purchase_with_token(self, sender: str, token: str, package_id: Optional[str],
                            lat: int, lon: int, start_date: int,
                            premium: Optional[int] = None) -> PurchaseReceipt:
        sender = normalize_address(sender)
        token = self.registry.require_allowed_token(token)
        self._validate_common(lat, lon, start_date)
        amount = self._price(package_id, premium, CURRENCY_TOKEN)

        contract = self.chain.contract_at(token)
        if contract is None:
            raise TransferFailed(f"no token contract at {token}")
        if contract.allowance(sender, self.address) < amount:
            raise InsufficientAllowance(f"allowance below {amount}")
        if contract.balance_of(sender) < amount:
            raise InsufficientBalance(f"{sender} holds less than {amount}")

        destination = (self.registry.treasury_wallet
                       if self.settlement_mode == "treasury" else self.address)
        if not contract.transfer_from(self.address, sender, destination, amount):
            raise TransferFailed("token transferFrom failed")
        if self.settlement_mode == "pool":
            self.accounting.credit(token, amount)

        return self._finalise(sender, package_id, lat, lon, start_date, amount,
                              CURRENCY_TOKEN, token)

    # ------------------------------------------------------------------

    def _finalise(self, holder: str, package_id: Optional[str], lat: int, lon: int,
                  start_date: int, amount: int, currency: str,
                  token: Optional[str]) -> PurchaseReceipt:
        key = self.locations.register_location(lat, lon)
        end_date = start_date + COVERAGE_TERM_SECONDS

        policy_id = NO_POLICY
        if self.track_policies:
            policy = self.registry.record_policy(
                holder, package_id or "", lat, lon, start_date, end_date,
                amount, currency, token,
            )
            policy_id = policy.policy_id

        self.events.emit(
            "InsurancePurchased",
            policy_id=policy_id,
            holder=holder,
            package_id=package_id or "",
            latitude=lat,
            longitude=lon,
            start_date=start_date,
            end_date=end_date,
            amount=amount,
            currency=currency,
            token=token,
            timestamp=self.chain.timestamp,
        )
        logger.info("purchase by %s: %d %s, coverage %d-%d", holder, amount,
                    currency, start_date, end_date)
        return PurchaseReceipt(policy_id, key, start_date, end_date, amount, currency)
