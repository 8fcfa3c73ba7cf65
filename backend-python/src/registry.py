"""
Ledger registry: insurance packages, allow-listed payment tokens, the
treasury wallet and (when tracking is enabled) per-holder policy records.

Packages are upserted by the operator and never deleted, only deactivated.
Policy ids start at 1; 0 is reserved as the "not found" sentinel.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from lib.chain import ZERO_ADDRESS, Chain, normalize_address
from lib.errors import (
    ClaimAlreadySubmitted,
    InvalidAddress,
    InvalidAmount,
    OutsideCoverageWindow,
    PackageInactive,
    PackageNotFound,
    PolicyInactive,
    PolicyNotFound,
    TokenNotAllowed,
    Unauthorized,
    ValidationError,
)
from src.access import AccessControl, non_reentrant, only_owner, transactional
from src.events import EventLog

logger = logging.getLogger(__name__)

# USDC on Avalanche C-Chain
REFERENCE_STABLECOIN = "0xB97EF9Ef8734C71904D8002F8b6Bc66Dd9c48a6E"

NO_POLICY = 0


@dataclass
class InsurancePackage:
    package_id: str
    name: str
    price_native: int
    price_token: int
    is_active: bool


@dataclass
class InsurancePolicy:
    policy_id: int
    holder: str
    package_id: str
    latitude: int
    longitude: int
    start_date: int
    end_date: int
    premium: int
    currency: str
    token: Optional[str]
    created_at: int
    is_active: bool = True
    is_claimed: bool = False


@dataclass
class RegistryState:
    treasury_wallet: str
    packages: Dict[str, InsurancePackage] = field(default_factory=dict)
    allowed_tokens: Dict[str, bool] = field(default_factory=dict)
    policies: Dict[int, InsurancePolicy] = field(default_factory=dict)
    user_policies: Dict[str, List[int]] = field(default_factory=dict)
    next_policy_id: int = 1


class Registry:
    """Operator-gated mutable registry.

    Parameters
    ----------
    chain, access, events
        Shared ledger plumbing.
    treasury_wallet : str
        Initial payout/forwarding wallet (usually the deployer).
    reference_token : str
        Stablecoin allow-listed at construction.
    """

    def __init__(self, chain: Chain, access: AccessControl, events: EventLog,
                 treasury_wallet: str, reference_token: str = REFERENCE_STABLECOIN):
        self.chain = chain
        self.access = access
        self.events = events
        self.state = RegistryState(treasury_wallet=normalize_address(treasury_wallet))
        self.state.allowed_tokens[normalize_address(reference_token)] = True
        chain.track(self)

    # ── packages ─────────────────────────────────────────────────────

    @transactional
    @only_owner
    def create_or_update_package(self, sender: str, package_id: str, name: str,
                                 price_native: int, price_token: int,
                                 is_active: bool = True) -> InsurancePackage:
        if not package_id:
            raise ValidationError("package id must not be empty")
        if price_native < 0 or price_token < 0:
            raise InvalidAmount("package prices must be >= 0")

        existed = package_id in self.state.packages
        package = InsurancePackage(package_id, name, int(price_native),
                                   int(price_token), bool(is_active))
        self.state.packages[package_id] = package
        self.events.emit(
            "InsurancePackageUpdated" if existed else "InsurancePackageCreated",
            package_id=package_id, name=name, price_native=package.price_native,
            price_token=package.price_token, is_active=package.is_active,
        )
        return dataclasses.replace(package)

    def get_package(self, package_id: str) -> InsurancePackage:
        package = self.state.packages.get(package_id)
        if package is None:
            raise PackageNotFound(f"package '{package_id}' does not exist")
        return dataclasses.replace(package)

    def require_active_package(self, package_id: str) -> InsurancePackage:
        package = self.get_package(package_id)
        if not package.is_active:
            raise PackageInactive(f"package '{package_id}' is not active")
        return package

    def list_packages(self) -> List[InsurancePackage]:
        return [dataclasses.replace(p) for p in self.state.packages.values()]

    # ── token allow-list ─────────────────────────────────────────────

    @transactional
    @only_owner
    def set_allowed_token(self, sender: str, token: str, allowed: bool) -> None:
        token = normalize_address(token)
        if token == ZERO_ADDRESS:
            raise InvalidAddress("token is the zero address")
        self.state.allowed_tokens[token] = bool(allowed)
        self.events.emit("TokenAllowlistChanged", token=token, allowed=bool(allowed))

    def is_token_allowed(self, token: str) -> bool:
        return self.state.allowed_tokens.get(normalize_address(token), False)

    def require_allowed_token(self, token: str) -> str:
        if not self.is_token_allowed(token):
            raise TokenNotAllowed(f"token {token} is not allow-listed")
        return normalize_address(token)

    # ── treasury wallet ──────────────────────────────────────────────

    @property
    def treasury_wallet(self) -> str:
        return self.state.treasury_wallet

    @transactional
    @only_owner
    def change_treasury_wallet(self, sender: str, new_wallet: str) -> None:
        new_wallet = normalize_address(new_wallet)
        if new_wallet == ZERO_ADDRESS:
            raise InvalidAddress("Invalid treasury wallet address")
        old = self.state.treasury_wallet
        self.state.treasury_wallet = new_wallet
        self.events.emit("TreasuryWalletChanged", old_wallet=old, new_wallet=new_wallet)

    # ── policies ─────────────────────────────────────────────────────

    def record_policy(self, holder: str, package_id: str, latitude: int,
                      longitude: int, start_date: int, end_date: int,
                      premium: int, currency: str,
                      token: Optional[str] = None) -> InsurancePolicy:
        """Allocate the next id and persist a policy (called by payment processing)."""
        holder = normalize_address(holder)
        policy = InsurancePolicy(
            policy_id=self.state.next_policy_id,
            holder=holder,
            package_id=package_id,
            latitude=latitude,
            longitude=longitude,
            start_date=start_date,
            end_date=end_date,
            premium=premium,
            currency=currency,
            token=token,
            created_at=self.chain.timestamp,
        )
        self.state.policies[policy.policy_id] = policy
        self.state.user_policies.setdefault(holder, []).append(policy.policy_id)
        self.state.next_policy_id += 1
        return dataclasses.replace(policy)

    def get_policy(self, policy_id: int) -> InsurancePolicy:
        policy = self.state.policies.get(policy_id)
        if policy is None:
            raise PolicyNotFound(f"policy {policy_id} does not exist")
        return dataclasses.replace(policy)

    def get_user_policies(self, holder: str) -> List[InsurancePolicy]:
        ids = self.state.user_policies.get(normalize_address(holder), [])
        return [dataclasses.replace(self.state.policies[i]) for i in ids]

    def get_total_policies(self) -> int:
        return self.state.next_policy_id - 1

    @transactional
    @non_reentrant
    def submit_claim(self, sender: str, policy_id: int) -> InsurancePolicy:
        """Flag a policy as claimed; eligibility and amount are settled off-chain."""
        policy = self.state.policies.get(policy_id)
        if policy is None:
            raise PolicyNotFound(f"policy {policy_id} does not exist")
        if normalize_address(sender) != policy.holder:
            raise Unauthorized("only the policyholder can submit a claim")
        if not policy.is_active:
            raise PolicyInactive(f"policy {policy_id} is not active")
        if policy.is_claimed:
            raise ClaimAlreadySubmitted(f"policy {policy_id} already has a claim")
        now = self.chain.timestamp
        if not policy.start_date <= now <= policy.end_date:
            raise OutsideCoverageWindow(
                f"claim at {now} outside coverage [{policy.start_date}, {policy.end_date}]"
            )
        policy.is_claimed = True
        self.events.emit("ClaimSubmitted", policy_id=policy_id, holder=policy.holder,
                         timestamp=now)
        return dataclasses.replace(policy)
