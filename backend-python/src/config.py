"""Deployment configuration: JSON file + environment overrides."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from src.oracles.functions_consumer import (
    DEFAULT_DON_ID,
    DEFAULT_GAS_LIMIT,
    DEFAULT_SOURCE,
    REQUEST_POLICIES,
)
from src.payments import PRICING_MODES, SETTLEMENT_MODES
from src.registry import REFERENCE_STABLECOIN


@dataclass
class PackageSeed:
    """Package upserted at deploy time."""
    package_id: str
    name: str
    price_native: int
    price_token: int
    is_active: bool = True


@dataclass
class FunctionsConfig:
    """Subscription-based oracle settings."""
    subscription_id: Optional[int] = None
    source: str = DEFAULT_SOURCE
    don_id: str = DEFAULT_DON_ID
    gas_limit: int = DEFAULT_GAS_LIMIT
    request_policy: str = "set"


@dataclass
class DirectRequestConfig:
    """Job-based oracle settings."""
    oracle: Optional[str] = None
    job_id: Optional[str] = None
    fee: int = 0
    fee_token: Optional[str] = None


@dataclass
class LedgerConfig:
    reference_token: str = REFERENCE_STABLECOIN
    pricing_mode: str = "package"
    settlement_mode: str = "treasury"
    track_policies: bool = True
    pause_blocks_oracle: bool = True
    log_level: str = "INFO"
    functions: FunctionsConfig = field(default_factory=FunctionsConfig)
    direct: DirectRequestConfig = field(default_factory=DirectRequestConfig)
    packages: List[PackageSeed] = field(default_factory=list)

    def validate(self) -> "LedgerConfig":
        if self.pricing_mode not in PRICING_MODES:
            raise ValueError(f"pricing_mode must be one of {PRICING_MODES}, got '{self.pricing_mode}'")
        if self.settlement_mode not in SETTLEMENT_MODES:
            raise ValueError(
                f"settlement_mode must be one of {SETTLEMENT_MODES}, got '{self.settlement_mode}'"
            )
        if self.functions.request_policy not in REQUEST_POLICIES:
            raise ValueError(
                f"functions.request_policy must be one of {REQUEST_POLICIES}, "
                f"got '{self.functions.request_policy}'"
            )
        if self.functions.subscription_id is not None and self.functions.subscription_id <= 0:
            raise ValueError("functions.subscription_id must be > 0")
        if self.functions.gas_limit <= 0:
            raise ValueError("functions.gas_limit must be > 0")
        if self.direct.fee < 0:
            raise ValueError("direct.fee must be >= 0")
        seen = set()
        for p in self.packages:
            if not p.package_id:
                raise ValueError("package_id must not be empty")
            if p.package_id in seen:
                raise ValueError(f"duplicate package '{p.package_id}'")
            if p.price_native < 0 or p.price_token < 0:
                raise ValueError(f"package '{p.package_id}' has a negative price")
            seen.add(p.package_id)
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerConfig":
        data = dict(data)
        functions = FunctionsConfig(**data.pop("functions", {}))
        direct = DirectRequestConfig(**data.pop("direct", {}))
        packages = [PackageSeed(**p) for p in data.pop("packages", [])]
        return cls(functions=functions, direct=direct, packages=packages, **data)

    @classmethod
    def load(cls, config_path: str) -> "LedgerConfig":
        """
        Load configuration from a JSON file, then apply environment overrides.

        Environment variables:
        - LEDGER_SUBSCRIPTION_ID
        - LEDGER_REQUEST_POLICY
        - LEDGER_LOG_LEVEL
        """
        with open(config_path) as f:
            config = cls.from_dict(json.load(f))
        return config.apply_env().validate()

    def apply_env(self, environ: Optional[Dict[str, str]] = None) -> "LedgerConfig":
        env = os.environ if environ is None else environ
        if env.get("LEDGER_SUBSCRIPTION_ID"):
            try:
                self.functions.subscription_id = int(env["LEDGER_SUBSCRIPTION_ID"])
            except ValueError:
                raise ValueError("LEDGER_SUBSCRIPTION_ID must be an integer") from None
        if env.get("LEDGER_REQUEST_POLICY"):
            self.functions.request_policy = env["LEDGER_REQUEST_POLICY"]
        if env.get("LEDGER_LOG_LEVEL"):
            self.log_level = env["LEDGER_LOG_LEVEL"]
        return self
