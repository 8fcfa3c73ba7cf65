"""
Agricultural insurance ledger — one contract, wired from its components.

    payments ──> locations ──> automation ──> oracle (functions consumer)
        │                                        ▲
        └──> registry <── treasury               └── router callback

All components share the ledger address, one ``AccessControl`` (owner,
pause switch, reentrancy lock) and one ``EventLog``.  The ledger object
itself is what collaborators call back into: the router's fulfillment
callback, the job oracle's ``fulfill_weather`` and native receive.
"""

from __future__ import annotations

import logging
from typing import Optional

from lib.chain import Chain, normalize_address
from src.access import AccessControl
from src.automation import WeatherUpkeep
from src.config import LedgerConfig
from src.events import EventLog
from src.locations import LocationStore
from src.oracles.direct_request import DirectRequestClient
from src.oracles.functions_consumer import FunctionsConsumer
from src.payments import PaymentProcessor
from src.registry import Registry
from src.treasury import Accounting, Treasury

logger = logging.getLogger(__name__)


class InsuranceLedger:
    """
    Parameters
    ----------
    chain : Chain
        Host environment.
    owner : str
        Operator identity; also the initial treasury wallet.
    router : str
        Address of the subscription router trusted to deliver fulfillments.
    config : LedgerConfig, optional
        Deployment choices; defaults to package pricing, treasury settlement.
    """

    def __init__(self, chain: Chain, owner: str, router: str,
                 config: Optional[LedgerConfig] = None):
        self.config = (config or LedgerConfig()).validate()
        self.chain = chain
        self.address = chain.deploy(self, label="insurance-ledger")
        owner = normalize_address(owner)

        self.events = EventLog(chain)
        self.access = AccessControl(chain, self.events, owner)
        self.registry = Registry(chain, self.access, self.events,
                                 treasury_wallet=owner,
                                 reference_token=self.config.reference_token)
        self.locations = LocationStore(chain, self.access, self.events)
        self.accounting = Accounting(chain)
        self.payments = PaymentProcessor(
            chain, self.access, self.events, self.registry, self.locations,
            self.accounting, self.address,
            pricing_mode=self.config.pricing_mode,
            settlement_mode=self.config.settlement_mode,
            track_policies=self.config.track_policies,
        )
        self.treasury = Treasury(chain, self.access, self.events, self.registry,
                                 self.accounting, self.address)

        fn = self.config.functions
        self.oracle = FunctionsConsumer(
            chain, self.access, self.events, self.address, router,
            subscription_id=fn.subscription_id, source=fn.source,
            don_id=fn.don_id, gas_limit=fn.gas_limit,
            request_policy=fn.request_policy,
            pause_blocks_oracle=self.config.pause_blocks_oracle,
        )
        direct = self.config.direct
        self.direct = DirectRequestClient(
            chain, self.access, self.events, self.address,
            oracle=direct.oracle, job_id=direct.job_id, fee=direct.fee,
            fee_token=direct.fee_token,
            pause_blocks_oracle=self.config.pause_blocks_oracle,
        )
        self.automation = WeatherUpkeep(chain, self.access, self.events,
                                        self.locations, self.oracle)

        chain.set_receiver(self.address, self.receive)
        logger.info("ledger deployed at %s (owner %s, %s pricing, %s settlement)",
                    self.address, owner, self.config.pricing_mode,
                    self.config.settlement_mode)

    # ── identity / switches ──────────────────────────────────────────

    @property
    def owner(self) -> str:
        return self.access.owner

    @property
    def paused(self) -> bool:
        return self.access.paused

    def pause(self, sender: str) -> None:
        self.access.pause(sender)

    def unpause(self, sender: str) -> None:
        self.access.unpause(sender)

    def transfer_ownership(self, sender: str, new_owner: str) -> None:
        self.access.transfer_ownership(sender, new_owner)

    # ── collaborator entry points ────────────────────────────────────

    def receive(self, sender: str, value: int) -> None:
        self.treasury.receive(sender, value)

    def handle_oracle_fulfillment(self, sender: str, request_id: bytes,
                                  response: bytes, error: bytes) -> None:
        self.oracle.handle_oracle_fulfillment(sender, request_id, response, error)

    def fulfill_weather(self, sender: str, request_id: bytes, value: int,
                        lat: int, lon: int) -> None:
        self.direct.fulfill_weather(sender, request_id, value, lat, lon)

    # ── deployment seeding ───────────────────────────────────────────

    def seed_packages(self, sender: str) -> int:
        for p in self.config.packages:
            self.registry.create_or_update_package(
                sender, p.package_id, p.name, p.price_native, p.price_token, p.is_active,
            )
        return len(self.config.packages)
