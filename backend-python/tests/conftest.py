"""Shared fixtures: a fresh simulated chain with a wired, seeded ledger."""

from types import SimpleNamespace

import pytest

from lib.chain import Chain
from lib.oracle_network import FunctionsRouter
from lib.tokens import FungibleToken
from src.config import LedgerConfig, PackageSeed
from src.ledger import InsuranceLedger
from src.registry import REFERENCE_STABLECOIN

GENESIS = 1_700_000_000
BASIC = "basic-crop-001"
PRICE_NATIVE = 10 ** 17          # 0.1 native
PRICE_TOKEN = 1_000_000          # 1 USDC


def deploy_ledger(**overrides) -> SimpleNamespace:
    """Chain + router (with subscription) + reference USDC + ledger seeded with basic-crop-001."""
    chain = Chain(timestamp=GENESIS)
    operator = chain.account("operator")
    router = FunctionsRouter(chain)
    usdc = FungibleToken(chain, "USDC", decimals=6, address=REFERENCE_STABLECOIN)

    overrides.setdefault("packages", [
        PackageSeed(BASIC, "Basic Crop Insurance", PRICE_NATIVE, PRICE_TOKEN),
    ])
    config = LedgerConfig(**overrides)
    ledger = InsuranceLedger(chain, operator, router.address, config)

    sub_id = router.create_subscription()
    router.add_consumer(sub_id, ledger.address)
    ledger.oracle.set_subscription_id(operator, sub_id)
    ledger.seed_packages(operator)

    return SimpleNamespace(
        chain=chain,
        operator=operator,
        router=router,
        usdc=usdc,
        ledger=ledger,
        sub_id=sub_id,
        buyer=chain.account("farmer"),
        stranger=chain.account("stranger"),
    )


@pytest.fixture
def env():
    return deploy_ledger()


@pytest.fixture
def make_env():
    return deploy_ledger
