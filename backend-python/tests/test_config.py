"""Tests for deployment configuration loading and validation."""

import json
from pathlib import Path

import pytest

from src.config import FunctionsConfig, LedgerConfig, PackageSeed
from src.registry import REFERENCE_STABLECOIN

DEPLOYMENT_JSON = Path(__file__).resolve().parent.parent / "configs" / "deployment.json"


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("LEDGER_SUBSCRIPTION_ID", "LEDGER_REQUEST_POLICY", "LEDGER_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def test_load_shipped_config():
    config = LedgerConfig.load(str(DEPLOYMENT_JSON))

    assert config.reference_token == REFERENCE_STABLECOIN
    assert config.pricing_mode == "package"
    assert config.settlement_mode == "treasury"
    assert config.functions.request_policy == "set"
    assert config.functions.subscription_id is None
    assert config.packages == [
        PackageSeed("basic-crop-001", "Basic Crop Insurance", 10 ** 17, 1_000_000, True),
    ]


def test_defaults_are_valid():
    config = LedgerConfig().validate()
    assert config.track_policies and config.pause_blocks_oracle
    assert config.packages == []


def test_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "deploy.json"
    path.write_text(json.dumps({"functions": {"subscription_id": 1}}))
    monkeypatch.setenv("LEDGER_SUBSCRIPTION_ID", "15")
    monkeypatch.setenv("LEDGER_REQUEST_POLICY", "latest")
    monkeypatch.setenv("LEDGER_LOG_LEVEL", "DEBUG")

    config = LedgerConfig.load(str(path))

    assert config.functions.subscription_id == 15
    assert config.functions.request_policy == "latest"
    assert config.log_level == "DEBUG"


def test_apply_env_with_explicit_mapping():
    config = LedgerConfig().apply_env({"LEDGER_SUBSCRIPTION_ID": "7"})
    assert config.functions.subscription_id == 7

    with pytest.raises(ValueError, match="must be an integer"):
        LedgerConfig().apply_env({"LEDGER_SUBSCRIPTION_ID": "seven"})


def test_env_subscription_id_must_be_positive(tmp_path, monkeypatch):
    path = tmp_path / "deploy.json"
    path.write_text(json.dumps({"functions": {"subscription_id": 1}}))
    monkeypatch.setenv("LEDGER_SUBSCRIPTION_ID", "0")

    with pytest.raises(ValueError, match="subscription_id must be > 0"):
        LedgerConfig.load(str(path))


@pytest.mark.parametrize("config, message", [
    (LedgerConfig(pricing_mode="auction"), "pricing_mode"),
    (LedgerConfig(settlement_mode="escrow"), "settlement_mode"),
    (LedgerConfig(functions=FunctionsConfig(request_policy="queue")), "request_policy"),
    (LedgerConfig(functions=FunctionsConfig(subscription_id=0)), "subscription_id"),
    (LedgerConfig(functions=FunctionsConfig(subscription_id=-4)), "subscription_id"),
    (LedgerConfig(functions=FunctionsConfig(gas_limit=0)), "gas_limit"),
    (LedgerConfig(packages=[PackageSeed("a", "A", 1, 1), PackageSeed("a", "A", 2, 2)]),
     "duplicate package"),
    (LedgerConfig(packages=[PackageSeed("a", "A", -1, 1)]), "negative price"),
])
def test_validation(config, message):
    with pytest.raises(ValueError, match=message):
        config.validate()


def test_unknown_key_rejected():
    with pytest.raises(TypeError):
        LedgerConfig.from_dict({"pricing": "package"})
