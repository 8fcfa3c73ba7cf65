"""Tests for the keeper-facing automation trigger and the keeper runner."""

import pytest

from lib.errors import EnforcedPause, InvalidPayload
from lib.fixed_point import decode_keys, encode_keys, location_key
from src.config import FunctionsConfig, LedgerConfig, PackageSeed
from src.oracles import get_executor

import main
from conftest import BASIC, PRICE_NATIVE, PRICE_TOKEN

MEKONG = (10_000_000, 106_000_000)
SYDNEY = (-33_868_800, 151_209_300)
NAIROBI = (-1_292_100, 36_821_900)


def _register(env, *pairs):
    return [env.ledger.locations.register_location(*p) for p in pairs]


# ---------------------------------------------------------------------------
# check_upkeep
# ---------------------------------------------------------------------------

def test_no_history_no_work(env):
    assert env.ledger.automation.check_upkeep() == (False, b"")


def test_payload_is_full_history(env):
    keys = _register(env, MEKONG, SYDNEY)
    has_work, payload = env.ledger.automation.check_upkeep(b"ignored")

    assert has_work
    assert payload == encode_keys(keys)
    assert decode_keys(payload) == keys


def test_history_count_not_active_count(env):
    """Every location deactivated: the predicate still reports work, perform issues nothing."""
    _register(env, MEKONG, SYDNEY)
    for pair in (MEKONG, SYDNEY):
        env.ledger.locations.deactivate_location(env.operator, *pair)

    has_work, payload = env.ledger.automation.check_upkeep()
    assert has_work
    assert len(decode_keys(payload)) == 2

    assert env.ledger.automation.perform_upkeep(env.stranger, payload) == []
    assert env.ledger.events.filter("RequestSent") == []
    assert env.ledger.oracle.outstanding() == []


# ---------------------------------------------------------------------------
# perform_upkeep
# ---------------------------------------------------------------------------

def test_perform_requests_each_active_location(env):
    _register(env, MEKONG, SYDNEY, NAIROBI)
    env.ledger.locations.deactivate_location(env.operator, *SYDNEY)
    _, payload = env.ledger.automation.check_upkeep()

    request_ids = env.ledger.automation.perform_upkeep(env.stranger, payload)

    assert len(request_ids) == 2
    assert env.ledger.oracle.outstanding() == request_ids
    requested = env.ledger.events.filter("WeatherRequested")
    assert [e.args["location_key"] for e in requested] == [
        location_key(*MEKONG), location_key(*NAIROBI),
    ]
    assert env.router.get_request(request_ids[1]).args == ["-1.292100", "36.821900"]


def test_stale_payload_skips_deactivated(env):
    _register(env, MEKONG, SYDNEY)
    _, payload = env.ledger.automation.check_upkeep()
    env.ledger.locations.deactivate_location(env.operator, *MEKONG)

    request_ids = env.ledger.automation.perform_upkeep(env.stranger, payload)
    assert len(request_ids) == 1
    assert env.ledger.events.last("WeatherRequested").args["latitude"] == SYDNEY[0]


def test_unknown_keys_are_ignored(env):
    _register(env, MEKONG)
    payload = encode_keys([b"\x07" * 32, location_key(*MEKONG)])
    assert len(env.ledger.automation.perform_upkeep(env.stranger, payload)) == 1


def test_malformed_payload(env):
    _register(env, MEKONG)
    with pytest.raises(InvalidPayload):
        env.ledger.automation.perform_upkeep(env.stranger, b"\x00" * 31)
    assert env.ledger.oracle.outstanding() == []


def test_perform_respects_pause(env):
    _register(env, MEKONG)
    _, payload = env.ledger.automation.check_upkeep()
    env.ledger.pause(env.operator)

    with pytest.raises(EnforcedPause):
        env.ledger.automation.perform_upkeep(env.stranger, payload)
    assert env.ledger.events.filter("WeatherRequested") == []


def test_repeated_perform_with_latest_policy_orphans(make_env):
    env = make_env(functions=FunctionsConfig(request_policy="latest"))
    _register(env, MEKONG, SYDNEY)
    _, payload = env.ledger.automation.check_upkeep()

    first = env.ledger.automation.perform_upkeep(env.stranger, payload)
    second = env.ledger.automation.perform_upkeep(env.stranger, payload)

    assert env.ledger.oracle.outstanding() == [second[-1]]
    orphaned = [rid for rid in first + second[:-1] if env.ledger.oracle.get_request(rid).orphaned]
    assert len(orphaned) == 3


def test_request_all_active_weather(env):
    _register(env, MEKONG, SYDNEY)
    env.ledger.locations.deactivate_location(env.operator, *MEKONG)

    request_ids = env.ledger.automation.request_all_active_weather(env.stranger)
    assert len(request_ids) == 1
    assert env.router.get_request(request_ids[0]).args == ["-33.868800", "151.209300"]


# ---------------------------------------------------------------------------
# Keeper runner (main.py)
# ---------------------------------------------------------------------------

def _runner_config(**functions):
    return LedgerConfig(functions=FunctionsConfig(**functions), packages=[
        PackageSeed(BASIC, "Basic Crop Insurance", PRICE_NATIVE, PRICE_TOKEN),
    ])


def test_runner_deploys_and_fulfils():
    dep = main.deploy(_runner_config())
    main.buy_demo_policy(dep, *MEKONG, "farmer-0")
    main.buy_demo_policy(dep, *SYDNEY, "farmer-1")

    summaries = main.run_keeper(
        dep, cycles=2,
        executor_factory=lambda cycle: get_executor("synthetic", seed=3, step=cycle),
    )

    assert [s["requested"] for s in summaries] == [2, 2]
    assert [s["fulfilled"] for s in summaries] == [2, 2]
    assert summaries[0]["readings"][0]["lat"] == 10.0
    assert dep.ledger.oracle.outstanding() == []
    assert dep.chain.balance_of(dep.operator) == 2 * PRICE_NATIVE


def test_runner_idle_without_locations():
    dep = main.deploy(_runner_config())
    summaries = main.run_keeper(dep, cycles=1, executor_factory=lambda c: get_executor("synthetic"))
    assert summaries[0]["requested"] == 0


def test_runner_reports_rejected_cycle():
    dep = main.deploy(_runner_config())
    main.buy_demo_policy(dep, *MEKONG, "farmer-0")
    dep.ledger.pause(dep.operator)

    summaries = main.run_keeper(dep, cycles=1, executor_factory=lambda c: get_executor("synthetic"))
    assert summaries[0]["rejected"] == "ENFORCED_PAUSE"
    assert summaries[0]["requested"] == 0


def test_runner_counts_superseded_requests_under_latest_policy():
    dep = main.deploy(_runner_config(request_policy="latest"))
    main.buy_demo_policy(dep, *MEKONG, "farmer-0")
    main.buy_demo_policy(dep, *SYDNEY, "farmer-1")

    summaries = main.run_keeper(
        dep, cycles=2,
        executor_factory=lambda cycle: get_executor("synthetic", seed=3, step=cycle),
    )

    assert [s["requested"] for s in summaries] == [2, 2]
    assert [s["orphaned"] for s in summaries] == [1, 1]
    assert [s["fulfilled"] for s in summaries] == [1, 1]
    assert summaries[0]["readings"][0]["lat"] == pytest.approx(-33.8688)
    assert dep.ledger.oracle.outstanding() == []


def test_runner_uses_configured_subscription():
    dep = main.deploy(_runner_config(subscription_id=3))

    assert sorted(dep.router.state.subscriptions) == [1, 2, 3]
    assert dep.router.state.subscriptions[3] == [dep.ledger.address]
    assert dep.ledger.oracle.state.subscription_id == 3


def test_runner_reuses_existing_subscription():
    dep = main.deploy(_runner_config(subscription_id=1))

    assert list(dep.router.state.subscriptions) == [1]
    assert dep.router.state.subscriptions[1] == [dep.ledger.address]


def test_runner_rejects_non_positive_subscription():
    with pytest.raises(ValueError, match="subscription_id"):
        main.deploy(_runner_config(subscription_id=0))
