"""Tests for the host environment's transactions and the event log.

Tests cover:
  - atomic(): tracked state and native balances restored on failure
  - nested transactions: an inner failure caught by the caller
  - event log: rollback truncates, surviving events keep their identity
  - objects that supply their own checkpoint/rollback
"""

from dataclasses import dataclass, field
from typing import List

import pytest

from lib.chain import Chain
from lib.errors import InsufficientBalance
from src.events import EventLog

from conftest import GENESIS


@dataclass
class CounterState:
    value: int = 0
    history: List[int] = field(default_factory=list)


class Counter:
    def __init__(self, chain):
        self.state = CounterState()
        chain.track(self)

    def bump(self):
        self.state.value += 1
        self.state.history.append(self.state.value)


class Journal:
    """Tracked object that saves only a length."""

    def __init__(self, chain):
        self.state = []
        self.checkpoints = 0
        chain.track(self)

    def checkpoint(self):
        self.checkpoints += 1
        return len(self.state)

    def rollback(self, mark):
        del self.state[mark:]


@pytest.fixture
def chain():
    return Chain(timestamp=GENESIS)


# ---------------------------------------------------------------------------
# atomic()
# ---------------------------------------------------------------------------

def test_atomic_commits_on_success(chain):
    counter = Counter(chain)
    with chain.atomic():
        counter.bump()
    assert counter.state.value == 1


def test_atomic_restores_state_and_balances(chain):
    counter = Counter(chain)
    alice, bob = chain.account("alice"), chain.account("bob")
    chain.mint(alice, 100)

    with pytest.raises(InsufficientBalance):
        with chain.atomic():
            counter.bump()
            chain.transfer_native(alice, bob, 60)
            chain.attach_value(alice, bob, 60)

    assert counter.state == CounterState()
    assert chain.balance_of(alice) == 100
    assert chain.balance_of(bob) == 0


def test_nested_failure_keeps_outer_changes(chain):
    counter = Counter(chain)

    with chain.atomic():
        counter.bump()
        with pytest.raises(RuntimeError):
            with chain.atomic():
                counter.bump()
                raise RuntimeError("inner")
        assert counter.state.value == 1

    assert counter.state.history == [1]


def test_time_is_not_rolled_back(chain):
    with pytest.raises(RuntimeError):
        with chain.atomic():
            chain.advance(60)
            raise RuntimeError("boom")
    assert chain.timestamp == GENESIS + 60


# ---------------------------------------------------------------------------
# Event log
# ---------------------------------------------------------------------------

def test_emit_accepts_name_argument(chain):
    log = EventLog(chain)
    ev = log.emit("InsurancePackageCreated", name="Basic Crop Insurance", package_id="p")

    assert ev.name == "InsurancePackageCreated"
    assert ev.args == {"name": "Basic Crop Insurance", "package_id": "p"}
    assert ev.seq == 1


def test_failed_transaction_truncates_log(chain):
    log = EventLog(chain)
    first = log.emit("Kept", n=1)

    with pytest.raises(RuntimeError):
        with chain.atomic():
            log.emit("Dropped", n=2)
            log.emit("Dropped", n=3)
            raise RuntimeError("revert")

    assert len(log) == 1
    assert log.filter()[0] is first
    assert log.filter("Dropped") == []
    assert log.emit("Next").seq == 2


def test_custom_checkpoint_is_used(chain):
    journal = Journal(chain)
    journal.state.extend(["a", "b"])

    with pytest.raises(RuntimeError):
        with chain.atomic():
            journal.state.append("c")
            raise RuntimeError("revert")

    assert journal.state == ["a", "b"]
    assert journal.checkpoints == 1


def test_track_requires_state(chain):
    with pytest.raises(TypeError, match="no 'state' attribute"):
        chain.track(object())
