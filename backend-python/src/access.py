"""
Ownership, pausing and reentrancy protection shared by every ledger component.

Component methods that take the caller as their first argument (``sender``)
are wrapped with the decorators below, e.g.::

    @transactional
    @only_owner
    def set_allowed_token(self, sender, token, allowed): ...

The wrapped object must expose ``self.access`` (an ``AccessControl``) and
``self.chain``.
"""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass

from lib.chain import ZERO_ADDRESS, Chain, normalize_address
from lib.errors import (
    EnforcedPause,
    ExpectedPause,
    InvalidAddress,
    ReentrantCall,
    Unauthorized,
)
from src.events import EventLog

logger = logging.getLogger(__name__)


@dataclass
class AccessState:
    owner: str
    paused: bool = False


class AccessControl:
    """Single operator identity, pause switch and one reentrancy lock per ledger."""

    def __init__(self, chain: Chain, events: EventLog, owner: str):
        self.chain = chain
        self.events = events
        self.state = AccessState(owner=normalize_address(owner))
        self._entered = False
        chain.track(self)

    @property
    def owner(self) -> str:
        return self.state.owner

    @property
    def paused(self) -> bool:
        return self.state.paused

    # ── checks ───────────────────────────────────────────────────────

    def require_owner(self, sender: str) -> None:
        if normalize_address(sender) != self.state.owner:
            raise Unauthorized(f"{sender} is not the owner",
                               details={"sender": sender})

    def require_not_paused(self) -> None:
        if self.state.paused:
            raise EnforcedPause("ledger is paused")

    # ── operator actions ─────────────────────────────────────────────

    def pause(self, sender: str) -> None:
        with self.chain.atomic():
            self.require_owner(sender)
            self.require_not_paused()
            self.state.paused = True
            self.events.emit("Paused", account=normalize_address(sender))

    def unpause(self, sender: str) -> None:
        with self.chain.atomic():
            self.require_owner(sender)
            if not self.state.paused:
                raise ExpectedPause("ledger is not paused")
            self.state.paused = False
            self.events.emit("Unpaused", account=normalize_address(sender))

    def transfer_ownership(self, sender: str, new_owner: str) -> None:
        with self.chain.atomic():
            self.require_owner(sender)
            new_owner = normalize_address(new_owner)
            if new_owner == ZERO_ADDRESS:
                raise InvalidAddress("new owner is the zero address")
            previous, self.state.owner = self.state.owner, new_owner
            self.events.emit("OwnershipTransferred",
                             previous_owner=previous, new_owner=new_owner)

    # ── reentrancy lock ──────────────────────────────────────────────

    def enter(self) -> None:
        if self._entered:
            raise ReentrantCall("reentrant call rejected")
        self._entered = True

    def exit(self) -> None:
        self._entered = False


# ============================================================================
# Method decorators
# ============================================================================

def transactional(method):
    """Run the method inside ``chain.atomic()``."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self.chain.atomic():
            return method(self, *args, **kwargs)
    return wrapper


def only_owner(method):
    @functools.wraps(method)
    def wrapper(self, sender, *args, **kwargs):
        self.access.require_owner(sender)
        return method(self, sender, *args, **kwargs)
    return wrapper


def when_not_paused(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        self.access.require_not_paused()
        return method(self, *args, **kwargs)
    return wrapper


def non_reentrant(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        self.access.enter()
        try:
            return method(self, *args, **kwargs)
        finally:
            self.access.exit()
    return wrapper
