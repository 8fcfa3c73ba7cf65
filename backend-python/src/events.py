"""Append-only event log emitted by ledger operations."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from lib.chain import Chain

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Event:
    seq: int
    name: str
    timestamp: int
    args: Dict[str, Any]


@dataclass
class EventLogState:
    events: List[Event] = field(default_factory=list)


class EventLog:
    """Events vanish with the transaction that emitted them if it fails."""

    def __init__(self, chain: Chain):
        self.chain = chain
        self.state = EventLogState()
        chain.track(self)

    def emit(self, name: str, /, **args: Any) -> Event:
        event = Event(
            seq=len(self.state.events) + 1,
            name=name,
            timestamp=self.chain.timestamp,
            args=args,
        )
        self.state.events.append(event)
        logger.info("event %s %s", name, _short(args))
        return event

    # append-only: a snapshot is the length, rollback truncates

    def checkpoint(self) -> int:
        return len(self.state.events)

    def rollback(self, mark: int) -> None:
        del self.state.events[mark:]

    def filter(self, name: Optional[str] = None) -> List[Event]:
        if name is None:
            return list(self.state.events)
        return [e for e in self.state.events if e.name == name]

    def last(self, name: Optional[str] = None) -> Optional[Event]:
        matches = self.filter(name)
        return matches[-1] if matches else None

    def __len__(self) -> int:
        return len(self.state.events)


def _short(args: Dict[str, Any]) -> Dict[str, Any]:
    # keep log lines readable: request ids / keys as short hex
    return {k: (v.hex()[:12] if isinstance(v, bytes) else v) for k, v in args.items()}
