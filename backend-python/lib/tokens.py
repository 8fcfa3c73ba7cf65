"""Minimal fungible-token collaborator (transfer / transferFrom / balanceOf / allowance)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from lib.chain import ZERO_ADDRESS, Chain, normalize_address


@dataclass
class TokenState:
    balances: Dict[str, int] = field(default_factory=dict)
    allowances: Dict[Tuple[str, str], int] = field(default_factory=dict)
    total_supply: int = 0


class FungibleToken:
    """In-memory token with the four calls the ledger relies on.

    ``transfer`` and ``transfer_from`` report failure by returning ``False``
    rather than raising, so callers must check the result.

    Parameters
    ----------
    chain : Chain
        Host environment; the token deploys and tracks itself.
    symbol : str
        Ticker, e.g. ``"USDC"``.
    decimals : int
        Display precision (default 6).
    address : str, optional
        Pin the token to a known address (e.g. the reference stablecoin).
    """

    def __init__(self, chain: Chain, symbol: str, decimals: int = 6,
                 address: Optional[str] = None):
        self.chain = chain
        self.symbol = symbol
        self.decimals = decimals
        self.state = TokenState()
        self.address = chain.deploy(self, label=f"token:{symbol}", address=address)
        chain.track(self)

    # ------------------------------------------------------------------

    def balance_of(self, owner: str) -> int:
        return self.state.balances.get(normalize_address(owner), 0)

    def allowance(self, owner: str, spender: str) -> int:
        key = (normalize_address(owner), normalize_address(spender))
        return self.state.allowances.get(key, 0)

    def mint(self, to: str, amount: int) -> None:
        to = normalize_address(to)
        self.state.balances[to] = self.state.balances.get(to, 0) + amount
        self.state.total_supply += amount

    def approve(self, sender: str, spender: str, amount: int) -> bool:
        key = (normalize_address(sender), normalize_address(spender))
        self.state.allowances[key] = amount
        return True

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        return self._move(normalize_address(sender), normalize_address(to), amount)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        key = (normalize_address(owner), normalize_address(spender))
        allowed = self.state.allowances.get(key, 0)
        if allowed < amount:
            return False
        if not self._move(key[0], normalize_address(to), amount):
            return False
        self.state.allowances[key] = allowed - amount
        return True

    # ------------------------------------------------------------------

    def _move(self, frm: str, to: str, amount: int) -> bool:
        if amount < 0 or to == ZERO_ADDRESS:
            return False
        if self.state.balances.get(frm, 0) < amount:
            return False
        self.state.balances[frm] -= amount
        self.state.balances[to] = self.state.balances.get(to, 0) + amount
        return True
