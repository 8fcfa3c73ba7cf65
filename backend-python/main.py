#!/usr/bin/env python3
"""
Agricultural weather-insurance ledger — deploy + keeper runner.

Usage:
    python main.py --config configs/deployment.json
    python main.py --config configs/deployment.json \\
        --purchase 10000000,106000000 --purchase -33868800,151209300 --cycles 3

The runner:
  1) deploys a simulated chain, router, reference token and the ledger
  2) seeds the packages declared in the config
  3) buys one demo policy per --purchase LAT,LON (fixed-point, 1e6)
  4) runs keeper cycles: check_upkeep -> perform_upkeep -> router fulfils
  5) prints a summary of requests and decoded responses

Retries are the keeper's business: a rejected cycle is reported and the
next cycle starts fresh.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import Callable, List, Optional

from lib.chain import Chain
from lib.errors import LedgerError
from lib.fetcher import decode_weather
from lib.oracle_network import FunctionsRouter
from lib.tokens import FungibleToken
from src.config import LedgerConfig
from src.ledger import InsuranceLedger
from src.oracles import get_executor
from src.payments import PurchaseReceipt

logger = logging.getLogger("keeper")

DAY = 24 * 60 * 60
DEMO_PREMIUM = 10 ** 17


# ============================================================================
# Logging
# ============================================================================

def setup_logging(
    level: str = "INFO",
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
) -> logging.Logger:
    """Configure the root logger with a single console handler."""
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    root.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(log_format))
    root.addHandler(handler)
    return root


# ============================================================================
# Deployment
# ============================================================================

@dataclass
class Deployment:
    chain: Chain
    ledger: InsuranceLedger
    router: FunctionsRouter
    reference_token: FungibleToken
    operator: str
    keeper: str


def deploy(config: LedgerConfig, chain: Optional[Chain] = None) -> Deployment:
    """Deploy router, reference token and ledger; wire the subscription; seed packages."""
    chain = chain or Chain()
    operator = chain.account("operator")
    router = FunctionsRouter(chain)
    reference = FungibleToken(chain, "USDC", decimals=6, address=config.reference_token)
    ledger = InsuranceLedger(chain, operator, router.address, config)

    sub_id = config.functions.subscription_id
    if sub_id is None:
        sub_id = router.create_subscription()
        ledger.oracle.set_subscription_id(operator, sub_id)
    else:
        for _ in range(sub_id - len(router.state.subscriptions)):
            router.create_subscription()
    router.add_consumer(sub_id, ledger.address)

    n = ledger.seed_packages(operator)
    print(f"Ledger {ledger.address}  owner {operator}")
    print(f"Router {router.address}  subscription {sub_id}")
    print(f"Seeded {n} package(s); pricing={config.pricing_mode} "
          f"settlement={config.settlement_mode} policy={config.functions.request_policy}")
    return Deployment(chain, ledger, router, reference, operator, chain.account("keeper"))


def buy_demo_policy(dep: Deployment, lat: int, lon: int, buyer_label: str) -> PurchaseReceipt:
    """Fund a demo account and buy native-currency cover starting tomorrow."""
    ledger, chain = dep.ledger, dep.chain
    buyer = chain.account(buyer_label)
    start = chain.timestamp + DAY

    if ledger.config.pricing_mode == "explicit":
        chain.mint(buyer, DEMO_PREMIUM)
        return ledger.payments.purchase_with_native(
            buyer, None, lat, lon, start, DEMO_PREMIUM, premium=DEMO_PREMIUM,
        )

    active = [p for p in ledger.registry.list_packages() if p.is_active]
    if not active:
        raise ValueError("no active package to buy; add one to the config")
    package = active[0]
    chain.mint(buyer, package.price_native)
    return ledger.payments.purchase_with_native(
        buyer, package.package_id, lat, lon, start, package.price_native,
    )


# ============================================================================
# Keeper loop
# ============================================================================

def run_keeper(dep: Deployment, cycles: int, executor_factory: Callable[[int], Callable],
               interval: int = 3600) -> List[dict]:
    """Poll the predicate, perform when due, let the router fulfil every request."""
    ledger, router = dep.ledger, dep.router
    summaries: List[dict] = []

    for cycle in range(cycles):
        summary = {"cycle": cycle, "requested": 0, "fulfilled": 0,
                   "errors": 0, "orphaned": 0, "readings": [], "rejected": None}
        has_work, payload = ledger.automation.check_upkeep()
        if has_work:
            try:
                request_ids = ledger.automation.perform_upkeep(dep.keeper, payload)
            except LedgerError as exc:
                logger.warning("cycle %d rejected: %s", cycle, exc)
                summary["rejected"] = exc.code
                request_ids = []

            executor = executor_factory(cycle)
            for rid in request_ids:
                try:
                    router.execute(rid, executor)
                except LedgerError as exc:
                    # superseded under the "latest" policy; the callback is refused
                    logger.warning("request %s not delivered: %s", rid.hex()[:12], exc)
                    summary["orphaned"] += 1
                    continue
                req = ledger.oracle.get_request(rid)
                if req.error:
                    summary["errors"] += 1
                else:
                    summary["fulfilled"] += 1
                    summary["readings"].append(decode_weather(req.response))
            summary["requested"] = len(request_ids)

        summaries.append(summary)
        dep.chain.advance(interval)
    return summaries


def print_summary(summaries: List[dict]) -> None:
    print("\n===== Keeper summary =====")
    for s in summaries:
        line = (f"cycle {s['cycle']}: requested={s['requested']} "
                f"fulfilled={s['fulfilled']} errors={s['errors']} "
                f"orphaned={s['orphaned']}")
        if s["rejected"]:
            line += f"  rejected={s['rejected']}"
        print(line)
        for doc in s["readings"]:
            print(f"    ({doc['lat']:.6f}, {doc['lng']:.6f})  "
                  f"T={doc['temperature']}  rain={doc['rainIntensity']}  "
                  f"humidity={doc['humidity']}")
    print("==========================\n")


# ============================================================================
# CLI entry point
# ============================================================================

def _parse_pair(text: str) -> tuple:
    try:
        lat, lon = (int(part) for part in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected LAT,LON integers, got '{text}'") from None
    return lat, lon


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Weather-insurance ledger keeper runner.")
    parser.add_argument("--config", required=True,
                        help="Path to deployment configuration JSON file.")
    parser.add_argument("--purchase", action="append", type=_parse_pair, default=[],
                        metavar="LAT,LON",
                        help="Buy a demo policy at fixed-point coordinates (repeatable).")
    parser.add_argument("--cycles", type=int, default=1, help="Keeper cycles to run.")
    parser.add_argument("--interval", type=int, default=3600,
                        help="Seconds of chain time between cycles.")
    parser.add_argument("--executor", choices=["synthetic", "realtime"], default="synthetic",
                        help="Request script the simulated network runs.")
    parser.add_argument("--seed", type=int, default=42, help="Synthetic weather seed.")
    args = parser.parse_args(argv)

    config = LedgerConfig.load(args.config)
    setup_logging(config.log_level)

    dep = deploy(config)
    for i, (lat, lon) in enumerate(args.purchase):
        try:
            receipt = buy_demo_policy(dep, lat, lon, f"farmer-{i}")
        except LedgerError as exc:
            print(f"Purchase at ({lat}, {lon}) rejected: {exc}")
            continue
        print(f"Policy {receipt.policy_id} at ({lat}, {lon}) "
              f"covers {receipt.start_date} -> {receipt.end_date}")

    if args.executor == "synthetic":
        factory = lambda cycle: get_executor("synthetic", seed=args.seed, step=cycle)
    else:
        factory = lambda cycle: get_executor("realtime")

    print_summary(run_keeper(dep, args.cycles, factory, args.interval))
    return 0


if __name__ == "__main__":
    sys.exit(main())
