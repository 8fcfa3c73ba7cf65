"""
Oracle backends and pluggable request-script executors.

Backends (ledger side)
----------------------
- ``FunctionsConsumer``    subscription-based, string args, opaque response
- ``DirectRequestClient``  job-based, fee token, numeric reading per location

Executors (network side) turn ``(source, args)`` into response bytes::

    executor(source: str, args: list[str]) -> bytes

The ledger never calls an executor.  They exist only for the simulated
network (``FunctionsRouter``) and the keeper runner (main.py).
"""

import functools

from lib.fetcher import realtime_source
from lib.simulator import synthetic_source
from src.oracles.direct_request import DirectRequestClient
from src.oracles.functions_consumer import FunctionsConsumer, OracleStatus, build_args

EXECUTOR_REGISTRY: dict[str, object] = {
    "realtime": realtime_source,
    "synthetic": synthetic_source,
}


def get_executor(name: str, **kwargs):
    """Build an ``executor(source, args)`` callable by name.

    Extra keyword arguments are bound to the underlying script, e.g.
    ``get_executor("synthetic", seed=7)`` or ``get_executor("realtime", api_key=...)``.
    """
    if name not in EXECUTOR_REGISTRY:
        raise KeyError(
            f"Unknown executor '{name}'. Available: {sorted(EXECUTOR_REGISTRY)}"
        )
    script = functools.partial(EXECUTOR_REGISTRY[name], **kwargs)

    def executor(source: str, args: list) -> bytes:
        return script(args)

    return executor


__all__ = [
    "DirectRequestClient",
    "EXECUTOR_REGISTRY",
    "FunctionsConsumer",
    "OracleStatus",
    "build_args",
    "get_executor",
]
