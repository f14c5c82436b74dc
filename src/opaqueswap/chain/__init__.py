"""Host execution runtime."""

from opaqueswap.chain.runtime import (
    CallContext,
    Chain,
    Contract,
    Event,
    ManualClock,
    Receipt,
    Transaction,
)

__all__ = [
    "CallContext",
    "Chain",
    "Contract",
    "Event",
    "ManualClock",
    "Receipt",
    "Transaction",
]
