"""Confidential contracts: rate converter, token ledger and swap engine."""

from opaqueswap.contracts.rate import RATE, quote_forward, quote_reverse
from opaqueswap.contracts.token import UINT48_MAX, ConfidentialToken
from opaqueswap.contracts.swap import OpaqueSwap, SwapDirection

__all__ = [
    "RATE",
    "UINT48_MAX",
    "ConfidentialToken",
    "OpaqueSwap",
    "SwapDirection",
    "quote_forward",
    "quote_reverse",
]
