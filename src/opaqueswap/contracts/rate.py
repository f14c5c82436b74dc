"""Fixed-rate conversion between the two confidential assets.

One unit of asset A is worth RATE units of asset B. Conversions run on
ciphertext handles; the quote helpers give the same result on clear values
for client-side previews.

Reverse conversion truncates: any amount below RATE converts to zero.
"""

from typing import TYPE_CHECKING

from opaqueswap.crypto import UINT64_MAX

if TYPE_CHECKING:
    from opaqueswap.chain.runtime import CallContext

RATE = 3100


async def forward(ctx: "CallContext", amount_in: str) -> str:
    """Encrypted amount_in * RATE (wraps at 2**64 like any euint64)."""
    return await ctx.fhe.mul_scalar(ctx, amount_in, RATE)


async def reverse(ctx: "CallContext", amount_in: str) -> str:
    """Encrypted floor(amount_in / RATE)."""
    return await ctx.fhe.div_scalar(ctx, amount_in, RATE)


def quote_forward(amount_in: int) -> int:
    """Clear-value counterpart of forward."""
    return (amount_in * RATE) % (UINT64_MAX + 1)


def quote_reverse(amount_in: int) -> int:
    """Clear-value counterpart of reverse."""
    return amount_in // RATE
