"""Fixed-rate confidential swap between two confidential tokens.

A swap pulls the caller's encrypted input into the engine with
confidential_transfer_from (the caller must have made the engine an operator
on the source token), converts it at the fixed rate under encryption and
pays the result out of the engine's own balance of the target token.

The output is computed from the requested input, not from the amount the
source ledger actually moved. If the caller's balance was short, the ledger
silently moves zero in while the engine still pays out the converted request
from its liquidity.

Any failing step raises and the host rolls the whole call back.
"""

import logging
from enum import Enum

from opaqueswap.addresses import is_zero_address, normalize_address
from opaqueswap.chain.runtime import CallContext, Contract
from opaqueswap.contracts import rate
from opaqueswap.contracts.token import ConfidentialToken
from opaqueswap.errors import ConfigurationError

logger = logging.getLogger(__name__)


class SwapDirection(str, Enum):
    """Direction of a swap."""

    FORWARD = "forward"  # asset A -> asset B, multiply by RATE
    REVERSE = "reverse"  # asset B -> asset A, floor-divide by RATE

    @property
    def event_name(self) -> str:
        return "SwapForward" if self is SwapDirection.FORWARD else "SwapReverse"


class OpaqueSwap(Contract):
    """Swap engine converting asset A to asset B at RATE and back."""

    def __init__(self, address: str, asset_a: str, asset_b: str):
        """Initialize the engine.

        Raises:
            ConfigurationError: If either asset address is null or invalid
        """
        super().__init__(address)
        try:
            asset_a = normalize_address(asset_a)
            asset_b = normalize_address(asset_b)
        except ValueError as e:
            raise ConfigurationError(f"Invalid asset address: {e}") from e
        if is_zero_address(asset_a) or is_zero_address(asset_b):
            raise ConfigurationError("Asset addresses must not be the null address")
        self.asset_a = asset_a
        self.asset_b = asset_b

    def get_asset_addresses(self) -> tuple[str, str]:
        """Return (asset A, asset B)."""
        return self.asset_a, self.asset_b

    async def swap_forward(self, ctx: CallContext, encrypted_amount: str, input_proof: str) -> str:
        """Swap asset A for asset B.

        Returns:
            Handle of the asset B amount actually paid out
        """
        return await self._swap(ctx, SwapDirection.FORWARD, encrypted_amount, input_proof)

    async def swap_reverse(self, ctx: CallContext, encrypted_amount: str, input_proof: str) -> str:
        """Swap asset B for asset A.

        Returns:
            Handle of the asset A amount actually paid out
        """
        return await self._swap(ctx, SwapDirection.REVERSE, encrypted_amount, input_proof)

    async def _swap(
        self,
        ctx: CallContext,
        direction: SwapDirection,
        encrypted_amount: str,
        input_proof: str,
    ) -> str:
        fhe = ctx.fhe
        if direction is SwapDirection.FORWARD:
            source, target, convert = self._token(ctx, self.asset_a), self._token(ctx, self.asset_b), rate.forward
        else:
            source, target, convert = self._token(ctx, self.asset_b), self._token(ctx, self.asset_a), rate.reverse

        amount_in = await fhe.from_external(ctx, encrypted_amount, input_proof)

        await fhe.allow_transient(ctx, amount_in, source.address)
        received = await source.confidential_transfer_from(
            ctx.call(source), ctx.sender, self.address, amount_in
        )

        amount_out = await convert(ctx, amount_in)

        await fhe.allow_transient(ctx, amount_out, target.address)
        sent = await target.confidential_transfer(ctx.call(target), ctx.sender, amount_out)

        await ctx.emit(direction.event_name, user=ctx.sender, amount_in=received, amount_out=sent)
        logger.info(f"{direction.event_name} by {ctx.sender}: in={received[:18]}... out={sent[:18]}...")
        return sent

    @staticmethod
    def _token(ctx: CallContext, address: str) -> ConfidentialToken:
        token = ctx.chain.contract_at(address)
        if not isinstance(token, ConfidentialToken):
            raise ConfigurationError(f"{address} is not a confidential token")
        return token
