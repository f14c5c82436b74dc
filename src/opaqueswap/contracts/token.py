"""Confidential token: the encrypted-balance ledger of one asset.

Balances are ciphertext handles. Transfers never reveal amounts: a debit
larger than the balance transfers an encrypted zero instead, and the caller
gets back the handle of what was actually moved without learning whether
clamping happened.

Operators are time-bounded grants. A holder names an operator and an expiry;
the operator may call confidential_transfer_from on the holder's funds while
the block time is strictly before the expiry. A later grant to the same
operator replaces the previous one; setting a past expiry revokes it.
"""

import logging
from typing import Optional

from opaqueswap.addresses import ZERO_ADDRESS, is_zero_address, normalize_address
from opaqueswap.chain.runtime import CallContext, Contract
from opaqueswap.crypto import UINT64_MAX
from opaqueswap.errors import AclViolation, InvalidArgument, UnauthorizedCaller, UnauthorizedSpender
from opaqueswap.fhe.handles import ZERO_HANDLE, normalize_handle

logger = logging.getLogger(__name__)

UINT48_MAX = 2**48 - 1


class ConfidentialToken(Contract):
    """Encrypted-balance token with operator grants."""

    def __init__(
        self,
        address: str,
        name: str,
        symbol: str,
        decimals: int = 6,
        minter: Optional[str] = None,
    ):
        """Initialize the token.

        Args:
            address: Contract address
            name: Token name
            symbol: Token symbol
            decimals: Display decimals of the base unit
            minter: Only account allowed to mint; None leaves the faucet open
        """
        super().__init__(address)
        self.name = name
        self.symbol = symbol
        self.decimals = decimals
        self.minter = normalize_address(minter) if minter else None

    # ======================
    # Views
    # ======================

    async def balance_of(self, ctx: CallContext, account: str) -> str:
        """Encrypted balance handle, or the zero handle if none."""
        balance = await ctx.repo.get_balance(self.address, self._address(account))
        return balance.handle if balance else ZERO_HANDLE

    async def confidential_total_supply(self, ctx: CallContext) -> str:
        """Encrypted total supply handle."""
        supply = await ctx.repo.get_supply(self.address)
        return supply.handle if supply else ZERO_HANDLE

    async def is_operator(self, ctx: CallContext, holder: str, spender: str) -> bool:
        """True iff holder granted spender an operator role that has not expired."""
        grant = await ctx.repo.get_operator_grant(
            self.address, self._address(holder), self._address(spender)
        )
        return grant is not None and ctx.timestamp < grant.expires_at

    # ======================
    # Operators
    # ======================

    async def set_operator(self, ctx: CallContext, operator: str, until: int) -> None:
        """Grant (or overwrite) an operator role for the caller's funds."""
        operator = self._address(operator)
        if not 0 <= until <= UINT48_MAX:
            raise InvalidArgument(self.address, f"Expiry {until} does not fit in uint48")
        await ctx.repo.set_operator_grant(self.address, ctx.sender, operator, until, ctx.timestamp)
        await ctx.emit("OperatorSet", holder=ctx.sender, operator=operator, until=until)
        logger.info(f"{self.symbol}: {ctx.sender} set operator {operator} until {until}")

    # ======================
    # Transfers
    # ======================

    async def confidential_transfer(self, ctx: CallContext, to: str, amount: str) -> str:
        """Move an encrypted amount the caller holds permission on.

        Returns:
            Handle of the amount actually transferred (transiently allowed to caller)
        """
        amount = self._handle(amount)
        if not await ctx.fhe.is_allowed(ctx, amount, ctx.sender):
            raise AclViolation(self.address, f"{ctx.sender} is not allowed on the amount")
        transferred = await self._transfer(ctx, ctx.sender, to, amount)
        await ctx.fhe.allow_transient(ctx, transferred, ctx.sender)
        return transferred

    async def confidential_transfer_input(
        self, ctx: CallContext, to: str, encrypted_amount: str, input_proof: str
    ) -> str:
        """Move an amount supplied as a fresh encrypted input."""
        amount = await ctx.fhe.from_external(ctx, encrypted_amount, input_proof)
        transferred = await self._transfer(ctx, ctx.sender, to, amount)
        await ctx.fhe.allow_transient(ctx, transferred, ctx.sender)
        return transferred

    async def confidential_transfer_from(
        self, ctx: CallContext, from_: str, to: str, amount: str
    ) -> str:
        """Move a holder's funds as their operator.

        Raises:
            UnauthorizedSpender: If the caller holds no unexpired grant from from_
        """
        from_ = self._address(from_)
        if not await self.is_operator(ctx, from_, ctx.sender):
            raise UnauthorizedSpender(
                self.address, f"{ctx.sender} is not an operator of {from_}"
            )
        amount = self._handle(amount)
        if not await ctx.fhe.is_allowed(ctx, amount, ctx.sender):
            raise AclViolation(self.address, f"{ctx.sender} is not allowed on the amount")
        transferred = await self._transfer(ctx, from_, to, amount)
        await ctx.fhe.allow_transient(ctx, transferred, ctx.sender)
        return transferred

    # ======================
    # Faucet
    # ======================

    async def mint(self, ctx: CallContext, to: str, amount: int) -> str:
        """Credit a plaintext amount (bootstrap/test faucet).

        The supply increase is overflow-checked under encryption; an overflowing
        mint credits zero.
        """
        if self.minter and ctx.sender != self.minter:
            raise UnauthorizedCaller(self.address, f"{ctx.sender} may not mint")
        if not 0 <= amount <= UINT64_MAX:
            raise InvalidArgument(self.address, f"Mint amount out of range: {amount}")
        to = self._address(to)
        if is_zero_address(to):
            raise InvalidArgument(self.address, "Invalid receiver")
        encrypted = await ctx.fhe.as_euint64(ctx, amount)
        return await self._update(ctx, ZERO_ADDRESS, to, encrypted)

    # ======================
    # Internal
    # ======================

    async def _transfer(self, ctx: CallContext, from_: str, to: str, amount: str) -> str:
        from_ = self._address(from_)
        to = self._address(to)
        if is_zero_address(from_):
            raise InvalidArgument(self.address, "Invalid sender")
        if is_zero_address(to):
            raise InvalidArgument(self.address, "Invalid receiver")
        return await self._update(ctx, from_, to, amount)

    async def _update(self, ctx: CallContext, from_: str, to: str, amount: str) -> str:
        fhe = ctx.fhe

        if is_zero_address(from_):
            supply = await self.confidential_total_supply(ctx)
            increased = await fhe.add(ctx, supply, amount)
            ok = await fhe.ge(ctx, increased, supply)
            transferred = await fhe.select(ctx, ok, amount, ZERO_HANDLE)
            new_supply = await fhe.select(ctx, ok, increased, supply)
            await fhe.allow_this(ctx, new_supply)
            await ctx.repo.set_supply(self.address, new_supply)
        else:
            balance = await self.balance_of(ctx, from_)
            ok = await fhe.ge(ctx, balance, amount)
            transferred = await fhe.select(ctx, ok, amount, ZERO_HANDLE)
            new_balance = await fhe.sub(ctx, balance, transferred)
            await fhe.allow_this(ctx, new_balance)
            await fhe.allow(ctx, new_balance, from_)
            await ctx.repo.set_balance(self.address, from_, new_balance, ctx.timestamp)

        receiver_balance = await self.balance_of(ctx, to)
        new_receiver_balance = await fhe.add(ctx, receiver_balance, transferred)
        await fhe.allow_this(ctx, new_receiver_balance)
        await fhe.allow(ctx, new_receiver_balance, to)
        await ctx.repo.set_balance(self.address, to, new_receiver_balance, ctx.timestamp)

        await fhe.allow_this(ctx, transferred)
        if not is_zero_address(from_):
            await fhe.allow(ctx, transferred, from_)
        await fhe.allow(ctx, transferred, to)

        await ctx.emit("ConfidentialTransfer", **{"from": from_, "to": to, "amount": transferred})
        return transferred

    def _address(self, value: str) -> str:
        try:
            return normalize_address(value)
        except ValueError as e:
            raise InvalidArgument(self.address, str(e)) from e

    def _handle(self, value: str) -> str:
        try:
            return normalize_handle(value)
        except ValueError as e:
            raise InvalidArgument(self.address, str(e)) from e
