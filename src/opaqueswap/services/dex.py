"""DEX client service.

Drives the user-facing flows against a chain: reading the encrypted
snapshot, faucet mints, operator grants for the swap engine, swaps with a
client-side preview, and decrypting one's own balances.

Amounts cross this boundary as decimal strings in display units and are
converted to base units with the token decimals.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Union

from opaqueswap.chain.runtime import Chain, Receipt
from opaqueswap.client.gateway import CryptoGateway, DecryptResult
from opaqueswap.client.signer import WalletSigner
from opaqueswap.contracts.rate import quote_forward, quote_reverse
from opaqueswap.contracts.swap import OpaqueSwap, SwapDirection
from opaqueswap.contracts.token import ConfidentialToken
from opaqueswap.crypto import UINT64_MAX

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class Asset(str, Enum):
    """The two legs of the swap."""

    A = "a"  # wETH
    B = "b"  # wUSDT


@dataclass
class Deployment:
    """Addresses of a deployed swap system."""

    token_a: ConfidentialToken
    token_b: ConfidentialToken
    swap: OpaqueSwap


async def deploy_opaque_swap(
    chain: Chain,
    deployer: str,
    decimals: int = 6,
    minter: Optional[str] = None,
) -> Deployment:
    """Deploy wETH, wUSDT and the swap engine between them."""
    token_a = await chain.deploy(ConfidentialToken, deployer, "Wrapped Ether", "wETH", decimals, minter)
    token_b = await chain.deploy(ConfidentialToken, deployer, "Wrapped Tether USD", "wUSDT", decimals, minter)
    swap = await chain.deploy(OpaqueSwap, deployer, token_a.address, token_b.address)
    logger.info(f"wETH: {token_a.address}, wUSDT: {token_b.address}, OpaqueSwap: {swap.address}")
    return Deployment(token_a=token_a, token_b=token_b, swap=swap)


def parse_units(amount: Union[str, Decimal, int], decimals: int) -> int:
    """Convert a display amount to base units.

    Raises:
        ValueError: If the amount is not a number or has too many decimals
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {amount!r}") from e
    if not value.is_finite():
        raise ValueError(f"Invalid amount: {amount!r}")
    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {decimals} decimals")
    return int(scaled)


def format_units(value: int, decimals: int) -> str:
    """Convert base units to a display amount."""
    text = format(Decimal(value).scaleb(-decimals), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


@dataclass
class AccountSnapshot:
    """Encrypted view of one account: balance handles and operator status."""

    balances: dict[Asset, str] = field(default_factory=dict)
    operators: dict[Asset, bool] = field(default_factory=dict)


class DexService:
    """User-facing flows for one account."""

    def __init__(
        self,
        chain: Chain,
        swap: OpaqueSwap,
        gateway: CryptoGateway,
        signer: WalletSigner,
        decimals: int = 6,
        operator_days: int = 30,
    ):
        self.chain = chain
        self.swap = swap
        self.gateway = gateway
        self.signer = signer
        self.decimals = decimals
        self.operator_days = operator_days

    @property
    def account(self) -> str:
        return self.signer.address

    def token(self, asset: Asset) -> ConfidentialToken:
        """Token contract of one leg."""
        asset_a, asset_b = self.swap.get_asset_addresses()
        return self.chain.contract_at(asset_a if asset is Asset.A else asset_b)

    async def refresh(self) -> AccountSnapshot:
        """Read balance handles and operator status for both legs."""
        snapshot = AccountSnapshot()
        for asset in Asset:
            token = self.token(asset)
            snapshot.balances[asset] = await self.chain.call(token.balance_of, self.account)
            snapshot.operators[asset] = await self.chain.call(
                token.is_operator, self.account, self.swap.address
            )
        return snapshot

    async def mint(self, asset: Asset, amount: Union[str, Decimal]) -> Receipt:
        """Mint to the account from the faucet.

        Raises:
            ValueError: If the amount is not positive or out of range
        """
        value = self._positive_amount(amount)
        token = self.token(asset)
        receipt = await self.chain.send(self.account, token.mint, self.account, value)
        logger.info(f"Minted {amount} {token.symbol} to {self.account}")
        return receipt

    async def set_operator(self, asset: Asset, days: Optional[float] = None) -> Receipt:
        """Make the swap engine an operator of the account for some days."""
        days = self.operator_days if days is None else days
        if not days > 0:
            raise ValueError("Operator duration must be a positive number of days")
        until = self.chain.now() + int(days * SECONDS_PER_DAY)
        token = self.token(asset)
        return await self.chain.send(self.account, token.set_operator, self.swap.address, until)

    def preview(self, direction: SwapDirection, amount: Union[str, Decimal]) -> Optional[str]:
        """Expected output of a swap in display units, or None if unparseable."""
        try:
            value = parse_units(amount, self.decimals)
        except ValueError:
            return None
        if value < 0:
            return None
        out = quote_forward(value) if direction is SwapDirection.FORWARD else quote_reverse(value)
        return format_units(out, self.decimals)

    async def swap_tokens(self, direction: SwapDirection, amount: Union[str, Decimal]) -> Receipt:
        """Encrypt an amount and submit a swap.

        Raises:
            ValueError: If the amount is not positive or out of range
        """
        value = self._positive_amount(amount)
        encrypted = await self.gateway.encrypt_amount(value, self.swap.address, self.account)
        method = self.swap.swap_forward if direction is SwapDirection.FORWARD else self.swap.swap_reverse
        receipt = await self.chain.send(self.account, method, encrypted.handle, encrypted.input_proof)
        logger.info(f"Swap {direction.value} of {amount} confirmed in {receipt.tx_hash[:10]}")
        return receipt

    async def decrypt_balance(self, asset: Asset) -> DecryptResult:
        """Reveal the account's balance of one leg."""
        token = self.token(asset)
        handle = await self.chain.call(token.balance_of, self.account)
        return await self.gateway.user_decrypt(handle, token.address, self.signer)

    def format_amount(self, value: Optional[int]) -> str:
        """Display form of a cleartext amount ("***" while unknown)."""
        if value is None:
            return "***"
        return format_units(value, self.decimals)

    def _positive_amount(self, amount: Union[str, Decimal]) -> int:
        value = parse_units(amount, self.decimals)
        if value <= 0:
            raise ValueError("Enter a positive amount")
        if value > UINT64_MAX:
            raise ValueError("Amount does not fit in uint64")
        return value
