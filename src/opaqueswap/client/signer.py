"""Wallet signing interfaces for the decrypt handshake.

Signing flow:
1. Build the EIP-712 authorization payload
2. Hand it to the wallet signer
3. Wallet returns a signature (never its private key)
4. Attach the signature to the decrypt request
"""

import logging
from abc import ABC, abstractmethod

from eth_account.signers.local import LocalAccount

from opaqueswap.eip712 import sign_typed_data
from opaqueswap.errors import SignatureRejectedError

logger = logging.getLogger(__name__)


class WalletSigner(ABC):
    """Abstract base class for wallets able to sign typed data.

    Implementations should NEVER expose raw private keys.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Checksum address of the signing account."""
        pass

    @abstractmethod
    async def sign_typed_data(self, typed_data: dict) -> str:
        """Sign an EIP-712 payload.

        Args:
            typed_data: Full typed-data message (types, domain, message)

        Returns:
            0x-prefixed 65-byte signature

        Raises:
            SignatureRejectedError: If the wallet declines to sign
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(address={self.address})"


class LocalWalletSigner(WalletSigner):
    """Signer backed by an in-memory eth_account key.

    WARNING: Suitable for development, tests and the demo only.
    """

    def __init__(self, account: LocalAccount):
        self._account = account

    @property
    def address(self) -> str:
        return self._account.address

    async def sign_typed_data(self, typed_data: dict) -> str:
        try:
            return sign_typed_data(self._account, typed_data)
        except Exception as e:
            logger.warning(f"Local signer failed for {self.address}: {e}")
            raise SignatureRejectedError(f"Signing failed: {e}") from e
