"""Client side: encrypted inputs and the authorized decrypt handshake."""

from opaqueswap.client.gateway import (
    CryptoGateway,
    DecryptResult,
    DecryptStatus,
    EncryptedInput,
)
from opaqueswap.client.relayer_client import RelayerClient
from opaqueswap.client.session import DecryptionSession
from opaqueswap.client.signer import LocalWalletSigner, WalletSigner
from opaqueswap.client.single_flight import InFlightRegistry

__all__ = [
    "CryptoGateway",
    "DecryptResult",
    "DecryptStatus",
    "DecryptionSession",
    "EncryptedInput",
    "InFlightRegistry",
    "LocalWalletSigner",
    "RelayerClient",
    "WalletSigner",
]
