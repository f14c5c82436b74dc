"""Network key material held by the host platform."""

import logging
from dataclasses import dataclass, field

from eth_account import Account
from eth_account.signers.local import LocalAccount

from opaqueswap.config import Settings
from opaqueswap.crypto import CiphertextVault, generate_keypair, public_key_from_private

logger = logging.getLogger(__name__)


@dataclass
class NetworkKeys:
    """Keys of the FHE network.

    Attributes:
        storage_key: Fernet key protecting stored ciphertexts
        private_key: X25519 key that client inputs are sealed to
        coprocessor: Account signing input attestations
    """

    storage_key: str = field(repr=False)
    private_key: str = field(repr=False)
    coprocessor: LocalAccount = field(repr=False)

    @property
    def public_key(self) -> str:
        """Network public key clients seal inputs to."""
        return public_key_from_private(self.private_key)

    @property
    def coprocessor_address(self) -> str:
        """Address whose signatures the input verifier accepts."""
        return self.coprocessor.address

    def vault(self) -> CiphertextVault:
        """Create a vault over the storage key."""
        return CiphertextVault(self.storage_key)

    @classmethod
    def generate(cls) -> "NetworkKeys":
        """Generate ephemeral keys (development and tests)."""
        return cls(
            storage_key=CiphertextVault.generate_key(),
            private_key=generate_keypair().private_key,
            coprocessor=Account.create(),
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "NetworkKeys":
        """Load keys from settings, generating any that are missing."""
        if not settings.has_network_keys:
            if settings.is_production:
                logger.warning("Network keys not configured - generating ephemeral keys")
            generated = cls.generate()
        else:
            generated = None

        return cls(
            storage_key=settings.network_storage_key or generated.storage_key,
            private_key=settings.network_private_key or generated.private_key,
            coprocessor=(
                Account.from_key(settings.coprocessor_signer_key)
                if settings.coprocessor_signer_key
                else generated.coprocessor
            ),
        )
