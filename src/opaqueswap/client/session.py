"""Ephemeral state of one authorized decrypt.

A session owns a fresh keypair used for exactly one handle. It becomes
unusable once its validity window ends or once it has been used, and its
private key is dropped at that point.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from opaqueswap.addresses import normalize_address
from opaqueswap.crypto import Keypair, generate_keypair
from opaqueswap.eip712 import user_decrypt_typed_data
from opaqueswap.errors import SessionExpiredError
from opaqueswap.fhe.handles import normalize_handle

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


@dataclass
class DecryptionSession:
    """Keypair and signed authorization for decrypting one handle.

    Attributes:
        handle: The ciphertext this session may decrypt
        contract_address: Contract the handle belongs to
        user_address: Account the authorization is signed by
        contract_addresses: Contract scope named in the authorization
        start_timestamp: Start of the validity window (Unix seconds)
        duration_days: Length of the validity window
    """

    handle: str
    contract_address: str
    user_address: str
    contract_addresses: list[str]
    start_timestamp: int
    duration_days: int
    keypair: Optional[Keypair] = field(default=None, repr=False)
    signature: Optional[str] = field(default=None, repr=False)
    closed: bool = False

    @classmethod
    def open(
        cls,
        handle: str,
        contract_address: str,
        user_address: str,
        start_timestamp: int,
        duration_days: int,
    ) -> "DecryptionSession":
        """Start a session with a fresh keypair scoped to one contract."""
        contract_address = normalize_address(contract_address)
        return cls(
            handle=normalize_handle(handle),
            contract_address=contract_address,
            user_address=normalize_address(user_address),
            contract_addresses=[contract_address],
            start_timestamp=int(start_timestamp),
            duration_days=int(duration_days),
            keypair=generate_keypair(),
        )

    @property
    def public_key(self) -> str:
        if self.keypair is None:
            raise SessionExpiredError("Decryption session is closed")
        return self.keypair.public_key

    @property
    def private_key(self) -> str:
        if self.keypair is None:
            raise SessionExpiredError("Decryption session is closed")
        return self.keypair.private_key

    @property
    def expires_at(self) -> int:
        return self.start_timestamp + self.duration_days * SECONDS_PER_DAY

    def is_expired(self, now: int) -> bool:
        """Check whether the validity window has ended (or not yet begun)."""
        return not self.start_timestamp <= now < self.expires_at

    def typed_data(self, chain_id: int, verifying_contract: str) -> dict:
        """Authorization payload the wallet signs."""
        return user_decrypt_typed_data(
            self.public_key,
            self.contract_addresses,
            self.start_timestamp,
            self.duration_days,
            chain_id,
            verifying_contract,
        )

    def ensure_usable(self, handle: str, now: int) -> None:
        """Check the session may still decrypt the given handle.

        Raises:
            SessionExpiredError: If closed, expired or bound to another handle
        """
        if self.closed or self.keypair is None:
            raise SessionExpiredError("Decryption session was already used")
        if self.is_expired(now):
            raise SessionExpiredError("Decryption session validity window has passed")
        if normalize_handle(handle) != self.handle:
            raise SessionExpiredError("Decryption session is bound to a different handle")

    def invalidate(self) -> None:
        """Close the session and drop its private key."""
        if not self.closed:
            logger.debug(f"Closing decryption session for {self.handle[:18]}...")
        self.keypair = None
        self.signature = None
        self.closed = True

    def __repr__(self) -> str:
        state = "closed" if self.closed else "open"
        return (
            f"DecryptionSession(handle={self.handle[:18]}..., user={self.user_address}, "
            f"contract={self.contract_address}, state={state}, private_key=<redacted>)"
        )
