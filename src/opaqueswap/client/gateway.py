"""Client-side cryptographic gateway.

Two flows:

1. Encrypt-for-submission: seal an amount to the network key, register it
   with the relayer and get back a handle plus an input proof bound to
   (contract, user). Both go straight into a contract call.
2. Authorized decrypt: a four-step handshake revealing one handle to its
   owner.
   a. generate a keypair for this session only;
   b. build the authorization payload (public key, contract scope, start
      time, duration in days);
   c. have the wallet sign it as EIP-712 typed data;
   d. send handle, public key, signature and scope to the decryption
      service, then open the sealed answer with the session private key.

The all-zero handle means "nothing encrypted yet" and is answered locally
without touching the network. Decrypts are single-flight per
(account, asset); the session private key is dropped as soon as the
handshake ends, whatever the outcome.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

import httpx

from opaqueswap.addresses import normalize_address
from opaqueswap.client.relayer_client import RelayerClient
from opaqueswap.client.session import DecryptionSession
from opaqueswap.client.signer import WalletSigner
from opaqueswap.client.single_flight import InFlightRegistry
from opaqueswap.config import Settings, get_settings
from opaqueswap.crypto import UINT64_MAX
from opaqueswap.errors import DecryptTimeoutError, GatewayUnavailableError
from opaqueswap.fhe.handles import is_zero_handle, normalize_handle

logger = logging.getLogger(__name__)


@dataclass
class EncryptedInput:
    """A registered encrypted input ready to pass to a contract."""

    handle: str
    input_proof: str


class DecryptStatus(str, Enum):
    """Outcome of a decrypt request."""

    DECRYPTED = "decrypted"
    NOT_AVAILABLE = "not_available"  # zero handle: nothing encrypted yet


@dataclass
class DecryptResult:
    """Result of a decrypt request."""

    handle: str
    status: DecryptStatus
    value: Optional[int] = None

    @property
    def available(self) -> bool:
        return self.status is DecryptStatus.DECRYPTED


class CryptoGateway:
    """Encrypts inputs for submission and runs the authorized decrypt."""

    def __init__(
        self,
        relayer: RelayerClient,
        clock: Optional[Callable[[], int]] = None,
        duration_days: int = 10,
        timeout: Optional[float] = 30.0,
    ):
        """Initialize the gateway.

        Args:
            relayer: Relayer client
            clock: Source of Unix seconds used as the session start time
            duration_days: Validity window of each authorization
            timeout: Default decrypt timeout in seconds (None = wait forever)
        """
        self.relayer = relayer
        self.clock = clock or (lambda: int(time.time()))
        self.duration_days = duration_days
        self.timeout = timeout
        self._in_flight = InFlightRegistry()

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> "CryptoGateway":
        """Build a gateway talking to the configured relayer."""
        settings = settings or get_settings()
        return cls(
            RelayerClient(settings.relayer_url, timeout=settings.http_timeout, transport=transport),
            clock=clock,
            duration_days=settings.decrypt_duration_days,
            timeout=settings.decrypt_timeout_seconds,
        )

    # ======================
    # Encrypt for submission
    # ======================

    async def encrypt_amount(self, amount: int, contract_address: str, user_address: str) -> EncryptedInput:
        """Encrypt a uint64 amount bound to (contract, user).

        Raises:
            ValueError: If the amount does not fit in uint64
            GatewayUnavailableError: If the relayer cannot be reached
        """
        if not 0 <= amount <= UINT64_MAX:
            raise ValueError(f"Amount out of uint64 range: {amount}")
        contract_address = normalize_address(contract_address)
        user_address = normalize_address(user_address)

        response = await self.relayer.create_input_proof([amount], contract_address, user_address)
        if len(response.handles) != 1:
            raise GatewayUnavailableError("Relayer returned an unexpected number of handles")
        logger.debug(f"Encrypted input {response.handles[0][:18]}... for {user_address} -> {contract_address}")
        return EncryptedInput(handle=response.handles[0], input_proof=response.input_proof)

    # ======================
    # Authorized decrypt
    # ======================

    def is_busy(self, account: str, asset: str) -> bool:
        """Check whether a decrypt for (account, asset) is in flight."""
        return self._in_flight.is_busy(account, asset)

    async def user_decrypt(
        self,
        handle: str,
        contract_address: str,
        signer: WalletSigner,
        asset: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> DecryptResult:
        """Reveal a handle to the signer's account.

        Args:
            handle: Ciphertext handle to decrypt
            contract_address: Contract the handle belongs to
            signer: Wallet of the account owning the handle
            asset: Single-flight key (defaults to contract_address)
            timeout: Override of the default timeout

        Returns:
            DecryptResult; NOT_AVAILABLE for the zero handle

        Raises:
            DecryptBusyError: If a decrypt for (account, asset) is in flight
            SignatureRejectedError: If the wallet declines to sign
            DecryptRejectedError: If the service refuses the request
            GatewayUnavailableError: If the service cannot be reached
            DecryptTimeoutError: If the round trip exceeds the timeout
        """
        handle = normalize_handle(handle)
        if is_zero_handle(handle):
            logger.debug("Zero handle: encrypted balance not available yet")
            return DecryptResult(handle=handle, status=DecryptStatus.NOT_AVAILABLE)

        timeout = self.timeout if timeout is None else timeout
        account = signer.address
        async with self._in_flight.claim(account, asset or contract_address):
            session = DecryptionSession.open(
                handle, contract_address, account, self.clock(), self.duration_days
            )
            try:
                value = await asyncio.wait_for(self._run_handshake(session, signer), timeout)
            except asyncio.TimeoutError as e:
                logger.warning(f"Decrypt for {account} timed out after {timeout}s")
                raise DecryptTimeoutError(f"Decrypt did not complete within {timeout}s") from e
            finally:
                session.invalidate()

        logger.info(f"Decrypted {handle[:18]}... for {account}")
        return DecryptResult(handle=handle, status=DecryptStatus.DECRYPTED, value=value)

    async def _run_handshake(self, session: DecryptionSession, signer: WalletSigner) -> int:
        network = await self.relayer.get_network_config()
        typed_data = session.typed_data(network.chain_id, network.decryption_address)
        session.signature = await signer.sign_typed_data(typed_data)
        session.ensure_usable(session.handle, self.clock())

        values = await self.relayer.user_decrypt(
            handle=session.handle,
            contract_address=session.contract_address,
            private_key=session.private_key,
            public_key=session.public_key,
            signature=session.signature.removeprefix("0x"),
            contract_addresses=session.contract_addresses,
            user_address=session.user_address,
            start_timestamp=session.start_timestamp,
            duration_days=session.duration_days,
        )
        return values[session.handle]
