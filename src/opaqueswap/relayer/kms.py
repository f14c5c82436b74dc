"""Off-chain services behind the relayer: input registration and user decryption.

SECURITY: The decryption service only ever returns values sealed to the
session public key named in a request the handle's owner signed. It refuses
when the signature, validity window, contract scope or ACL do not line up.
"""

import logging
import os

from eth_utils import keccak

from opaqueswap.addresses import normalize_address
from opaqueswap.chain.runtime import Chain
from opaqueswap.crypto import SealError, seal_value, unseal_value, validate_public_key
from opaqueswap.eip712 import recover_typed_data_signer, user_decrypt_typed_data
from opaqueswap.fhe.handles import is_zero_handle, normalize_handle
from opaqueswap.relayer.schemas import (
    InputProofRequest,
    InputProofResponse,
    SealedResult,
    UserDecryptRequest,
    UserDecryptResponse,
)

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class RelayerRejection(Exception):
    """A request the relayer refuses to serve."""

    def __init__(self, detail: str, status_code: int = 400):
        self.detail = detail
        self.status_code = status_code
        super().__init__(detail)


class InputService:
    """Verifies sealed client inputs, stores them and attests the handles."""

    def __init__(self, chain: Chain):
        self.chain = chain

    async def register(self, request: InputProofRequest) -> InputProofResponse:
        """Register inputs for (contract, user) and return handles plus proof."""
        try:
            contract = normalize_address(request.contract_address)
            user = normalize_address(request.user_address)
        except ValueError as e:
            raise RelayerRejection(str(e)) from e

        values = []
        for sealed in request.ciphertexts:
            try:
                values.append(unseal_value(self.chain.keys.private_key, sealed))
            except (SealError, ValueError) as e:
                raise RelayerRejection(f"Invalid encrypted input: {e}") from e

        handles = []
        async with self.chain.session() as repo:
            for index, value in enumerate(values):
                seed = b"|".join(
                    [contract.encode(), user.encode(), str(index).encode(), os.urandom(16)]
                )
                handles.append(await self.chain.fhe.store_input(repo, value, keccak(seed)))

        proof = self.chain.input_verifier.attest(handles, user, contract)
        logger.info(f"Registered {len(handles)} input(s) for {user} -> {contract}")
        return InputProofResponse(handles=handles, input_proof=proof)


class DecryptionService:
    """Re-encrypts ciphertexts a user is allowed to see to their session key."""

    def __init__(self, chain: Chain, max_duration_days: int = 365):
        self.chain = chain
        self.max_duration_days = max_duration_days

    async def user_decrypt(self, request: UserDecryptRequest) -> UserDecryptResponse:
        """Serve a signed user-decrypt request.

        Raises:
            RelayerRejection: 400 for malformed/expired requests, 403 for
                signature or ACL failures
        """
        if request.contracts_chain_id != self.chain.chain_id:
            raise RelayerRejection(f"Unknown chain id {request.contracts_chain_id}")

        try:
            validate_public_key(request.public_key)
            user = normalize_address(request.user_address)
            contract_set = [normalize_address(a) for a in request.contract_addresses]
            pairs = [
                (normalize_handle(p.handle), normalize_address(p.contract_address))
                for p in request.handle_contract_pairs
            ]
            typed_data = user_decrypt_typed_data(
                request.public_key,
                contract_set,
                request.request_validity.start_timestamp,
                request.request_validity.duration_days,
                self.chain.chain_id,
                self.chain.decryption_address,
                extra_data=bytes.fromhex(request.extra_data.removeprefix("0x")),
            )
        except ValueError as e:
            raise RelayerRejection(f"Malformed request: {e}") from e

        self._check_window(request.request_validity.start_timestamp, request.request_validity.duration_days)

        try:
            signer = recover_typed_data_signer(typed_data, request.signature)
        except ValueError as e:
            raise RelayerRejection("Invalid signature", status_code=403) from e
        if signer != user:
            raise RelayerRejection("Signature does not match user address", status_code=403)

        results = []
        async with self.chain.session() as repo:
            for handle, contract in pairs:
                if is_zero_handle(handle):
                    raise RelayerRejection("Cannot decrypt an uninitialized handle")
                if contract not in contract_set:
                    raise RelayerRejection(f"Contract {contract} is not in the signed scope", 403)
                if contract == user:
                    raise RelayerRejection("User address must differ from contract address")
                if not await repo.is_allowed(handle, user):
                    raise RelayerRejection(f"{user} is not allowed on {handle}", 403)
                if not await repo.is_allowed(handle, contract):
                    raise RelayerRejection(f"{contract} is not allowed on {handle}", 403)

                value = await self.chain.fhe.reveal(repo, handle)
                if value is None:
                    raise RelayerRejection(f"Unknown handle {handle}", 404)
                results.append(
                    SealedResult(handle=handle, sealed_value=seal_value(request.public_key, value))
                )

        logger.info(f"Served user decrypt of {len(results)} handle(s) for {user}")
        return UserDecryptResponse(results=results)

    def _check_window(self, start_timestamp: int, duration_days: int) -> None:
        if not 1 <= duration_days <= self.max_duration_days:
            raise RelayerRejection(
                f"Duration must be between 1 and {self.max_duration_days} days"
            )
        now = self.chain.now()
        if start_timestamp > now:
            raise RelayerRejection("Request validity has not started")
        if now >= start_timestamp + duration_days * SECONDS_PER_DAY:
            raise RelayerRejection("Request validity has expired")
