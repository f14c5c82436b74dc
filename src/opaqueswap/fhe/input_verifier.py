"""Encrypted input attestation and verification.

Input proof layout (hex, 0x-prefixed):

    num_handles (1 byte) || handles (32 bytes each) || signature (65 bytes)

The signature is the coprocessor's EIP-712 ``CiphertextVerification`` over
the handles, the submitting user, the target contract and the chain id. A
handle from a given attestation can be ingested exactly once. Use is keyed on
the attested content rather than the proof bytes, and only low-s signatures
are accepted, so a re-encoded signature cannot replay an input.
"""

import logging
from typing import TYPE_CHECKING

from eth_utils import keccak, to_hex

from opaqueswap.addresses import normalize_address
from opaqueswap.eip712 import (
    ciphertext_verification_typed_data,
    recover_typed_data_signer,
    sign_typed_data,
)
from opaqueswap.errors import InvalidInputProof
from opaqueswap.fhe.handles import HANDLE_SIZE, normalize_handle
from opaqueswap.fhe.keys import NetworkKeys

if TYPE_CHECKING:
    from opaqueswap.chain.runtime import CallContext

logger = logging.getLogger(__name__)

SIGNATURE_SIZE = 65
MAX_HANDLES = 255
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141


def encode_input_proof(handles: list[str], signature: str) -> str:
    """Pack handles and the attestation signature into an input proof."""
    if not 1 <= len(handles) <= MAX_HANDLES:
        raise ValueError("An input proof carries between 1 and 255 handles")
    raw_signature = bytes.fromhex(signature[2:] if signature.startswith("0x") else signature)
    body = bytes([len(handles)])
    for handle in handles:
        body += bytes.fromhex(normalize_handle(handle)[2:])
    return to_hex(body + raw_signature)


def decode_input_proof(proof: str) -> tuple[list[str], str]:
    """Unpack an input proof into (handles, signature).

    Raises:
        ValueError: If the proof is malformed
    """
    text = proof[2:] if proof.startswith(("0x", "0X")) else proof
    data = bytes.fromhex(text)
    if not data:
        raise ValueError("Empty input proof")
    count = data[0]
    expected = 1 + count * HANDLE_SIZE + SIGNATURE_SIZE
    if count == 0 or len(data) != expected:
        raise ValueError(f"Input proof length {len(data)} does not match {count} handles")
    handles = [
        "0x" + data[1 + i * HANDLE_SIZE:1 + (i + 1) * HANDLE_SIZE].hex() for i in range(count)
    ]
    return handles, to_hex(data[1 + count * HANDLE_SIZE:])


def is_low_s(signature: str) -> bool:
    """True if the signature's s value lies in the lower half of the curve order."""
    raw = bytes.fromhex(signature[2:] if signature.startswith("0x") else signature)
    s = int.from_bytes(raw[32:64], "big")
    return 0 < s <= SECP256K1_N // 2


def attestation_key(handles: list[str], user_address: str, contract_address: str, chain_id: int) -> str:
    """Digest of what an input proof attests, independent of its signature encoding."""
    body = b"".join(bytes.fromhex(normalize_handle(h)[2:]) for h in handles)
    body += bytes.fromhex(normalize_address(user_address)[2:])
    body += bytes.fromhex(normalize_address(contract_address)[2:])
    body += chain_id.to_bytes(32, "big")
    return to_hex(keccak(body))


class InputVerifier:
    """Signs (coprocessor side) and checks (contract side) input proofs."""

    def __init__(self, keys: NetworkKeys, chain_id: int, verifying_contract: str):
        self.keys = keys
        self.chain_id = chain_id
        self.verifying_contract = verifying_contract

    def attest(self, handles: list[str], user_address: str, contract_address: str) -> str:
        """Sign fresh input handles for a (user, contract) pair."""
        typed_data = ciphertext_verification_typed_data(
            handles,
            user_address,
            contract_address,
            self.chain_id,
            self.verifying_contract,
        )
        signature = sign_typed_data(self.keys.coprocessor, typed_data)
        return encode_input_proof(handles, signature)

    async def verify(self, ctx: "CallContext", handle: str, input_proof: str) -> str:
        """Check that an input is bound to (ctx.sender, ctx.this) and unused.

        Returns:
            The normalized handle

        Raises:
            InvalidInputProof: On any mismatch
        """
        try:
            handle = normalize_handle(handle)
            handles, signature = decode_input_proof(input_proof)
        except ValueError as e:
            raise InvalidInputProof(ctx.this, f"Malformed encrypted input: {e}") from e

        if handle not in handles:
            raise InvalidInputProof(ctx.this, "Handle is not covered by the input proof")

        if not is_low_s(signature):
            raise InvalidInputProof(ctx.this, "Input proof signature is not canonical")

        typed_data = ciphertext_verification_typed_data(
            handles, ctx.sender, ctx.this, self.chain_id, self.verifying_contract
        )
        try:
            signer = recover_typed_data_signer(typed_data, signature)
        except ValueError as e:
            raise InvalidInputProof(ctx.this, "Input proof signature is invalid") from e
        if signer != self.keys.coprocessor_address:
            logger.info(f"Rejected input {handle[:18]}... for {ctx.this}: bound elsewhere")
            raise InvalidInputProof(ctx.this, "Input proof is not bound to this contract and sender")

        proof_hash = attestation_key(handles, ctx.sender, ctx.this, self.chain_id)
        if await ctx.tx.repo.is_input_consumed(proof_hash, handle):
            raise InvalidInputProof(ctx.this, "Encrypted input was already consumed")
        await ctx.tx.repo.consume_input(proof_hash, handle, ctx.this, ctx.sender, ctx.timestamp)
        return handle
