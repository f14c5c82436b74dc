"""EIP-712 typed data used by the protocol.

Two domains are involved:

- ``Decryption``: the user signs a ``UserDecryptRequestVerification`` naming
  the session public key, the contracts whose ciphertexts may be decrypted
  and a validity window. The decryption service recovers the signer.
- ``InputVerification``: the coprocessor signs a ``CiphertextVerification``
  binding fresh input handles to a (user, contract, chain) triple. The input
  verifier recovers the signer on-chain.

Typed-data values are kept as native Python types (bytes, int, checksum
strings) so they can be encoded directly by eth_account.
"""

from typing import Iterable

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_account.signers.local import LocalAccount
from eth_utils import to_hex

from opaqueswap.addresses import normalize_address

DECRYPTION_DOMAIN_NAME = "Decryption"
INPUT_VERIFICATION_DOMAIN_NAME = "InputVerification"
DOMAIN_VERSION = "1"

EIP712_DOMAIN = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

USER_DECRYPT_REQUEST = [
    {"name": "publicKey", "type": "bytes"},
    {"name": "contractAddresses", "type": "address[]"},
    {"name": "startTimestamp", "type": "uint256"},
    {"name": "durationDays", "type": "uint256"},
    {"name": "extraData", "type": "bytes"},
]

CIPHERTEXT_VERIFICATION = [
    {"name": "ctHandles", "type": "bytes32[]"},
    {"name": "userAddress", "type": "address"},
    {"name": "contractAddress", "type": "address"},
    {"name": "contractChainId", "type": "uint256"},
    {"name": "extraData", "type": "bytes"},
]


def _hex_bytes(value) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    text = value[2:] if value.startswith(("0x", "0X")) else value
    return bytes.fromhex(text)


def user_decrypt_typed_data(
    public_key: str,
    contract_addresses: Iterable[str],
    start_timestamp: int,
    duration_days: int,
    chain_id: int,
    verifying_contract: str,
    extra_data: bytes = b"\x00",
) -> dict:
    """Build the authorization payload a user signs before decrypting."""
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN,
            "UserDecryptRequestVerification": USER_DECRYPT_REQUEST,
        },
        "primaryType": "UserDecryptRequestVerification",
        "domain": {
            "name": DECRYPTION_DOMAIN_NAME,
            "version": DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": normalize_address(verifying_contract),
        },
        "message": {
            "publicKey": _hex_bytes(public_key),
            "contractAddresses": [normalize_address(a) for a in contract_addresses],
            "startTimestamp": int(start_timestamp),
            "durationDays": int(duration_days),
            "extraData": bytes(extra_data),
        },
    }


def ciphertext_verification_typed_data(
    handles: Iterable,
    user_address: str,
    contract_address: str,
    chain_id: int,
    verifying_contract: str,
    extra_data: bytes = b"\x00",
) -> dict:
    """Build the attestation the coprocessor signs over fresh input handles."""
    return {
        "types": {
            "EIP712Domain": EIP712_DOMAIN,
            "CiphertextVerification": CIPHERTEXT_VERIFICATION,
        },
        "primaryType": "CiphertextVerification",
        "domain": {
            "name": INPUT_VERIFICATION_DOMAIN_NAME,
            "version": DOMAIN_VERSION,
            "chainId": chain_id,
            "verifyingContract": normalize_address(verifying_contract),
        },
        "message": {
            "ctHandles": [_hex_bytes(h) for h in handles],
            "userAddress": normalize_address(user_address),
            "contractAddress": normalize_address(contract_address),
            "contractChainId": chain_id,
            "extraData": bytes(extra_data),
        },
    }


def sign_typed_data(account: LocalAccount, typed_data: dict) -> str:
    """Sign typed data with a local account, returning a 0x hex signature."""
    signed = account.sign_message(encode_typed_data(full_message=typed_data))
    return to_hex(signed.signature)


def recover_typed_data_signer(typed_data: dict, signature: str) -> str:
    """Recover the checksum address that signed typed data.

    Raises:
        ValueError: If the signature is malformed
    """
    try:
        return Account.recover_message(
            encode_typed_data(full_message=typed_data),
            signature=_hex_bytes(signature),
        )
    except Exception as e:
        raise ValueError(f"Cannot recover signer: {e}") from e
