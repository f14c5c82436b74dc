"""Cryptographic primitives shared by the host platform and the client.

Two concerns live here:

- ``CiphertextVault``: Fernet (AES-128-CBC with HMAC) protecting values at
  rest in the coprocessor's ciphertext store, keyed by the network key.
- Sealed boxes: X25519 ECDH + HKDF-SHA256 + AES-GCM. Clients seal inputs to
  the network public key; the decryption service seals results to a
  session's public key.
"""

import logging
import os
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidTag
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

logger = logging.getLogger(__name__)

UINT64_MAX = 2**64 - 1
VALUE_SIZE = 8
SEAL_INFO = b"opaqueswap/seal/v1"
_KEY_SIZE = 32
_NONCE_SIZE = 12


class SealError(ValueError):
    """Raised when a sealed box cannot be opened."""

    pass


def encode_value(value: int) -> bytes:
    """Encode an unsigned 64-bit value as 8 big-endian bytes."""
    if not 0 <= value <= UINT64_MAX:
        raise ValueError(f"Value out of uint64 range: {value}")
    return value.to_bytes(VALUE_SIZE, "big")


def decode_value(data: bytes) -> int:
    """Decode 8 big-endian bytes into an integer."""
    if len(data) != VALUE_SIZE:
        raise ValueError(f"Expected {VALUE_SIZE} bytes, got {len(data)}")
    return int.from_bytes(data, "big")


class CiphertextVault:
    """Encrypts and decrypts stored ciphertext payloads under the network key.

    Usage:
        vault = CiphertextVault(storage_key)
        token = vault.encrypt(42)
        vault.decrypt(token)  # 42
    """

    def __init__(self, storage_key: str):
        """Initialize with the network storage key.

        Args:
            storage_key: Base64-encoded Fernet key (32 bytes)
        """
        self._fernet = Fernet(storage_key.encode())

    @staticmethod
    def generate_key() -> str:
        """Generate a new storage key."""
        return Fernet.generate_key().decode()

    def encrypt(self, value: int) -> str:
        """Encrypt a uint64 into a storable token."""
        return self._fernet.encrypt(encode_value(value)).decode()

    def decrypt(self, token: str) -> int:
        """Decrypt a stored token.

        Raises:
            InvalidToken: If decryption fails (wrong key or corrupted data)
        """
        return decode_value(self._fernet.decrypt(token.encode()))


@dataclass
class Keypair:
    """An X25519 keypair encoded as hex strings."""

    public_key: str
    private_key: str = field(repr=False)


def generate_keypair() -> Keypair:
    """Generate a fresh X25519 keypair."""
    private = X25519PrivateKey.generate()
    return Keypair(
        public_key=_public_bytes(private.public_key()).hex(),
        private_key=private.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        ).hex(),
    )


def public_key_from_private(private_key_hex: str) -> str:
    """Derive the hex public key matching a hex private key."""
    private = X25519PrivateKey.from_private_bytes(_from_hex(private_key_hex, _KEY_SIZE))
    return _public_bytes(private.public_key()).hex()


def validate_public_key(public_key_hex: str) -> str:
    """Check that a hex string is a usable X25519 public key.

    Raises:
        ValueError: If it is not hex or not a 32-byte key
    """
    return _public_bytes(X25519PublicKey.from_public_bytes(_from_hex(public_key_hex, _KEY_SIZE))).hex()


def seal(public_key_hex: str, plaintext: bytes) -> str:
    """Seal plaintext to a recipient public key.

    Layout: ephemeral public key (32) || nonce (12) || AES-GCM ciphertext.

    Returns:
        Hex string of the sealed box
    """
    recipient = X25519PublicKey.from_public_bytes(_from_hex(public_key_hex, _KEY_SIZE))
    ephemeral = X25519PrivateKey.generate()
    ephemeral_public = _public_bytes(ephemeral.public_key())
    recipient_public = _public_bytes(recipient)

    key = _derive_key(ephemeral.exchange(recipient))
    nonce = os.urandom(_NONCE_SIZE)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext, ephemeral_public + recipient_public)
    return (ephemeral_public + nonce + ciphertext).hex()


def unseal(private_key_hex: str, sealed_hex: str) -> bytes:
    """Open a sealed box with the recipient's private key.

    Raises:
        SealError: If the box is malformed or was not sealed to this key
    """
    try:
        data = bytes.fromhex(_strip_0x(sealed_hex))
    except ValueError as e:
        raise SealError("Sealed box is not valid hex") from e
    if len(data) < _KEY_SIZE + _NONCE_SIZE + 16:
        raise SealError("Sealed box too short")

    private = X25519PrivateKey.from_private_bytes(_from_hex(private_key_hex, _KEY_SIZE))
    ephemeral_public = data[:_KEY_SIZE]
    nonce = data[_KEY_SIZE:_KEY_SIZE + _NONCE_SIZE]
    ciphertext = data[_KEY_SIZE + _NONCE_SIZE:]
    recipient_public = _public_bytes(private.public_key())

    key = _derive_key(private.exchange(X25519PublicKey.from_public_bytes(ephemeral_public)))
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, ephemeral_public + recipient_public)
    except InvalidTag as e:
        raise SealError("Sealed box authentication failed") from e


def seal_value(public_key_hex: str, value: int) -> str:
    """Seal a uint64 to a public key."""
    return seal(public_key_hex, encode_value(value))


def unseal_value(private_key_hex: str, sealed_hex: str) -> int:
    """Open a sealed uint64."""
    plaintext = unseal(private_key_hex, sealed_hex)
    try:
        return decode_value(plaintext)
    except ValueError as e:
        raise SealError(str(e)) from e


def _derive_key(shared_secret: bytes) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=_KEY_SIZE,
        salt=None,
        info=SEAL_INFO,
    ).derive(shared_secret)


def _public_bytes(public_key: X25519PublicKey) -> bytes:
    return public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def _strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def _from_hex(value: str, size: int) -> bytes:
    raw = bytes.fromhex(_strip_0x(value))
    if len(raw) != size:
        raise ValueError(f"Expected {size}-byte key, got {len(raw)} bytes")
    return raw
