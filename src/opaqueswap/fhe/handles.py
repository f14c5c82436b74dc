"""Ciphertext handle encoding.

A handle is 32 bytes rendered as a 0x-prefixed hex string. Byte 30 carries
the FHE type; the all-zero handle is the "uninitialized" sentinel.
"""

from enum import IntEnum

from eth_utils import keccak

ZERO_HANDLE = "0x" + "00" * 32
HANDLE_SIZE = 32
_TYPE_BYTE = 30


class FheType(IntEnum):
    """Encrypted value types used by the ledger."""

    EBOOL = 0
    EUINT64 = 5


def is_zero_handle(handle: str) -> bool:
    """Check whether a handle is the uninitialized sentinel."""
    return int(handle, 16) == 0


def normalize_handle(handle) -> str:
    """Return a handle as lowercase 0x-prefixed hex, validating its size.

    Accepts bytes or hex strings with or without the 0x prefix.
    """
    if isinstance(handle, (bytes, bytearray)):
        raw = bytes(handle)
    else:
        text = handle[2:] if handle.startswith(("0x", "0X")) else handle
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise ValueError(f"Handle is not valid hex: {handle!r}") from e
    if len(raw) != HANDLE_SIZE:
        raise ValueError(f"Handle must be {HANDLE_SIZE} bytes, got {len(raw)}")
    return "0x" + raw.hex()


def handle_bytes(handle: str) -> bytes:
    """Return the raw 32 bytes of a handle."""
    return bytes.fromhex(normalize_handle(handle)[2:])


def derive_handle(seed: bytes, fhe_type: FheType) -> str:
    """Derive a handle from a seed, stamping the FHE type."""
    digest = bytearray(keccak(seed))
    digest[_TYPE_BYTE] = int(fhe_type)
    digest[31] = 0
    return "0x" + bytes(digest).hex()


def handle_type(handle: str) -> FheType:
    """Read the FHE type stamped into a handle."""
    return FheType(handle_bytes(handle)[_TYPE_BYTE])
