"""Account and contract address helpers."""

from eth_utils import is_address, keccak, to_checksum_address

ZERO_ADDRESS = "0x" + "00" * 20


def normalize_address(address: str) -> str:
    """Return the checksum form of an address.

    Raises:
        ValueError: If the value is not a 20-byte hex address
    """
    if not isinstance(address, str) or not is_address(address):
        raise ValueError(f"Invalid address: {address!r}")
    return to_checksum_address(address)


def is_zero_address(address: str) -> bool:
    """Check whether an address is the null address."""
    return int(address, 16) == 0


def contract_address(deployer: str, nonce: int) -> str:
    """Derive the address of the nonce-th contract created by a deployer."""
    seed = b"opaqueswap:create:" + bytes.fromhex(normalize_address(deployer)[2:]) + nonce.to_bytes(8, "big")
    return to_checksum_address(keccak(seed)[12:])


def system_address(label: str) -> str:
    """Derive a fixed address for a platform component (verifying contracts)."""
    return to_checksum_address(keccak(b"opaqueswap:system:" + label.encode())[12:])
