"""Relayer service: input attestation and user decryption over HTTP."""

from opaqueswap.relayer.app import create_app
from opaqueswap.relayer.kms import DecryptionService, InputService, RelayerRejection

__all__ = ["DecryptionService", "InputService", "RelayerRejection", "create_app"]
