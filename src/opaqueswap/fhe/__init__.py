"""FHE coprocessor model: handles, executor, ACL and input verification."""

from opaqueswap.fhe.executor import FheExecutor
from opaqueswap.fhe.handles import ZERO_HANDLE, FheType, is_zero_handle, normalize_handle
from opaqueswap.fhe.input_verifier import InputVerifier, decode_input_proof, encode_input_proof
from opaqueswap.fhe.keys import NetworkKeys

__all__ = [
    "FheExecutor",
    "FheType",
    "InputVerifier",
    "NetworkKeys",
    "ZERO_HANDLE",
    "decode_input_proof",
    "encode_input_proof",
    "is_zero_handle",
    "normalize_handle",
]
