"""Relayer request/response contracts."""

from pydantic import BaseModel, Field


class NetworkConfigResponse(BaseModel):
    """Public parameters a client needs before encrypting or decrypting."""

    chain_id: int = Field(..., description="Chain id bound into signatures")
    network_public_key: str = Field(..., description="X25519 key inputs are sealed to (hex)")
    input_verification_address: str = Field(..., description="Input-proof EIP-712 verifying contract")
    decryption_address: str = Field(..., description="User-decrypt EIP-712 verifying contract")
    coprocessor_signer: str = Field(..., description="Address attesting encrypted inputs")


class InputProofRequest(BaseModel):
    """Sealed client inputs to register for one (contract, user) pair."""

    contract_address: str = Field(..., description="Contract that will ingest the inputs")
    user_address: str = Field(..., description="Account that will submit the inputs")
    ciphertexts: list[str] = Field(
        ..., min_length=1, max_length=255, description="uint64 values sealed to the network key"
    )


class InputProofResponse(BaseModel):
    """Handles of the registered inputs and the proof binding them."""

    handles: list[str] = Field(..., description="Ciphertext handles, in request order")
    input_proof: str = Field(..., description="Coprocessor attestation (hex)")


class HandleContractPair(BaseModel):
    """A ciphertext and the contract it belongs to."""

    handle: str
    contract_address: str


class RequestValidity(BaseModel):
    """Validity window signed by the user."""

    start_timestamp: int = Field(..., ge=0, description="Unix seconds")
    duration_days: int = Field(..., description="Window length in days")


class UserDecryptRequest(BaseModel):
    """Signed request to re-encrypt ciphertexts to a session public key.

    The session private key never leaves the client.
    """

    handle_contract_pairs: list[HandleContractPair] = Field(..., min_length=1)
    request_validity: RequestValidity
    contracts_chain_id: int
    contract_addresses: list[str] = Field(..., min_length=1)
    user_address: str
    signature: str = Field(..., description="EIP-712 UserDecryptRequestVerification signature")
    public_key: str = Field(..., description="Session X25519 public key (hex)")
    extra_data: str = Field(default="0x00")


class SealedResult(BaseModel):
    """A value sealed to the session public key."""

    handle: str
    sealed_value: str


class UserDecryptResponse(BaseModel):
    """Sealed values keyed by handle."""

    results: list[SealedResult]
