"""Relayer endpoints: network parameters, input proofs and user decryption."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from opaqueswap.chain.runtime import Chain
from opaqueswap.config import get_settings
from opaqueswap.relayer.kms import DecryptionService, InputService, RelayerRejection
from opaqueswap.relayer.schemas import (
    InputProofRequest,
    InputProofResponse,
    NetworkConfigResponse,
    UserDecryptRequest,
    UserDecryptResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_chain(request: Request) -> Chain:
    """Resolve the chain the app was started with."""
    chain = getattr(request.app.state, "chain", None)
    if chain is None:
        raise HTTPException(status_code=503, detail="Relayer is not ready")
    return chain


def get_input_service(request: Request) -> InputService:
    return request.app.state.input_service


def get_decryption_service(request: Request) -> DecryptionService:
    return request.app.state.decryption_service


@router.get("/health", tags=["Health"])
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "opaqueswap-relayer"}


@router.get("/health/detailed", tags=["Health"])
async def detailed_health(request: Request, chain: Chain = Depends(get_chain)):
    """Detailed health check with configuration info and served contracts."""
    deployment = getattr(request.app.state, "deployment", None)
    contracts = {}
    if deployment is not None:
        contracts = {
            "token_a": deployment.token_a.address,
            "token_b": deployment.token_b.address,
            "swap": deployment.swap.address,
        }
    return {
        "status": "healthy",
        "service": "opaqueswap-relayer",
        "version": "0.1.0",
        "chain_id": chain.chain_id,
        "contracts": contracts,
        "config": get_settings().get_safe_dict(),
    }


@router.get("/v1/keyurl", response_model=NetworkConfigResponse, tags=["Relayer"])
async def network_config(chain: Chain = Depends(get_chain)):
    """Public key material and verifying contracts of the network."""
    return NetworkConfigResponse(
        chain_id=chain.chain_id,
        network_public_key=chain.keys.public_key,
        input_verification_address=chain.input_verification_address,
        decryption_address=chain.decryption_address,
        coprocessor_signer=chain.keys.coprocessor_address,
    )


@router.post("/v1/input-proof", response_model=InputProofResponse, tags=["Relayer"])
async def input_proof(
    body: InputProofRequest,
    service: InputService = Depends(get_input_service),
):
    """Register sealed inputs and return their handles with a proof."""
    try:
        return await service.register(body)
    except RelayerRejection as e:
        logger.info(f"Input proof rejected: {e.detail}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)


@router.post("/v1/user-decrypt", response_model=UserDecryptResponse, tags=["Relayer"])
async def user_decrypt(
    body: UserDecryptRequest,
    service: DecryptionService = Depends(get_decryption_service),
):
    """Re-encrypt ciphertexts to the requester's session key."""
    try:
        return await service.user_decrypt(body)
    except RelayerRejection as e:
        logger.info(f"User decrypt rejected for {body.user_address}: {e.detail}")
        raise HTTPException(status_code=e.status_code, detail=e.detail)
