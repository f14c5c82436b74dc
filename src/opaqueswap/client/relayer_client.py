"""HTTP client for the relayer.

Transport failures and 5xx answers mean the service is unavailable; 4xx
answers mean it looked at the request and refused it. The two map to
different client errors so callers can tell "try again later" from "you
are not allowed".
"""

import logging
from typing import Optional

import httpx
from pydantic import ValidationError

from opaqueswap.crypto import SealError, seal_value, unseal_value
from opaqueswap.errors import ClientCryptoError, DecryptRejectedError, GatewayUnavailableError
from opaqueswap.fhe.handles import normalize_handle
from opaqueswap.relayer.schemas import (
    HandleContractPair,
    InputProofRequest,
    InputProofResponse,
    NetworkConfigResponse,
    RequestValidity,
    UserDecryptRequest,
    UserDecryptResponse,
)

logger = logging.getLogger(__name__)


class RelayerClient:
    """Async client for the relayer HTTP API."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            base_url: Relayer base URL
            timeout: Per-request timeout in seconds
            transport: Optional transport (ASGI app or mock in tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._network: Optional[NetworkConfigResponse] = None

    async def get_network_config(self, refresh: bool = False) -> NetworkConfigResponse:
        """Fetch (and cache) the network's public parameters."""
        if self._network is None or refresh:
            data = await self._request("GET", "/v1/keyurl")
            try:
                self._network = NetworkConfigResponse.model_validate(data)
            except ValidationError as e:
                raise GatewayUnavailableError(f"Malformed network config: {e}") from e
        return self._network

    async def create_input_proof(
        self, values: list[int], contract_address: str, user_address: str
    ) -> InputProofResponse:
        """Seal values to the network key and register them as inputs.

        Returns:
            Handles (one per value, in order) and the proof binding them
        """
        network = await self.get_network_config()
        request = InputProofRequest(
            contract_address=contract_address,
            user_address=user_address,
            ciphertexts=[seal_value(network.network_public_key, v) for v in values],
        )
        data = await self._request(
            "POST", "/v1/input-proof", json=request.model_dump(), rejection=ClientCryptoError
        )
        try:
            return InputProofResponse.model_validate(data)
        except ValidationError as e:
            raise GatewayUnavailableError(f"Malformed input proof response: {e}") from e

    async def user_decrypt(
        self,
        handle: str,
        contract_address: str,
        private_key: str,
        public_key: str,
        signature: str,
        contract_addresses: list[str],
        user_address: str,
        start_timestamp: int,
        duration_days: int,
    ) -> dict[str, int]:
        """Request re-encryption of a handle and open the result locally.

        The private key stays on this side of the wire; only the public key
        and the signature are sent.

        Returns:
            Mapping of handle to its cleartext value
        """
        network = await self.get_network_config()
        handle = normalize_handle(handle)
        request = UserDecryptRequest(
            handle_contract_pairs=[HandleContractPair(handle=handle, contract_address=contract_address)],
            request_validity=RequestValidity(
                start_timestamp=start_timestamp, duration_days=duration_days
            ),
            contracts_chain_id=network.chain_id,
            contract_addresses=list(contract_addresses),
            user_address=user_address,
            signature=signature,
            public_key=public_key,
        )
        data = await self._request(
            "POST", "/v1/user-decrypt", json=request.model_dump(), rejection=DecryptRejectedError
        )
        try:
            response = UserDecryptResponse.model_validate(data)
        except ValidationError as e:
            raise GatewayUnavailableError(f"Malformed decrypt response: {e}") from e

        values = {}
        for result in response.results:
            try:
                values[normalize_handle(result.handle)] = unseal_value(private_key, result.sealed_value)
            except (SealError, ValueError) as e:
                raise DecryptRejectedError(f"Could not open sealed result: {e}") from e
        if handle not in values:
            raise DecryptRejectedError("Decryption service did not return the requested handle")
        return values

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        rejection: type[ClientCryptoError] = ClientCryptoError,
    ) -> dict:
        try:
            async with httpx.AsyncClient(
                base_url=self.base_url, timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(method, path, json=json)
        except httpx.HTTPError as e:
            logger.warning(f"Relayer {method} {path} failed: {e}")
            raise GatewayUnavailableError(f"Relayer unreachable: {e}") from e

        if response.status_code >= 500:
            logger.warning(f"Relayer {method} {path} returned {response.status_code}")
            raise GatewayUnavailableError(f"Relayer error {response.status_code}")

        if response.status_code >= 400:
            detail = _error_detail(response)
            logger.info(f"Relayer refused {method} {path}: {response.status_code} {detail}")
            if rejection is DecryptRejectedError:
                raise DecryptRejectedError(detail, status_code=response.status_code)
            raise rejection(detail)

        try:
            return response.json()
        except ValueError as e:
            raise GatewayUnavailableError("Relayer returned a non-JSON body") from e


def _error_detail(response: httpx.Response) -> str:
    try:
        detail = response.json().get("detail")
    except (ValueError, AttributeError):
        detail = None
    return str(detail) if detail else f"HTTP {response.status_code}"
