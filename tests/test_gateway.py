"""Tests for the client-side gateway, sessions and relayer client."""

import asyncio

import httpx
import pytest
import pytest_asyncio

from opaqueswap.client.gateway import CryptoGateway, DecryptStatus
from opaqueswap.client.relayer_client import RelayerClient
from opaqueswap.client.session import DecryptionSession
from opaqueswap.client.signer import LocalWalletSigner, WalletSigner
from opaqueswap.client.single_flight import InFlightRegistry
from opaqueswap.errors import (
    DecryptBusyError,
    DecryptRejectedError,
    DecryptTimeoutError,
    GatewayUnavailableError,
    SessionExpiredError,
    SignatureRejectedError,
)
from opaqueswap.fhe.handles import ZERO_HANDLE

DAY = 86400
HANDLE = "0x" + "ab" * 32


class GatedSigner(WalletSigner):
    """Signer that waits for a gate before signing."""

    def __init__(self, inner: LocalWalletSigner):
        self.inner = inner
        self.gate = asyncio.Event()
        self.waiting = asyncio.Event()

    @property
    def address(self) -> str:
        return self.inner.address

    async def sign_typed_data(self, typed_data: dict) -> str:
        self.waiting.set()
        await self.gate.wait()
        return await self.inner.sign_typed_data(typed_data)


class RefusingSigner(WalletSigner):
    """Signer whose user declines every request."""

    def __init__(self, address: str):
        self._address = address

    @property
    def address(self) -> str:
        return self._address

    async def sign_typed_data(self, typed_data: dict) -> str:
        raise SignatureRejectedError("User rejected the request")


def network_handler(chain, decrypt_response):
    """Mock relayer answering /v1/keyurl from the chain and decrypts with a fixed response."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        if request.url.path == "/v1/keyurl":
            return httpx.Response(
                200,
                json={
                    "chain_id": chain.chain_id,
                    "network_public_key": chain.keys.public_key,
                    "input_verification_address": chain.input_verification_address,
                    "decryption_address": chain.decryption_address,
                    "coprocessor_signer": chain.keys.coprocessor_address,
                },
            )
        return decrypt_response(request)

    return handler, calls


@pytest_asyncio.fixture
async def alice_balance(chain, system, alice):
    """Alice holds 10 wETH; returns her balance handle."""
    await chain.send(alice.address, system.token_a.mint, alice.address, 10)
    return await chain.call(system.token_a.balance_of, alice.address)


class TestEncrypt:
    """Tests for encrypt-for-submission."""

    @pytest.mark.asyncio
    async def test_encrypted_amount_drives_swap(self, chain, system, alice, gateway, reveal):
        token_a, token_b, swap = system.token_a, system.token_b, system.swap
        await chain.send(alice.address, token_a.mint, alice.address, 10)
        await chain.send(alice.address, token_b.mint, swap.address, 10_000)
        await chain.send(alice.address, token_a.set_operator, swap.address, chain.now() + 3600)

        encrypted = await gateway.encrypt_amount(1, swap.address, alice.address)
        await chain.send(alice.address, swap.swap_forward, encrypted.handle, encrypted.input_proof)

        assert await reveal(token_b, alice.address) == 3100

    @pytest.mark.asyncio
    async def test_out_of_range_amount(self, gateway, system, alice):
        with pytest.raises(ValueError):
            await gateway.encrypt_amount(2**64, system.swap.address, alice.address)
        with pytest.raises(ValueError):
            await gateway.encrypt_amount(-1, system.swap.address, alice.address)


class TestUserDecrypt:
    """Tests for the authorized decrypt handshake."""

    @pytest.mark.asyncio
    async def test_owner_decrypts(self, gateway, system, alice_signer, alice_balance):
        result = await gateway.user_decrypt(alice_balance, system.token_a.address, alice_signer)

        assert result.status is DecryptStatus.DECRYPTED
        assert result.available
        assert result.value == 10

    @pytest.mark.asyncio
    async def test_zero_handle_makes_no_call(self, chain, system, alice_signer):
        """The uninitialized handle is answered locally."""
        handler, calls = network_handler(chain, lambda request: httpx.Response(500))
        gateway = CryptoGateway(
            RelayerClient("http://test", transport=httpx.MockTransport(handler)), clock=chain.now
        )

        result = await gateway.user_decrypt(ZERO_HANDLE, system.token_a.address, alice_signer)

        assert result.status is DecryptStatus.NOT_AVAILABLE
        assert result.value is None
        assert calls == []

    @pytest.mark.asyncio
    async def test_other_account_rejected(self, gateway, system, bob_signer, alice_balance):
        with pytest.raises(DecryptRejectedError) as exc_info:
            await gateway.user_decrypt(alice_balance, system.token_a.address, bob_signer)

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_signature_refused(self, gateway, system, alice, alice_balance):
        with pytest.raises(SignatureRejectedError):
            await gateway.user_decrypt(alice_balance, system.token_a.address, RefusingSigner(alice.address))

        assert not gateway.is_busy(alice.address, system.token_a.address)

    @pytest.mark.asyncio
    async def test_single_flight(self, gateway, system, alice_signer, alice_balance):
        """A second decrypt for the same account and asset is rejected while one is running."""
        token_a, token_b = system.token_a, system.token_b
        signer = GatedSigner(alice_signer)
        first = asyncio.create_task(gateway.user_decrypt(alice_balance, token_a.address, signer))
        await signer.waiting.wait()

        assert gateway.is_busy(signer.address, token_a.address)
        assert not gateway.is_busy(signer.address, token_b.address)
        with pytest.raises(DecryptBusyError):
            await gateway.user_decrypt(alice_balance, token_a.address, signer)

        signer.gate.set()
        result = await first

        assert result.value == 10
        assert not gateway.is_busy(signer.address, token_a.address)

    @pytest.mark.asyncio
    async def test_timeout_releases_slot(self, gateway, system, alice_signer, alice_balance):
        signer = GatedSigner(alice_signer)

        with pytest.raises(DecryptTimeoutError):
            await gateway.user_decrypt(alice_balance, system.token_a.address, signer, timeout=0.05)

        assert not gateway.is_busy(signer.address, system.token_a.address)

    @pytest.mark.asyncio
    async def test_gateway_unreachable(self, chain, system, alice_signer):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        gateway = CryptoGateway(
            RelayerClient("http://test", transport=httpx.MockTransport(handler)), clock=chain.now
        )

        with pytest.raises(GatewayUnavailableError):
            await gateway.user_decrypt(HANDLE, system.token_a.address, alice_signer)

    @pytest.mark.asyncio
    async def test_service_fault_is_unavailable(self, chain, system, alice_signer):
        """5xx answers are service failures, not rejections."""
        handler, calls = network_handler(
            chain, lambda request: httpx.Response(503, json={"detail": "KMS offline"})
        )
        gateway = CryptoGateway(
            RelayerClient("http://test", transport=httpx.MockTransport(handler)), clock=chain.now
        )

        with pytest.raises(GatewayUnavailableError):
            await gateway.user_decrypt(HANDLE, system.token_a.address, alice_signer)

        assert calls == ["/v1/keyurl", "/v1/user-decrypt"]

    @pytest.mark.asyncio
    async def test_rejection_carries_detail(self, chain, system, alice_signer):
        handler, _ = network_handler(
            chain, lambda request: httpx.Response(403, json={"detail": "not allowed"})
        )
        gateway = CryptoGateway(
            RelayerClient("http://test", transport=httpx.MockTransport(handler)), clock=chain.now
        )

        with pytest.raises(DecryptRejectedError, match="not allowed"):
            await gateway.user_decrypt(HANDLE, system.token_a.address, alice_signer)

    @pytest.mark.asyncio
    async def test_private_key_never_sent(self, chain, system, alice_signer):
        """The wire request carries the public key and signature only."""
        bodies = []

        def capture(request: httpx.Request) -> httpx.Response:
            bodies.append(request.content.decode())
            return httpx.Response(403, json={"detail": "stop"})

        handler, _ = network_handler(chain, capture)
        gateway = CryptoGateway(
            RelayerClient("http://test", transport=httpx.MockTransport(handler)), clock=chain.now
        )

        with pytest.raises(DecryptRejectedError):
            await gateway.user_decrypt(HANDLE, system.token_a.address, alice_signer)

        assert "private" not in bodies[0]
        assert '"signature"' in bodies[0]
        assert '"0x' not in bodies[0].split('"signature":')[1][:4]


class TestDecryptionSession:
    """Tests for the ephemeral session state."""

    def make_session(self, alice, system, start=1_700_000_000):
        return DecryptionSession.open(HANDLE, system.token_a.address, alice.address, start, 10)

    @pytest.mark.asyncio
    async def test_window(self, alice, system):
        session = self.make_session(alice, system)

        assert not session.is_expired(1_700_000_000)
        assert not session.is_expired(1_700_000_000 + 10 * DAY - 1)
        assert session.is_expired(1_700_000_000 + 10 * DAY)
        assert session.is_expired(1_700_000_000 - 1)

    @pytest.mark.asyncio
    async def test_scope_is_single_contract(self, alice, system):
        session = self.make_session(alice, system)

        assert session.contract_addresses == [system.token_a.address]

    @pytest.mark.asyncio
    async def test_bound_to_one_handle(self, alice, system):
        session = self.make_session(alice, system)

        session.ensure_usable(HANDLE, 1_700_000_000)
        with pytest.raises(SessionExpiredError):
            session.ensure_usable("0x" + "cd" * 32, 1_700_000_000)

    @pytest.mark.asyncio
    async def test_expired_session_unusable(self, alice, system):
        session = self.make_session(alice, system)

        with pytest.raises(SessionExpiredError):
            session.ensure_usable(HANDLE, 1_700_000_000 + 10 * DAY)

    @pytest.mark.asyncio
    async def test_invalidate_drops_private_key(self, alice, system):
        session = self.make_session(alice, system)
        private_key = session.private_key

        session.invalidate()

        assert session.keypair is None
        with pytest.raises(SessionExpiredError):
            session.private_key
        with pytest.raises(SessionExpiredError):
            session.ensure_usable(HANDLE, 1_700_000_000)
        assert private_key not in repr(session)

    @pytest.mark.asyncio
    async def test_repr_redacts_private_key(self, alice, system):
        session = self.make_session(alice, system)

        assert session.private_key not in repr(session)
        assert "redacted" in repr(session)


class TestInFlightRegistry:
    """Tests for the single-flight registry."""

    @pytest.mark.asyncio
    async def test_claim_and_release(self, alice, system):
        registry = InFlightRegistry()

        async with registry.claim(alice.address, system.token_a.address):
            assert registry.is_busy(alice.address.lower(), system.token_a.address)
            with pytest.raises(DecryptBusyError):
                async with registry.claim(alice.address, system.token_a.address):
                    pass

        assert not registry.is_busy(alice.address, system.token_a.address)

    @pytest.mark.asyncio
    async def test_release_on_error(self, alice, system):
        registry = InFlightRegistry()

        with pytest.raises(RuntimeError):
            async with registry.claim(alice.address, system.token_a.address):
                raise RuntimeError("boom")

        assert not registry.is_busy(alice.address, system.token_a.address)
