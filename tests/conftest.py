"""Pytest configuration and fixtures."""

import os
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from eth_account import Account
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

# Set test environment
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["DEBUG"] = "true"

from opaqueswap.chain.runtime import Chain, ManualClock
from opaqueswap.client.gateway import CryptoGateway
from opaqueswap.client.relayer_client import RelayerClient
from opaqueswap.client.signer import LocalWalletSigner
from opaqueswap.config import Settings
from opaqueswap.contracts.token import ConfidentialToken
from opaqueswap.crypto import seal_value
from opaqueswap.ledger.database import build_engine, build_session_factory, init_db
from opaqueswap.ledger.repository import LedgerRepository
from opaqueswap.relayer.app import create_app
from opaqueswap.relayer.kms import InputService
from opaqueswap.relayer.schemas import InputProofRequest
from opaqueswap.services.dex import Deployment, deploy_opaque_swap

GENESIS = 1_700_000_000


@pytest_asyncio.fixture
async def db_engine():
    """Create in-memory database engine for testing."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for testing."""
    session_factory = build_session_factory(db_engine)

    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def ledger_repo(db_session: AsyncSession) -> LedgerRepository:
    """Create ledger repository for testing."""
    return LedgerRepository(db_session)


@pytest.fixture
def settings() -> Settings:
    """Settings for an isolated in-memory chain."""
    return Settings(database_url="sqlite+aiosqlite:///:memory:", chain_id=31337)


@pytest.fixture
def clock() -> ManualClock:
    """Block clock starting at a fixed timestamp."""
    return ManualClock(GENESIS)


@pytest_asyncio.fixture
async def chain(settings: Settings, clock: ManualClock) -> AsyncGenerator[Chain, None]:
    """Fresh chain with ephemeral network keys."""
    chain = await Chain.create(settings, clock=clock)
    yield chain
    await chain.close()


@pytest.fixture
def deployer():
    return Account.create()


@pytest.fixture
def alice():
    return Account.create()


@pytest.fixture
def bob():
    return Account.create()


@pytest_asyncio.fixture
async def system(chain: Chain, deployer) -> Deployment:
    """wETH, wUSDT and the swap engine between them."""
    return await deploy_opaque_swap(chain, deployer.address)


@pytest_asyncio.fixture
async def encrypt(chain: Chain):
    """Register an encrypted input bound to (contract, user).

    Returns a coroutine function: ``await encrypt(value, contract, user)``
    yielding ``(handle, input_proof)``.
    """
    service = InputService(chain)

    async def _encrypt(value: int, contract: str, user: str) -> tuple[str, str]:
        response = await service.register(
            InputProofRequest(
                contract_address=contract,
                user_address=user,
                ciphertexts=[seal_value(chain.keys.public_key, value)],
            )
        )
        return response.handles[0], response.input_proof

    return _encrypt


@pytest_asyncio.fixture
async def reveal(chain: Chain):
    """Read a cleartext value straight from the coprocessor store.

    ``await reveal(handle)`` or ``await reveal(token, account)`` for balances.
    """

    async def _reveal(target, account: Optional[str] = None) -> Optional[int]:
        if isinstance(target, ConfidentialToken):
            handle = await chain.call(target.balance_of, account)
        else:
            handle = target
        async with chain.session() as repo:
            return await chain.fhe.reveal(repo, handle)

    return _reveal


@pytest.fixture
def relayer_app(chain: Chain, settings: Settings):
    """Relayer application bound to the test chain."""
    return create_app(chain=chain, settings=settings)


@pytest_asyncio.fixture
async def client(relayer_app) -> AsyncGenerator[AsyncClient, None]:
    """Create async test client."""
    transport = ASGITransport(app=relayer_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def relayer_client(relayer_app) -> RelayerClient:
    """Relayer client talking to the app in-process."""
    return RelayerClient("http://test", timeout=5.0, transport=ASGITransport(app=relayer_app))


@pytest.fixture
def gateway(chain: Chain, relayer_client: RelayerClient) -> CryptoGateway:
    """Gateway sharing the chain clock."""
    return CryptoGateway(relayer_client, clock=chain.now, duration_days=10, timeout=5.0)


@pytest.fixture
def alice_signer(alice) -> LocalWalletSigner:
    return LocalWalletSigner(alice)


@pytest.fixture
def bob_signer(bob) -> LocalWalletSigner:
    return LocalWalletSigner(bob)
