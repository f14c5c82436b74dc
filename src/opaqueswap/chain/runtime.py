"""Sequential, atomic execution runtime for confidential contracts.

Every state-changing call runs inside one database transaction. Contract
code raises on failure and the runtime rolls the whole transaction back:
balances, grants, ciphertexts, consumed inputs and events alike. Calls are
serialized by a sequencer lock, so no contract needs its own locking.

Example:
    chain = await Chain.create()
    token = await chain.deploy(ConfidentialToken, deployer, "Wrapped ETH", "wETH")
    receipt = await chain.send(alice, token.mint, alice, 10_000_000)
    handle = await chain.call(token.balance_of, alice)
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Callable, Optional, TypeVar

from eth_utils import keccak, to_hex
from sqlalchemy.ext.asyncio import AsyncEngine

from opaqueswap.addresses import ZERO_ADDRESS, contract_address, normalize_address, system_address
from opaqueswap.config import Settings, get_settings
from opaqueswap.fhe.executor import FheExecutor
from opaqueswap.fhe.input_verifier import InputVerifier
from opaqueswap.fhe.keys import NetworkKeys
from opaqueswap.ledger.database import build_engine, build_session_factory, init_db
from opaqueswap.ledger.models import EventLog
from opaqueswap.ledger.repository import LedgerRepository

logger = logging.getLogger(__name__)

C = TypeVar("C", bound="Contract")


class ManualClock:
    """Settable clock for tests and simulations."""

    def __init__(self, start: Optional[int] = None):
        self._now = int(start if start is not None else time.time())

    def __call__(self) -> int:
        return self._now

    def advance(self, seconds: int) -> int:
        """Move time forward and return the new timestamp."""
        self._now += int(seconds)
        return self._now

    def set(self, timestamp: int) -> None:
        """Jump to an absolute timestamp."""
        self._now = int(timestamp)


@dataclass(frozen=True)
class Event:
    """An event emitted during a transaction."""

    contract: str
    name: str
    fields: dict[str, Any]


@dataclass
class Transaction:
    """State shared by every call frame of one transaction."""

    tx_hash: str
    origin: str
    timestamp: int
    repo: LedgerRepository
    transient: set[tuple[str, str]] = field(default_factory=set)
    events: list[Event] = field(default_factory=list)
    _sequence: int = 0

    def next_sequence(self) -> int:
        """Monotonic counter used to derive unique result handles."""
        self._sequence += 1
        return self._sequence


class CallContext:
    """One call frame: who is calling (sender) and which contract runs (this)."""

    def __init__(self, chain: "Chain", tx: Transaction, sender: str, this: str):
        self.chain = chain
        self.tx = tx
        self.sender = sender
        self.this = this

    @property
    def timestamp(self) -> int:
        """Block timestamp of the transaction."""
        return self.tx.timestamp

    @property
    def repo(self) -> LedgerRepository:
        return self.tx.repo

    @property
    def fhe(self) -> FheExecutor:
        return self.chain.fhe

    def call(self, contract: "Contract") -> "CallContext":
        """Open a nested frame in which this contract is the sender."""
        return CallContext(self.chain, self.tx, sender=self.this, this=contract.address)

    async def emit(self, name: str, **fields: Any) -> Event:
        """Record an event from the executing contract."""
        event = Event(contract=self.this, name=name, fields=fields)
        await self.tx.repo.add_event(self.tx.tx_hash, self.this, name, fields, self.timestamp)
        self.tx.events.append(event)
        return event


@dataclass
class Receipt:
    """Outcome of a committed transaction."""

    tx_hash: str
    result: Any
    events: list[Event]
    timestamp: int

    def events_named(self, name: str) -> list[Event]:
        """Filter events by name."""
        return [e for e in self.events if e.name == name]


class Contract:
    """Base class for contracts hosted by a Chain.

    Immutable configuration lives on the instance; mutable state lives in the
    ledger and is reached through the CallContext passed to every method.
    """

    def __init__(self, address: str):
        self.address = address

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.address})"


class Chain:
    """In-process host platform running confidential contracts."""

    def __init__(
        self,
        engine: AsyncEngine,
        keys: NetworkKeys,
        chain_id: int,
        clock: Optional[Callable[[], int]] = None,
        input_verification_address: Optional[str] = None,
        decryption_address: Optional[str] = None,
    ):
        self.engine = engine
        self.keys = keys
        self.chain_id = chain_id
        self.clock = clock or (lambda: int(time.time()))
        self.input_verification_address = normalize_address(
            input_verification_address or system_address("input-verification")
        )
        self.decryption_address = normalize_address(
            decryption_address or system_address("decryption")
        )
        self.input_verifier = InputVerifier(keys, chain_id, self.input_verification_address)
        self.fhe = FheExecutor(keys.vault(), self.input_verifier)

        self._session_factory = build_session_factory(engine)
        self._sequencer = asyncio.Lock()
        self._contracts: dict[str, Contract] = {}
        self._deploy_nonces: dict[str, int] = {}
        self._tx_count = 0

    @classmethod
    async def create(
        cls,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], int]] = None,
        keys: Optional[NetworkKeys] = None,
        engine: Optional[AsyncEngine] = None,
    ) -> "Chain":
        """Build a chain from settings and create its tables."""
        settings = settings or get_settings()
        engine = engine or build_engine(settings.database_url)
        await init_db(engine)
        chain = cls(
            engine,
            keys or NetworkKeys.from_settings(settings),
            chain_id=settings.chain_id,
            clock=clock,
            input_verification_address=settings.input_verification_address,
            decryption_address=settings.decryption_address,
        )
        logger.info(f"Chain {settings.chain_id} ready (coprocessor {chain.keys.coprocessor_address})")
        return chain

    def now(self) -> int:
        """Current block time in seconds."""
        return int(self.clock())

    # ======================
    # Contracts
    # ======================

    async def deploy(self, contract_cls: type[C], deployer: str, *args: Any, **kwargs: Any) -> C:
        """Instantiate a contract at a deterministic address.

        Constructor errors propagate before anything is registered.
        """
        deployer = normalize_address(deployer)
        nonce = self._deploy_nonces.get(deployer, 0)
        address = contract_address(deployer, nonce)
        contract = contract_cls(address, *args, **kwargs)
        self._deploy_nonces[deployer] = nonce + 1
        self._contracts[address] = contract
        logger.info(f"Deployed {contract_cls.__name__} at {address}")
        return contract

    def contract_at(self, address: str) -> Contract:
        """Look up a deployed contract."""
        address = normalize_address(address)
        if address not in self._contracts:
            raise KeyError(f"No contract at {address}")
        return self._contracts[address]

    # ======================
    # Execution
    # ======================

    @asynccontextmanager
    async def transaction(self, origin: str) -> AsyncGenerator[Transaction, None]:
        """Run a block of work atomically; any exception rolls it back."""
        origin = normalize_address(origin)
        async with self._sequencer:
            self._tx_count += 1
            timestamp = self.now()
            tx_hash = to_hex(keccak(f"{origin}:{self._tx_count}:{timestamp}".encode()))
            async with self._session_factory() as session:
                tx = Transaction(
                    tx_hash=tx_hash,
                    origin=origin,
                    timestamp=timestamp,
                    repo=LedgerRepository(session),
                )
                try:
                    async with session.begin():
                        yield tx
                except Exception as e:
                    logger.info(f"Transaction {tx_hash[:10]} from {origin} rolled back: {e}")
                    raise

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[LedgerRepository, None]:
        """Sequenced, committed access to ledger state for platform services."""
        async with self._sequencer:
            async with self._session_factory() as session:
                async with session.begin():
                    yield LedgerRepository(session)

    async def send(self, sender: str, method: Callable, *args: Any, **kwargs: Any) -> Receipt:
        """Submit a state-changing call from an account.

        Args:
            sender: Account submitting the call (becomes ctx.sender)
            method: Bound contract method taking a CallContext first

        Returns:
            Receipt with the method's return value and emitted events
        """
        contract: Contract = method.__self__
        async with self.transaction(sender) as tx:
            ctx = CallContext(self, tx, sender=tx.origin, this=contract.address)
            result = await method(ctx, *args, **kwargs)
        logger.debug(f"Transaction {tx.tx_hash[:10]} {method.__name__} on {contract.address} committed")
        return Receipt(tx.tx_hash, result, list(tx.events), tx.timestamp)

    async def call(self, method: Callable, *args: Any, sender: str = ZERO_ADDRESS, **kwargs: Any) -> Any:
        """Evaluate a read-only method; nothing it writes is kept."""
        contract: Contract = method.__self__
        sender = normalize_address(sender)
        async with self._sequencer:
            async with self._session_factory() as session:
                tx = Transaction(
                    tx_hash="0x" + "00" * 32,
                    origin=sender,
                    timestamp=self.now(),
                    repo=LedgerRepository(session),
                )
                ctx = CallContext(self, tx, sender=sender, this=contract.address)
                try:
                    return await method(ctx, *args, **kwargs)
                finally:
                    await session.rollback()

    async def get_logs(
        self,
        contract: Optional[str] = None,
        name: Optional[str] = None,
        tx_hash: Optional[str] = None,
    ) -> list[EventLog]:
        """Read committed events."""
        async with self.session() as repo:
            return await repo.get_events(
                contract=normalize_address(contract) if contract else None,
                name=name,
                tx_hash=tx_hash,
            )

    async def close(self) -> None:
        """Dispose of the database engine."""
        await self.engine.dispose()
