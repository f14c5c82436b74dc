"""Repository for host ledger state."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from opaqueswap.ledger.models import (
    AclEntry,
    Ciphertext,
    ConfidentialBalance,
    ConsumedInput,
    EventLog,
    OperatorGrant,
    TokenSupply,
)


class LedgerRepository:
    """Repository for all ledger-related database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # Ciphertext operations
    async def get_ciphertext(self, handle: str) -> Optional[Ciphertext]:
        """Get a stored ciphertext by handle."""
        return await self.session.get(Ciphertext, handle)

    async def add_ciphertext(self, handle: str, fhe_type: int, payload: str, origin: str) -> Ciphertext:
        """Store a new ciphertext."""
        ciphertext = Ciphertext(handle=handle, fhe_type=fhe_type, payload=payload, origin=origin)
        self.session.add(ciphertext)
        await self.session.flush()
        return ciphertext

    # ACL operations
    async def is_allowed(self, handle: str, account: str) -> bool:
        """Check for a persistent permission."""
        stmt = select(AclEntry.id).where(AclEntry.handle == handle, AclEntry.account == account)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def allow(self, handle: str, account: str) -> None:
        """Grant a persistent permission (idempotent)."""
        if await self.is_allowed(handle, account):
            return
        self.session.add(AclEntry(handle=handle, account=account))
        await self.session.flush()

    # Input operations
    async def is_input_consumed(self, proof_hash: str, handle: str) -> bool:
        """Check whether an input handle of a proof was already ingested."""
        stmt = select(ConsumedInput.id).where(
            ConsumedInput.proof_hash == proof_hash, ConsumedInput.handle == handle
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def consume_input(
        self, proof_hash: str, handle: str, contract: str, user: str, timestamp: int
    ) -> ConsumedInput:
        """Record that an input handle was ingested."""
        record = ConsumedInput(
            proof_hash=proof_hash,
            handle=handle,
            contract=contract,
            user=user,
            consumed_at=timestamp,
        )
        self.session.add(record)
        await self.session.flush()
        return record

    # Balance operations
    async def get_balance(self, token: str, account: str) -> Optional[ConfidentialBalance]:
        """Get the balance record of an account on a token."""
        stmt = select(ConfidentialBalance).where(
            ConfidentialBalance.token == token, ConfidentialBalance.account == account
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def set_balance(self, token: str, account: str, handle: str, timestamp: int) -> ConfidentialBalance:
        """Point an account's balance at a new handle."""
        balance = await self.get_balance(token, account)
        if balance is None:
            balance = ConfidentialBalance(
                token=token, account=account, handle=handle, updated_at=timestamp
            )
            self.session.add(balance)
        else:
            balance.handle = handle
            balance.updated_at = timestamp
        await self.session.flush()
        return balance

    # Supply operations
    async def get_supply(self, token: str) -> Optional[TokenSupply]:
        """Get the encrypted supply record of a token."""
        return await self.session.get(TokenSupply, token)

    async def set_supply(self, token: str, handle: str) -> TokenSupply:
        """Point a token's supply at a new handle."""
        supply = await self.get_supply(token)
        if supply is None:
            supply = TokenSupply(token=token, handle=handle)
            self.session.add(supply)
        else:
            supply.handle = handle
        await self.session.flush()
        return supply

    # Operator operations
    async def get_operator_grant(self, token: str, holder: str, operator: str) -> Optional[OperatorGrant]:
        """Get the grant a holder gave an operator on a token."""
        stmt = select(OperatorGrant).where(
            OperatorGrant.token == token,
            OperatorGrant.holder == holder,
            OperatorGrant.operator == operator,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def set_operator_grant(
        self, token: str, holder: str, operator: str, expires_at: int, timestamp: int
    ) -> OperatorGrant:
        """Create or overwrite a grant."""
        grant = await self.get_operator_grant(token, holder, operator)
        if grant is None:
            grant = OperatorGrant(
                token=token,
                holder=holder,
                operator=operator,
                expires_at=expires_at,
                updated_at=timestamp,
            )
            self.session.add(grant)
        else:
            grant.expires_at = expires_at
            grant.updated_at = timestamp
        await self.session.flush()
        return grant

    # Event operations
    async def add_event(
        self, tx_hash: str, contract: str, name: str, fields: dict, timestamp: int
    ) -> EventLog:
        """Append an event to the log."""
        event = EventLog(
            tx_hash=tx_hash,
            contract=contract,
            name=name,
            fields=fields,
            block_timestamp=timestamp,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def get_events(
        self,
        contract: Optional[str] = None,
        name: Optional[str] = None,
        tx_hash: Optional[str] = None,
    ) -> list[EventLog]:
        """Get events in emission order, optionally filtered."""
        stmt = select(EventLog).order_by(EventLog.id)
        if contract is not None:
            stmt = stmt.where(EventLog.contract == contract)
        if name is not None:
            stmt = stmt.where(EventLog.name == name)
        if tx_hash is not None:
            stmt = stmt.where(EventLog.tx_hash == tx_hash)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
