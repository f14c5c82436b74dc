"""SQLAlchemy models for the host ledger state.

Everything a transaction can change lives here so that a single database
transaction gives all-or-nothing semantics to a contract call.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, BigInteger, DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Ciphertext(Base):
    """A stored ciphertext, addressed by its handle."""

    __tablename__ = "ciphertexts"

    handle: Mapped[str] = mapped_column(String(66), primary_key=True)
    fhe_type: Mapped[int] = mapped_column(Integer, nullable=False)
    payload: Mapped[str] = mapped_column(Text, nullable=False)  # Fernet token under network key
    origin: Mapped[str] = mapped_column(String(32), nullable=False)  # op that produced it
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class AclEntry(Base):
    """Persistent permission for an account to use or decrypt a handle."""

    __tablename__ = "acl_entries"
    __table_args__ = (Index("ix_acl_handle_account", "handle", "account", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    handle: Mapped[str] = mapped_column(String(66), nullable=False)
    account: Mapped[str] = mapped_column(String(42), nullable=False)


class ConsumedInput(Base):
    """An encrypted input that has already been ingested by a contract."""

    __tablename__ = "consumed_inputs"
    __table_args__ = (Index("ix_consumed_proof_handle", "proof_hash", "handle", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    proof_hash: Mapped[str] = mapped_column(String(66), nullable=False)
    handle: Mapped[str] = mapped_column(String(66), nullable=False)
    contract: Mapped[str] = mapped_column(String(42), nullable=False)
    user: Mapped[str] = mapped_column(String(42), nullable=False)
    consumed_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class ConfidentialBalance(Base):
    """The current encrypted balance handle of an account on one token."""

    __tablename__ = "confidential_balances"
    __table_args__ = (Index("ix_balances_token_account", "token", "account", unique=True),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    account: Mapped[str] = mapped_column(String(42), nullable=False)
    handle: Mapped[str] = mapped_column(String(66), nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class TokenSupply(Base):
    """Encrypted total supply of a token."""

    __tablename__ = "token_supplies"

    token: Mapped[str] = mapped_column(String(42), primary_key=True)
    handle: Mapped[str] = mapped_column(String(66), nullable=False)


class OperatorGrant(Base):
    """Time-bounded delegation letting an operator move a holder's funds."""

    __tablename__ = "operator_grants"
    __table_args__ = (
        Index("ix_operator_token_holder_operator", "token", "holder", "operator", unique=True),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    token: Mapped[str] = mapped_column(String(42), nullable=False)
    holder: Mapped[str] = mapped_column(String(42), nullable=False)
    operator: Mapped[str] = mapped_column(String(42), nullable=False)
    expires_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class EventLog(Base):
    """An event emitted by a contract. Fields hold handles and addresses only."""

    __tablename__ = "event_logs"
    __table_args__ = (Index("ix_event_contract_name", "contract", "name"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tx_hash: Mapped[str] = mapped_column(String(66), nullable=False, index=True)
    contract: Mapped[str] = mapped_column(String(42), nullable=False)
    name: Mapped[str] = mapped_column(String(64), nullable=False)
    fields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    block_timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
