"""Host ledger state: ciphertexts, ACL, balances, operator grants and events."""

from opaqueswap.ledger.database import build_engine, build_session_factory, init_db
from opaqueswap.ledger.models import (
    AclEntry,
    Base,
    Ciphertext,
    ConfidentialBalance,
    ConsumedInput,
    EventLog,
    OperatorGrant,
    TokenSupply,
)
from opaqueswap.ledger.repository import LedgerRepository

__all__ = [
    # Models
    "Base",
    "Ciphertext",
    "AclEntry",
    "ConsumedInput",
    "ConfidentialBalance",
    "TokenSupply",
    "OperatorGrant",
    "EventLog",
    # Database
    "build_engine",
    "build_session_factory",
    "init_db",
    "LedgerRepository",
]
