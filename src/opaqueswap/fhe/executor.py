"""FHE coprocessor: homomorphic operations on ciphertext handles.

Contracts only ever hold handles. The executor resolves operands from the
ciphertext store, evaluates the operation under the network key and stores
the result under a fresh handle. Cleartext never leaves this module except
through ``reveal``, which only the decryption service calls.

Access control follows the ACL rules of the platform:

- a contract may operate on a handle only if it is allowed on it;
- results are transiently allowed to the contract that produced them;
- transient permissions last for one transaction, persistent ones forever;
- the zero handle is uninitialized and evaluates as encrypted zero.
"""

import logging
from typing import TYPE_CHECKING, Optional

from opaqueswap.crypto import UINT64_MAX, CiphertextVault
from opaqueswap.errors import AclViolation, InvalidArgument, InvalidInputProof
from opaqueswap.fhe.handles import FheType, derive_handle, is_zero_handle, normalize_handle
from opaqueswap.ledger.repository import LedgerRepository

if TYPE_CHECKING:
    from opaqueswap.chain.runtime import CallContext
    from opaqueswap.fhe.input_verifier import InputVerifier

logger = logging.getLogger(__name__)

_MODULUS = UINT64_MAX + 1


class FheExecutor:
    """Evaluates encrypted arithmetic and enforces handle permissions."""

    def __init__(self, vault: CiphertextVault, input_verifier: "InputVerifier"):
        self._vault = vault
        self.input_verifier = input_verifier

    # ======================
    # ACL
    # ======================

    async def is_allowed(self, ctx: "CallContext", handle: str, account: str) -> bool:
        """Check whether an account may use a handle in this transaction."""
        handle = normalize_handle(handle)
        if (handle, account) in ctx.tx.transient:
            return True
        return await ctx.tx.repo.is_allowed(handle, account)

    async def allow(self, ctx: "CallContext", handle: str, account: str) -> None:
        """Persistently allow an account on a handle the caller holds."""
        handle = await self._require_allowed(ctx, handle)
        await ctx.tx.repo.allow(handle, account)

    async def allow_this(self, ctx: "CallContext", handle: str) -> None:
        """Persistently allow the executing contract on a handle."""
        await self.allow(ctx, handle, ctx.this)

    async def allow_transient(self, ctx: "CallContext", handle: str, account: str) -> None:
        """Allow an account on a handle for the rest of this transaction."""
        handle = await self._require_allowed(ctx, handle)
        ctx.tx.transient.add((handle, account))

    # ======================
    # Inputs
    # ======================

    async def from_external(self, ctx: "CallContext", handle: str, input_proof: str) -> str:
        """Ingest an encrypted input bound to (executing contract, sender).

        Raises:
            InvalidInputProof: If the proof is malformed, mis-bound or replayed
        """
        handle = await self.input_verifier.verify(ctx, handle, input_proof)
        if await ctx.tx.repo.get_ciphertext(handle) is None:
            raise InvalidInputProof(ctx.this, f"Unknown input ciphertext {handle}")
        ctx.tx.transient.add((handle, ctx.this))
        return handle

    async def store_input(self, repo: LedgerRepository, value: int, seed: bytes) -> str:
        """Register a verified client input (coprocessor side)."""
        if not 0 <= value <= UINT64_MAX:
            raise ValueError("Input out of uint64 range")
        handle = derive_handle(b"input:" + seed, FheType.EUINT64)
        await repo.add_ciphertext(handle, int(FheType.EUINT64), self._vault.encrypt(value), "input")
        return handle

    # ======================
    # Operations
    # ======================

    async def as_euint64(self, ctx: "CallContext", value: int) -> str:
        """Trivially encrypt a plaintext constant."""
        if not 0 <= value <= UINT64_MAX:
            raise InvalidArgument(ctx.this, f"Value out of uint64 range: {value}")
        return await self._produce(ctx, value, FheType.EUINT64, "trivial", [])

    async def add(self, ctx: "CallContext", a: str, b: str) -> str:
        """Wrapping addition."""
        x, y = await self._operand(ctx, a), await self._operand(ctx, b)
        return await self._produce(ctx, (x + y) % _MODULUS, FheType.EUINT64, "add", [a, b])

    async def sub(self, ctx: "CallContext", a: str, b: str) -> str:
        """Wrapping subtraction."""
        x, y = await self._operand(ctx, a), await self._operand(ctx, b)
        return await self._produce(ctx, (x - y) % _MODULUS, FheType.EUINT64, "sub", [a, b])

    async def mul_scalar(self, ctx: "CallContext", a: str, scalar: int) -> str:
        """Wrapping multiplication by a plaintext constant."""
        if scalar < 0:
            raise InvalidArgument(ctx.this, "Scalar must be non-negative")
        x = await self._operand(ctx, a)
        return await self._produce(
            ctx, (x * scalar) % _MODULUS, FheType.EUINT64, f"mul:{scalar}", [a]
        )

    async def div_scalar(self, ctx: "CallContext", a: str, scalar: int) -> str:
        """Floor division by a plaintext constant."""
        if scalar <= 0:
            raise InvalidArgument(ctx.this, "Division by zero")
        x = await self._operand(ctx, a)
        return await self._produce(ctx, x // scalar, FheType.EUINT64, f"div:{scalar}", [a])

    async def ge(self, ctx: "CallContext", a: str, b: str) -> str:
        """Encrypted a >= b."""
        x, y = await self._operand(ctx, a), await self._operand(ctx, b)
        return await self._produce(ctx, int(x >= y), FheType.EBOOL, "ge", [a, b])

    async def select(self, ctx: "CallContext", condition: str, if_true: str, if_false: str) -> str:
        """Encrypted ternary."""
        c = await self._operand(ctx, condition)
        x, y = await self._operand(ctx, if_true), await self._operand(ctx, if_false)
        return await self._produce(
            ctx, x if c else y, FheType.EUINT64, "select", [condition, if_true, if_false]
        )

    # ======================
    # Decryption service side
    # ======================

    async def reveal(self, repo: LedgerRepository, handle: str) -> Optional[int]:
        """Decrypt a stored ciphertext under the network key.

        Returns None for unknown handles and 0 for the zero handle.
        """
        handle = normalize_handle(handle)
        if is_zero_handle(handle):
            return 0
        ciphertext = await repo.get_ciphertext(handle)
        if ciphertext is None:
            return None
        return self._vault.decrypt(ciphertext.payload)

    # ======================
    # Internal
    # ======================

    async def _require_allowed(self, ctx: "CallContext", handle: str) -> str:
        handle = normalize_handle(handle)
        if is_zero_handle(handle):
            return handle
        if not await self.is_allowed(ctx, handle, ctx.this):
            raise AclViolation(ctx.this, f"{ctx.this} is not allowed on handle {handle}")
        return handle

    async def _operand(self, ctx: "CallContext", handle: str) -> int:
        handle = await self._require_allowed(ctx, handle)
        if is_zero_handle(handle):
            return 0
        ciphertext = await ctx.tx.repo.get_ciphertext(handle)
        if ciphertext is None:
            raise AclViolation(ctx.this, f"Unknown handle {handle}")
        return self._vault.decrypt(ciphertext.payload)

    async def _produce(
        self, ctx: "CallContext", value: int, fhe_type: FheType, op: str, inputs: list[str]
    ) -> str:
        seed = "|".join([ctx.tx.tx_hash, str(ctx.tx.next_sequence()), op, *inputs]).encode()
        handle = derive_handle(seed, fhe_type)
        await ctx.tx.repo.add_ciphertext(handle, int(fhe_type), self._vault.encrypt(value), op)
        ctx.tx.transient.add((handle, ctx.this))
        logger.debug(f"{op} -> {handle[:18]}... for {ctx.this}")
        return handle
