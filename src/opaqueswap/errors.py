"""Exception hierarchy.

On-chain rejections derive from ContractRevert and always come with a full
rollback of the transaction. Client-side failures derive from
ClientCryptoError and never touch ledger state, so callers can tell the two
apart when reporting to users.
"""

from typing import Optional


class OpaqueSwapError(Exception):
    """Base class for all errors raised by this package."""

    pass


class ConfigurationError(OpaqueSwapError):
    """Invalid construction-time configuration (e.g. a null asset address)."""

    pass


# ======================
# On-chain rejections
# ======================


class ContractRevert(OpaqueSwapError):
    """A contract call was rejected; the transaction had no effect."""

    def __init__(self, contract: Optional[str], reason: str):
        self.contract = contract
        self.reason = reason
        super().__init__(f"{contract or 'contract'} reverted: {reason}")


class UnauthorizedSpender(ContractRevert):
    """Transfer-on-behalf without an unexpired operator grant."""

    pass


class UnauthorizedCaller(ContractRevert):
    """Caller is not permitted to invoke the operation."""

    pass


class InvalidInputProof(ContractRevert):
    """Encrypted input is malformed, mis-bound or replayed."""

    pass


class AclViolation(ContractRevert):
    """A handle was used by an account the ACL does not allow."""

    pass


class InvalidArgument(ContractRevert):
    """A plaintext argument is out of range (zero address, uint48 overflow...)."""

    pass


# ======================
# Client-side failures
# ======================


class ClientCryptoError(OpaqueSwapError):
    """Client-side cryptographic flow failed before or outside any ledger call."""

    pass


class SignatureRejectedError(ClientCryptoError):
    """The wallet refused to sign the authorization payload."""

    pass


class GatewayUnavailableError(ClientCryptoError):
    """The relayer/decryption service could not be reached or failed."""

    pass


class DecryptRejectedError(ClientCryptoError):
    """The decryption service refused the request (ACL, signature, window)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class SessionExpiredError(ClientCryptoError):
    """A decryption session was used outside its validity window or reused."""

    pass


class DecryptBusyError(ClientCryptoError):
    """A decrypt for the same account and asset is already in flight."""

    pass


class DecryptTimeoutError(ClientCryptoError):
    """A decrypt round trip exceeded the caller's timeout."""

    pass
