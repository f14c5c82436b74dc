"""Single-flight guard for decrypt requests.

At most one decrypt may be outstanding per (account, asset). A second
request while one is in flight is rejected immediately instead of queued.
"""

import logging
from contextlib import asynccontextmanager

from opaqueswap.addresses import normalize_address
from opaqueswap.errors import DecryptBusyError

logger = logging.getLogger(__name__)


class InFlightRegistry:
    """Tracks which (account, asset) pairs have a decrypt outstanding.

    Example:
        registry = InFlightRegistry()
        async with registry.claim(account, token):
            # Exactly one decrypt for this pair runs here
            ...
    """

    def __init__(self):
        self._in_flight: set[tuple[str, str]] = set()

    def is_busy(self, account: str, asset: str) -> bool:
        """Check whether a decrypt is outstanding for the pair."""
        return self._key(account, asset) in self._in_flight

    @asynccontextmanager
    async def claim(self, account: str, asset: str):
        """Hold the pair for the duration of the block.

        Raises:
            DecryptBusyError: If the pair is already claimed
        """
        key = self._key(account, asset)
        if key in self._in_flight:
            logger.debug(f"Decrypt busy for {key[0]} on {key[1]}")
            raise DecryptBusyError(f"A decrypt for {key[0]} on {key[1]} is already in progress")

        self._in_flight.add(key)
        try:
            yield
        finally:
            self._in_flight.discard(key)

    def clear(self) -> None:
        """Forget all claims (useful for testing)."""
        self._in_flight.clear()

    @staticmethod
    def _key(account: str, asset: str) -> tuple[str, str]:
        return normalize_address(account), normalize_address(asset)
