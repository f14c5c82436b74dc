"""Client-facing services."""

from opaqueswap.services.dex import (
    AccountSnapshot,
    Asset,
    Deployment,
    DexService,
    deploy_opaque_swap,
    format_units,
    parse_units,
)

__all__ = [
    "AccountSnapshot",
    "Asset",
    "Deployment",
    "DexService",
    "deploy_opaque_swap",
    "format_units",
    "parse_units",
]
