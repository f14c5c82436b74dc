"""OpaqueSwap - confidential fixed-rate swap between two encrypted-balance tokens."""

__version__ = "0.1.0"
