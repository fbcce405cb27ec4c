"""Crossroute - quote aggregation and execution for cross-chain swaps."""

__version__ = "0.1.0"
