"""Utility modules for Crossroute."""

from crossroute.utils.cache import TtlCache

__all__ = ["TtlCache"]
