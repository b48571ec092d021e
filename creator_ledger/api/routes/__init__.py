"""API routes package."""

from . import earnings, tiers, wallet, withdrawals

__all__ = ["earnings", "tiers", "wallet", "withdrawals"]
