"""
Creator Ledger

Monetization backend for content creators that provides:
- Per-view earnings accrual at tier rates
- Tier upgrade requests and admin decisions
- Wallet registry with change cooldown and PIN-protected withdrawals
- Payout request lifecycle, chargebacks and fraud auditing
"""

__version__ = "0.1.0"
__author__ = "Creator Ledger Team"
