"""
Admin API module for payout, tier and fraud management.
"""

from .admin_auth import AdminAuth, require_admin_auth, require_ingest_auth
from .admin_routes import admin_router

__all__ = [
    "AdminAuth",
    "require_admin_auth",
    "require_ingest_auth",
    "admin_router"
]
