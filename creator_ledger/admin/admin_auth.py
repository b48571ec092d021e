"""
Admin authentication and authorization utilities.
"""

from typing import Optional

from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from creator_ledger.core.config import settings
from creator_ledger.core.exceptions import AdminRequiredError, IngestAccessRequiredError

import structlog

logger = structlog.get_logger(__name__)

security = HTTPBearer(auto_error=False)


class AdminAuth:
    """
    Admin authentication and authorization service.

    Settings are read on every call so that admin ids and the API key can
    be rotated through the environment without rebuilding the app.
    """

    def is_admin_id(self, token: str) -> bool:
        return token in settings.admin_id_list

    def is_valid_api_key(self, token: str) -> bool:
        return bool(settings.admin_api_key) and token == settings.admin_api_key

    def is_valid_ingest_key(self, token: str) -> bool:
        return bool(settings.ingest_api_key) and token == settings.ingest_api_key

    def authenticate_request(self, credentials: HTTPAuthorizationCredentials) -> dict:
        """
        Authenticate an admin request using Bearer token.

        Token can be either:
        1. An admin id listed in ADMIN_IDS
        2. The admin API key
        """
        token = credentials.credentials.strip()

        if self.is_valid_api_key(token):
            return {
                "auth_type": "api_key",
                "admin_id": "api-key",
                "authenticated": True,
                "admin": True
            }

        if self.is_admin_id(token):
            return {
                "auth_type": "admin_id",
                "admin_id": token,
                "authenticated": True,
                "admin": True
            }

        return {
            "authenticated": True,
            "admin": False
        }


# Global admin auth instance
admin_auth = AdminAuth()


def _preview(token: str) -> str:
    return token[:4] + "..." if len(token) > 4 else token


async def require_admin_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> dict:
    """
    Dependency that requires admin authentication.

    Missing credentials yield 401; a token that is not an admin yields 403.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Admin authentication required",
            headers={"WWW-Authenticate": "Bearer"}
        )

    auth_result = admin_auth.authenticate_request(credentials)

    if not auth_result.get("admin"):
        logger.warning(
            "Admin authorization failed",
            token_preview=_preview(credentials.credentials)
        )
        raise AdminRequiredError()

    logger.debug(
        "Admin authenticated successfully",
        auth_type=auth_result["auth_type"],
        admin_id=auth_result["admin_id"]
    )
    return auth_result


async def require_ingest_auth(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """
    Dependency for internal view ingestion.

    Accepts the ingestion key or any admin credential and returns the
    caller label. Creators cannot credit views to themselves.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Service authentication required",
            headers={"WWW-Authenticate": "Bearer"}
        )

    token = credentials.credentials.strip()
    if admin_auth.is_valid_ingest_key(token):
        return "ingest-key"

    auth_result = admin_auth.authenticate_request(credentials)
    if auth_result.get("admin"):
        return auth_result["admin_id"]

    logger.warning("View ingestion refused", token_preview=_preview(token))
    raise IngestAccessRequiredError()
