"""
API dependencies for FastAPI endpoints.
Provides reusable dependency functions for sessions, creator identity and paging.
"""

from typing import AsyncGenerator, Optional

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

import structlog

from creator_ledger.core.database import get_async_session
from creator_ledger.api.schemas.common import PaginationParams


logger = structlog.get_logger(__name__)


# Bearer token carries the creator id; identity is asserted by the upstream gateway
creator_auth_scheme = HTTPBearer(auto_error=False)


async def get_database() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    async with get_async_session() as session:
        yield session


async def get_creator_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(creator_auth_scheme)
) -> str:
    """Resolve the calling creator from the Authorization header."""
    if not credentials or not credentials.credentials.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error": "AUTHENTICATION_REQUIRED",
                "message": "Creator authentication required"
            },
            headers={"WWW-Authenticate": "Bearer"},
        )

    creator_id = credentials.credentials.strip()
    if len(creator_id) > 64:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "error": "INVALID_CREATOR_ID",
                "message": "Creator id is too long"
            }
        )
    return creator_id


def get_client_ip(request: Request) -> str:
    """Client address, honouring a proxy's X-Forwarded-For."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


async def get_pagination_params(
    limit: int = Query(50, ge=1, le=1000, description="Number of items per page"),
    offset: int = Query(0, ge=0, description="Number of items to skip")
) -> PaginationParams:
    """Get pagination parameters."""
    return PaginationParams(limit=limit, offset=offset)
