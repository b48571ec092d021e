"""
Main FastAPI application for the Creator Ledger.
Configures the API server with routes, middleware, error handling and documentation.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

import structlog

from creator_ledger.core.config import settings
from creator_ledger.core.database import DatabaseManager, close_database, init_database
from creator_ledger.core.exceptions import LedgerError
from creator_ledger.core.logging import setup_logging
from creator_ledger.api.middleware import add_middleware
from creator_ledger.api.schemas.common import HealthCheckResponse, SuccessResponse
from creator_ledger.api.routes import earnings, tiers, wallet, withdrawals
from creator_ledger.admin.admin_routes import admin_router
from creator_ledger.utils.clock import utcnow


logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Creator Ledger API server", environment=settings.environment)

    await init_database()
    await DatabaseManager.create_tables()

    yield

    logger.info("Shutting down Creator Ledger API server")
    await close_database()


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Render every ledger error in the common error envelope."""
    if exc.status_code >= 500:
        logger.error("Ledger error", path=request.url.path, code=exc.code, error=exc.message)
    else:
        logger.info("Request refused", path=request.url.path, code=exc.code, error=exc.message)

    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder({
            "success": False,
            "error": exc.code,
            "message": exc.message,
            "details": exc.details,
            "timestamp": utcnow().isoformat(),
        })
    )


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""

    setup_logging(settings.log_file)

    app_config = {
        "title": "Creator Ledger API",
        "description": """
        Monetization ledger for content creators.

        ## Features

        * **Earnings** - Per-view accrual at the creator's tier rate
        * **Tiers** - Upgrade requests and admin decisions
        * **Wallets** - Payout destination with a change cooldown
        * **Withdrawals** - PIN-protected payout requests and their lifecycle
        * **Fraud & Audit** - Fraud flags, chargebacks and IP activity

        ## Authentication

        Creator endpoints:
        ```
        Authorization: Bearer <creator-id>
        ```

        Admin endpoints accept an admin id listed in `ADMIN_IDS` or the `ADMIN_API_KEY`.

        ## Error Handling

        Errors return `{"success": false, "error": <code>, "message", "details", "timestamp"}`.
        """,
        "version": settings.app_version,
        "lifespan": lifespan,
    }

    if settings.is_production:
        app_config["openapi_url"] = None

    app = FastAPI(**app_config)

    add_middleware(app)
    app.add_exception_handler(LedgerError, ledger_error_handler)

    @app.get(
        "/health",
        response_model=HealthCheckResponse,
        tags=["System"],
        summary="Health Check",
        description="Check API server health and database connectivity"
    )
    async def health_check():
        if await DatabaseManager.health_check():
            return HealthCheckResponse(version=settings.app_version)

        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "unhealthy",
                "version": settings.app_version,
                "services": {
                    "database": "unhealthy",
                    "api": "healthy"
                }
            }
        )

    @app.get(
        "/",
        response_model=SuccessResponse,
        tags=["System"],
        summary="API Information"
    )
    async def root():
        return SuccessResponse(
            message=f"Creator Ledger API v{settings.app_version}",
            data={
                "version": settings.app_version,
                "environment": settings.environment,
                "docs_url": None if settings.is_production else "/docs",
            }
        )

    app.include_router(
        earnings.router,
        prefix=settings.api_v1_prefix,
        tags=["Earnings"]
    )

    app.include_router(
        tiers.router,
        prefix=settings.api_v1_prefix,
        tags=["Tiers"]
    )

    app.include_router(
        wallet.router,
        prefix=settings.api_v1_prefix,
        tags=["Wallet"]
    )

    app.include_router(
        withdrawals.router,
        prefix=settings.api_v1_prefix,
        tags=["Withdrawals"]
    )

    app.include_router(
        admin_router,
        prefix=settings.api_v1_prefix
    )

    logger.info("FastAPI application created", version=settings.app_version)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "creator_ledger.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.is_development,
        log_level=settings.log_level.lower()
    )
