from __future__ import annotations

import logging
import os

from fastapi import FastAPI

from src.application.dtos.common_dto import HealthResponse, RootResponse
from src.infrastructure.api.middlewares import add_default_middlewares, add_error_handlers
from src.infrastructure.api.routes.account_routes import router as account_router
from src.infrastructure.api.routes.auth_routes import router as auth_router
from src.infrastructure.api.routes.internal_routes import router as internal_router


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app() -> FastAPI:
    configure_logging()
    app = FastAPI(
        title="Planora Accounts",
        version="0.1.0",
        description="""
        ## Planora Accounts API

        Account state service for the Planora travel planner: onboarding status,
        account deletion with a recovery window, and email changes. Built with
        FastAPI, Clean Architecture, and Supabase for auth and database.

        ### Features
        - **Onboarding**: Effective onboarding flag across identity metadata,
          profile and preferences, with drift repair
        - **Account Deletion**: 30-day soft delete, single-use recovery links and
          an externally triggered purge
        - **Email Change**: Two-phase change confirmed by a verification link

        ### Authentication
        All endpoints (except root, health, account recovery and the internal
        purge trigger) require authentication via Bearer token in the
        Authorization header:
        ```
        Authorization: Bearer your-jwt-token
        ```

        ### Error Responses
        Errors are returned as `{"detail": ..., "code": ..., "details": ...}`:
        - **400 Bad Request**: Missing or malformed input
        - **401 Unauthorized**: Missing or invalid authentication token
        - **403 Forbidden**: Acting on another user's account
        - **404 Not Found**: Unknown profile, request or recovery token
        - **409 Conflict**: A deletion is already pending
        - **500 Internal Server Error**: Partial failure; `details` names the failed step
        - **502 / 503**: A record store failed (503 means retry later)
        """,
        contact={
            "name": "Planora Team",
            "email": "support@getplanora.app",
        },
    )
    add_default_middlewares(app)
    add_error_handlers(app)

    @app.get(
        "/",
        response_model=RootResponse,
        summary="API Root",
        description="Get basic information about the Planora Accounts API",
        response_description="API information including status and version",
    )
    def root():
        """Get API root information."""
        return {"status": "ok", "service": "planora-accounts", "version": app.version}

    @app.get(
        "/health",
        response_model=HealthResponse,
        summary="Health Check",
        description="Check if the API service is running and healthy",
        response_description="Health status of the API service",
    )
    def health():
        """Check API health status."""
        return {"status": "healthy"}

    app.include_router(auth_router)
    app.include_router(account_router)
    app.include_router(internal_router)
    return app


app = create_app()
