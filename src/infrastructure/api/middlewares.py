from __future__ import annotations

import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware

from src.domain.errors import (
    AccessDeniedError,
    AccountError,
    ConflictError,
    NotFoundError,
    PartialFailureError,
    StoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[AccountError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AccessDeniedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (PartialFailureError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: AccountError) -> int:
    if isinstance(exc, StoreError):
        return status.HTTP_503_SERVICE_UNAVAILABLE if exc.retryable else status.HTTP_502_BAD_GATEWAY
    for error_type, code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def account_error_handler(request: Request, exc: AccountError) -> JSONResponse:
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error(
            "%s %s failed with %s: %s details=%s",
            request.method,
            request.url.path,
            exc.code,
            exc.message,
            exc.details,
        )
    body: dict = {"detail": exc.message, "code": exc.code}
    if exc.details:
        body["details"] = exc.details
    return JSONResponse(status_code=status_code, content=body)


def add_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AccountError, account_error_handler)


def add_default_middlewares(app: FastAPI) -> None:
    # CORS configuration
    # In development/demo mode, allow common frontend origins
    env = os.getenv("ENV", "development")

    if env in ("development", "staging"):
        allowed_origins = [
            "http://localhost:3000",
            "http://localhost:5173",  # Vite default
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ]
    else:
        allowed_origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
