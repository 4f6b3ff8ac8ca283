"""Failure classification and retry for record store calls.

Retry policy lives here and only here: repositories route their backend calls
through ``run_store_call``, which retries transient failures a bounded number
of times and converts whatever is left into ``StoreError``.
"""
from __future__ import annotations

import logging
import os
import time
from typing import Callable, TypeVar

import httpx

from src.domain.errors import AccountError, StoreError
from src.infrastructure.database.postgres_client import is_transient_pg_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRANSIENT_HTTP_STATUS = {408, 429, 500, 502, 503, 504}


def is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError)):
        return True
    if is_transient_pg_error(exc):
        return True
    # postgrest / gotrue API errors carry the HTTP status
    status = getattr(exc, "status", None) or getattr(exc, "code", None)
    try:
        return int(status) in _TRANSIENT_HTTP_STATUS
    except (TypeError, ValueError):
        return False


def run_store_call(operation: str, fn: Callable[[], T], *, attempts: int | None = None) -> T:
    max_attempts = attempts or int(os.getenv("STORE_MAX_ATTEMPTS", "2"))
    backoff = float(os.getenv("STORE_RETRY_BACKOFF_SECONDS", "0.2"))
    attempt = 1
    while True:
        try:
            return fn()
        except AccountError:
            raise
        except Exception as exc:
            retryable = is_retryable(exc)
            if retryable and attempt < max_attempts:
                logger.warning(
                    "%s failed (attempt %d/%d), retrying: %s", operation, attempt, max_attempts, exc
                )
                time.sleep(backoff * attempt)
                attempt += 1
                continue
            raise StoreError(
                f"{operation} failed: {exc}", operation=operation, retryable=retryable, cause=exc
            ) from exc
