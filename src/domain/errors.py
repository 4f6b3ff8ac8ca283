"""Error taxonomy for account-state operations.

Every error raised by the account use cases derives from ``AccountError`` so the
API layer can map them to HTTP responses in one place. Store adapters wrap
backend failures in ``StoreError`` and decide whether they are retryable; the
use cases never retry on their own.
"""
from __future__ import annotations

from typing import Any


class AccountError(Exception):
    code = "ACCOUNT_ERROR"

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AccountError):
    """Missing or malformed input."""

    code = "VALIDATION_ERROR"


class NotFoundError(AccountError):
    """No matching profile, pending request or token."""

    code = "NOT_FOUND"


class ConflictError(AccountError):
    """A pending deletion request already exists for the user."""

    code = "CONFLICT"


class AccessDeniedError(AccountError):
    """The caller does not own the account it is acting on."""

    code = "ACCESS_DENIED"


class StoreError(AccountError):
    """A record store call failed.

    ``retryable`` is decided by the adapter that raised it (timeouts and
    connection drops are retryable, constraint or schema errors are not).
    """

    code = "STORE_ERROR"

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        retryable: bool = False,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message, details={"operation": operation, "retryable": retryable})
        self.operation = operation
        self.retryable = retryable
        self.cause = cause


class PartialFailureError(AccountError):
    """One write of a multi-store operation landed while a later one did not.

    Carries which step failed, which steps had completed, and which
    compensations ran, so an operator or a later retry can repair the state.
    """

    code = "PARTIAL_FAILURE"

    def __init__(
        self,
        message: str,
        *,
        operation: str,
        failed_step: str,
        completed_steps: list[str] | None = None,
        compensated_steps: list[str] | None = None,
        compensation_failed: list[str] | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.operation = operation
        self.failed_step = failed_step
        self.completed_steps = list(completed_steps or [])
        self.compensated_steps = list(compensated_steps or [])
        self.compensation_failed = list(compensation_failed or [])
        self.context = dict(context or {})
        self.cause = cause
        super().__init__(
            message,
            details={
                "operation": operation,
                "failed_step": failed_step,
                "completed_steps": self.completed_steps,
                "compensated_steps": self.compensated_steps,
                "compensation_failed": self.compensation_failed,
                **self.context,
            },
        )
