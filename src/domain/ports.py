"""Store interfaces the account use cases depend on.

The repositories under ``src.infrastructure.database.repositories`` implement
these against Supabase, local PostgreSQL or memory. Use cases receive them as
constructor arguments, so tests can pass in-memory repositories or mocks.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from src.domain.entities.deletion_request import DeletionRequestEntity, DeletionStatus
from src.domain.entities.identity import IdentityUser
from src.domain.entities.profile import ProfileEntity


@runtime_checkable
class IdentityStore(Protocol):
    def get_user(self, user_id: str) -> IdentityUser | None: ...

    def update_metadata(self, user_id: str, metadata: dict[str, Any]) -> None:
        """Merge ``metadata`` into the user's metadata map."""
        ...

    def delete_user(self, user_id: str) -> None: ...

    def issue_email_change(self, user_id: str, new_email: str) -> str | None:
        """Start the provider's email-change challenge.

        Returns:
            The verification link when the provider hands one back, otherwise
            None (the provider mailed it itself).
        """
        ...


@runtime_checkable
class ProfileStore(Protocol):
    def get(self, user_id: str) -> ProfileEntity | None: ...

    def upsert(self, user_id: str, fields: dict[str, Any]) -> ProfileEntity: ...

    def find_by_email(self, email: str) -> ProfileEntity | None: ...

    def delete(self, user_id: str) -> None: ...


@runtime_checkable
class PreferenceStore(Protocol):
    def exists(self, user_id: str) -> bool: ...

    def delete(self, user_id: str) -> None: ...


@runtime_checkable
class DeletionRequestStore(Protocol):
    def insert(self, request: DeletionRequestEntity) -> DeletionRequestEntity: ...

    def update_status(
        self,
        request_id: str,
        status: DeletionStatus,
        at: datetime | None = None,
        *,
        expected: DeletionStatus = DeletionStatus.PENDING,
    ) -> None:
        """Compare-and-set from ``expected``; raises NotFoundError when the row moved on."""
        ...

    def find_by_token(self, token: str) -> DeletionRequestEntity | None: ...

    def find_pending_by_user(self, user_id: str) -> DeletionRequestEntity | None: ...

    def list_pending_by_user(self, user_id: str) -> list[DeletionRequestEntity]: ...

    def list_due(self, now: datetime) -> list[DeletionRequestEntity]: ...


@runtime_checkable
class AccountNotifier(Protocol):
    def send_deletion_scheduled(self, email: str, token: str, scheduled_purge_at: datetime) -> bool: ...

    def send_email_change_verification(self, email: str, link: str | None) -> bool: ...
