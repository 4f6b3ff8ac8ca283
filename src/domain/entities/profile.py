from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class AccountStatus(str, Enum):
    ACTIVE = "active"
    PENDING_DELETION = "pending_deletion"
    # legacy rows written by the old purge function
    DELETED = "deleted"


# Columns of the profiles table. Updates naming anything else are rejected
# before they reach the store.
PROFILE_COLUMNS: frozenset[str] = frozenset(
    {
        "email",
        "first_name",
        "last_name",
        "location",
        "avatar_url",
        "has_completed_onboarding",
        "account_status",
        "deletion_requested_at",
        "email_verified",
        "pending_email_change",
        "email_change_requested_at",
    }
)


@dataclass(frozen=True)
class ProfileEntity:
    id: str  # user id from Supabase auth
    email: str | None
    first_name: str | None = None
    last_name: str | None = None
    location: str | None = None
    avatar_url: str | None = None
    has_completed_onboarding: bool = False
    account_status: AccountStatus = AccountStatus.ACTIVE
    deletion_requested_at: datetime | None = None
    email_verified: bool = False
    pending_email_change: str | None = None
    email_change_requested_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def display_name(self) -> str | None:
        parts = [p for p in (self.first_name, self.last_name) if p]
        return " ".join(parts) if parts else None
