from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ProfileResponse(BaseModel):
    """Profile of the authenticated user."""
    id: str = Field(..., description="Unique identifier of the user")
    email: Optional[str] = Field(None, description="Current (verified) email address", examples=["user@example.com"])
    name: Optional[str] = Field(None, description="Display name built from first and last name", examples=["Ada Lovelace"])
    first_name: Optional[str] = Field(None, description="Given name")
    last_name: Optional[str] = Field(None, description="Family name")
    avatar_url: Optional[str] = Field(None, description="Avatar image URL")
    has_completed_onboarding: bool = Field(..., description="Onboarding flag stored on the profile")
    account_status: str = Field(..., description="active or pending_deletion", examples=["active"])
    email_verified: bool = Field(..., description="False while an email change awaits verification")
    pending_email_change: Optional[str] = Field(None, description="Address awaiting verification")
    created_at: Optional[datetime] = Field(None, description="ISO timestamp when the profile was created")


class OnboardingStatusResponse(BaseModel):
    """Effective onboarding state."""
    user_id: str = Field(..., description="Unique identifier of the user")
    completed: bool = Field(..., description="True when any onboarding signal says so")
    signals: dict[str, Optional[bool]] = Field(
        ...,
        description="Per-store signal values; null means missing or unreadable",
        examples=[{"metadata": True, "profile": False, "preferences": None}],
    )


class ReconcileResponse(BaseModel):
    """Outcome of an onboarding drift repair."""
    value: bool = Field(..., description="Effective onboarding flag")
    fixed: bool = Field(..., description="True when at least one repair write succeeded")
    repaired: list[str] = Field(default_factory=list, description="Signals written back to true")
    failed: list[str] = Field(default_factory=list, description="Signals whose repair write failed")
    signals: dict[str, Optional[bool]] = Field(default_factory=dict, description="Signal values read before repair")


class DeletionRequestResponse(BaseModel):
    """Response model for a scheduled deletion."""
    recovery_token: str = Field(..., description="Single-use token that cancels the deletion")
    scheduled_purge_at: datetime = Field(..., description="When the account will be purged (UTC)")
    days_remaining: int = Field(..., description="Whole days left in the recovery window", examples=[30])
    email_sent: bool = Field(..., description="Whether the recovery email was delivered")


class DeletionStatusResponse(BaseModel):
    """Deletion state of the account."""
    pending: bool = Field(..., description="True while a deletion is scheduled")
    request_id: Optional[str] = Field(None, description="Identifier of the pending request")
    requested_at: Optional[datetime] = Field(None, description="When deletion was requested")
    scheduled_purge_at: Optional[datetime] = Field(None, description="When the account will be purged")
    days_remaining: Optional[int] = Field(None, description="Whole days left, never negative", examples=[20])
    recovery_token: Optional[str] = Field(None, description="Token that cancels the pending deletion")


class AccountStatusResponse(BaseModel):
    """Outcome of an account status repair."""
    account_status: str = Field(..., description="Effective status after repair", examples=["active"])
    repaired: bool = Field(..., description="True when the profile column was rewritten")


class RecoverBody(BaseModel):
    """Request model for cancelling a deletion."""
    token: str = Field(..., min_length=1, description="Recovery token from the deletion email")


class RecoverResponse(BaseModel):
    """Response model for a cancelled deletion."""
    user_id: str = Field(..., description="Account that was restored")
    request_id: str = Field(..., description="Deletion request that was cancelled")
    status: str = Field(..., description="New request status", examples=["cancelled"])
    message: str = Field(..., description="Human readable confirmation")


class EmailChangeBody(BaseModel):
    """Request model for changing the account email."""
    new_email: str = Field(..., description="New email address", examples=["new@example.com"])


class EmailChangeResponse(BaseModel):
    """Response model for an email change request."""
    accepted: bool = Field(..., description="False when the address is unchanged or already taken")
    message: str = Field(..., description="Human readable outcome")


class VerifyEmailResponse(BaseModel):
    """Response model for the verification callback."""
    completed: bool = Field(..., description="False for a replayed or stale callback")


class PurgeUserBody(BaseModel):
    """Request model for purging a single user."""
    force: bool = Field(False, description="Purge even if the recovery window is still open")


class PurgeResultResponse(BaseModel):
    """Outcome of purging one user."""
    user_id: str = Field(..., description="Purged user")
    purged: bool = Field(..., description="False for a no-op (nothing pending or not yet due)")
    reason: Optional[str] = Field(None, description="Why nothing was purged", examples=["no_pending_request"])
    request_ids: list[str] = Field(default_factory=list, description="Requests marked completed")


class PurgeRunResponse(BaseModel):
    """Summary of a scheduled purge run."""
    processed: int = Field(..., description="Users with a due request")
    purged: int = Field(..., description="Users purged successfully")
    failed: int = Field(..., description="Users whose purge failed")
    purged_user_ids: list[str] = Field(default_factory=list, description="Purged users")
    errors: dict[str, str] = Field(default_factory=dict, description="Error message per failed user")
