from __future__ import annotations

import hmac
import os
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from src.application.use_cases.deletion_lifecycle import DeletionLifecycle
from src.application.use_cases.email_change import EmailChangeCoordinator
from src.application.use_cases.ensure_profile import EnsureProfileUseCase
from src.application.use_cases.status_reconciler import StatusReconciler
from src.domain.entities.deletion_request import DEFAULT_GRACE_DAYS
from src.infrastructure.database.repositories.deletion_request_repository import DeletionRequestRepository
from src.infrastructure.database.repositories.identity_repository import IdentityRepository
from src.infrastructure.database.repositories.preference_repository import PreferenceRepository
from src.infrastructure.database.repositories.profile_repository import ProfileRepository
from src.infrastructure.database.supabase_client import (
    SupabaseAuthAdapter,
    UserInfo,
    get_supabase_admin_client,
)
from src.infrastructure.notifications.email_notifier import EmailNotifier

_bearer_scheme = HTTPBearer(auto_error=False)


def get_auth_adapter() -> SupabaseAuthAdapter:
    return SupabaseAuthAdapter()


def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Security(_bearer_scheme)] = None,
    auth: Annotated[SupabaseAuthAdapter, Depends(get_auth_adapter)] = None,
) -> UserInfo:
    if not credentials or not credentials.scheme or credentials.scheme.lower() != "bearer":
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    token = credentials.credentials
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")
    try:
        user = auth.validate_token(token)
        return user
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc))


def require_purge_secret(x_purge_secret: Annotated[str | None, Header()] = None) -> None:
    """Guard for the purge trigger. Without a configured secret the endpoint is closed."""
    expected = os.getenv("PURGE_TRIGGER_SECRET")
    if not expected:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Purge trigger is not configured")
    if not x_purge_secret or not hmac.compare_digest(x_purge_secret, expected):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid purge secret")


def get_profile_repo() -> ProfileRepository:
    return ProfileRepository(get_supabase_admin_client())


def get_preference_repo() -> PreferenceRepository:
    return PreferenceRepository(get_supabase_admin_client())


def get_deletion_request_repo() -> DeletionRequestRepository:
    return DeletionRequestRepository(get_supabase_admin_client())


def get_identity_repo() -> IdentityRepository:
    return IdentityRepository(get_supabase_admin_client())


def get_notifier() -> EmailNotifier:
    return EmailNotifier()


def get_ensure_profile(
    profiles: Annotated[ProfileRepository, Depends(get_profile_repo)],
    identity: Annotated[IdentityRepository, Depends(get_identity_repo)],
) -> EnsureProfileUseCase:
    return EnsureProfileUseCase(profiles=profiles, identity=identity)


def get_status_reconciler(
    identity: Annotated[IdentityRepository, Depends(get_identity_repo)],
    profiles: Annotated[ProfileRepository, Depends(get_profile_repo)],
    preferences: Annotated[PreferenceRepository, Depends(get_preference_repo)],
) -> StatusReconciler:
    return StatusReconciler(identity=identity, profiles=profiles, preferences=preferences)


def get_deletion_lifecycle(
    profiles: Annotated[ProfileRepository, Depends(get_profile_repo)],
    preferences: Annotated[PreferenceRepository, Depends(get_preference_repo)],
    requests: Annotated[DeletionRequestRepository, Depends(get_deletion_request_repo)],
    identity: Annotated[IdentityRepository, Depends(get_identity_repo)],
) -> DeletionLifecycle:
    return DeletionLifecycle(
        profiles=profiles,
        preferences=preferences,
        requests=requests,
        identity=identity,
        grace_days=int(os.getenv("DELETION_GRACE_DAYS", str(DEFAULT_GRACE_DAYS))),
        purge_identity=os.getenv("PURGE_DELETE_IDENTITY", "1") == "1",
    )


def get_email_change_coordinator(
    profiles: Annotated[ProfileRepository, Depends(get_profile_repo)],
    identity: Annotated[IdentityRepository, Depends(get_identity_repo)],
    notifier: Annotated[EmailNotifier, Depends(get_notifier)],
) -> EmailChangeCoordinator:
    return EmailChangeCoordinator(profiles=profiles, identity=identity, notifier=notifier)
