from __future__ import annotations

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field

from src.application.dtos.account_dto import ProfileResponse
from src.application.use_cases.deletion_lifecycle import DeletionLifecycle
from src.application.use_cases.ensure_profile import EnsureProfileUseCase
from src.domain.entities.profile import AccountStatus, ProfileEntity
from src.infrastructure.api.dependencies import get_current_user, get_deletion_lifecycle, get_ensure_profile

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        401: {"description": "Unauthorized - Invalid or missing authentication token"},
        422: {"description": "Validation Error - Invalid request format"}
    }
)


class ValidateTokenResponse(BaseModel):
    """Response model for token validation."""
    user_id: str = Field(..., description="Unique identifier of the authenticated user")
    email: str | None = Field(None, description="Email address of the authenticated user", examples=["user@example.com"])


def profile_response(prof: ProfileEntity, account_status: AccountStatus | None = None) -> dict:
    return {
        "id": prof.id,
        "email": prof.email,
        "name": prof.display_name,
        "first_name": prof.first_name,
        "last_name": prof.last_name,
        "avatar_url": prof.avatar_url,
        "has_completed_onboarding": prof.has_completed_onboarding,
        "account_status": (account_status or prof.account_status).value,
        "email_verified": prof.email_verified,
        "pending_email_change": prof.pending_email_change,
        "created_at": prof.created_at,
    }


@router.post(
    "/validate",
    response_model=ValidateTokenResponse,
    status_code=status.HTTP_200_OK,
    summary="Validate Authentication Token",
    description="""
    Validate the provided JWT token and ensure the user profile exists.

    This endpoint:
    - Verifies the JWT token in the Authorization header
    - Creates the profile on first sign-in from the identity provider's name and avatar
    - Returns basic user information

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="User information confirming valid authentication"
)
def validate_token(
    user=Depends(get_current_user),
    ensure_profile: EnsureProfileUseCase = Depends(get_ensure_profile),
):
    """Validate JWT token and ensure user profile exists."""
    prof = ensure_profile.execute(user.id, user.email)
    return {"user_id": prof.id, "email": prof.email}


@router.get(
    "/me",
    response_model=ProfileResponse,
    status_code=status.HTTP_200_OK,
    summary="Get Current User Profile",
    description="""
    Retrieve the profile of the currently authenticated user.

    This endpoint returns:
    - User ID, email and display name
    - Onboarding flag
    - Account status, derived from the deletion requests
    - Any email change awaiting verification

    **Authentication required**: Yes (Bearer token)
    """,
    response_description="Complete user profile information"
)
def get_me(
    user=Depends(get_current_user),
    ensure_profile: EnsureProfileUseCase = Depends(get_ensure_profile),
    lifecycle: DeletionLifecycle = Depends(get_deletion_lifecycle),
):
    """Get current user's profile information."""
    prof = ensure_profile.execute(user.id, user.email)
    return profile_response(prof, lifecycle.account_status(user.id))
