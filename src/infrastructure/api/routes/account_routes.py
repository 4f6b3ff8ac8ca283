from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from src.application.dtos.account_dto import (
    AccountStatusResponse,
    DeletionRequestResponse,
    DeletionStatusResponse,
    EmailChangeBody,
    EmailChangeResponse,
    OnboardingStatusResponse,
    ReconcileResponse,
    RecoverBody,
    RecoverResponse,
    VerifyEmailResponse,
)
from src.application.dtos.common_dto import ErrorResponse, SuccessResponse
from src.application.use_cases.deletion_lifecycle import DeletionLifecycle
from src.application.use_cases.email_change import EmailChangeCoordinator
from src.application.use_cases.status_reconciler import StatusReconciler
from src.infrastructure.api.dependencies import (
    get_current_user,
    get_deletion_lifecycle,
    get_email_change_coordinator,
    get_notifier,
    get_status_reconciler,
)
from src.infrastructure.notifications.email_notifier import EmailNotifier

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/account",
    tags=["Account"],
    responses={
        400: {"model": ErrorResponse, "description": "Bad Request - Missing or malformed input"},
        401: {"description": "Unauthorized - Invalid or missing authentication token"},
        502: {"model": ErrorResponse, "description": "Bad Gateway - A record store rejected the call"},
        503: {"model": ErrorResponse, "description": "Service Unavailable - A record store timed out, retry later"},
    },
)


@router.get(
    "/onboarding",
    response_model=OnboardingStatusResponse,
    summary="Get Onboarding Status",
    description="""
    Return whether the user has completed onboarding.

    The flag lives in three places (identity metadata, profile, preferences).
    Onboarding counts as complete when any of them says so.

    **Authentication required**: Yes (Bearer token)
    """,
)
def get_onboarding_status(
    user=Depends(get_current_user),
    reconciler: StatusReconciler = Depends(get_status_reconciler),
):
    """Get the effective onboarding flag."""
    signals = reconciler.read_signals(user.id)
    return {"user_id": user.id, "completed": signals.complete, "signals": signals.as_dict()}


@router.post(
    "/onboarding/complete",
    response_model=SuccessResponse,
    summary="Mark Onboarding Complete",
    description="""
    Record that the user finished onboarding.

    The profile flag is written first and must succeed. The identity metadata
    flag is mirrored afterwards; if that fails it is repaired by the next
    reconcile.

    **Authentication required**: Yes (Bearer token)
    """,
)
def complete_onboarding(
    user=Depends(get_current_user),
    reconciler: StatusReconciler = Depends(get_status_reconciler),
):
    """Mark onboarding as complete."""
    reconciler.mark_onboarding_complete(user.id)
    return {"ok": True, "message": "Onboarding completed"}


@router.post(
    "/onboarding/reconcile",
    response_model=ReconcileResponse,
    summary="Reconcile Onboarding Flags",
    description="""
    Repair drift between the onboarding signals.

    When any signal says onboarding is complete, the identity metadata and
    profile flags are set to true if they disagree. Repair failures are
    reported in `failed` and never fail the request.

    **Authentication required**: Yes (Bearer token)
    """,
)
def reconcile_onboarding(
    user=Depends(get_current_user),
    reconciler: StatusReconciler = Depends(get_status_reconciler),
):
    """Reconcile onboarding signals for the current user."""
    result = reconciler.reconcile(user.id)
    return {
        "value": result.value,
        "fixed": result.fixed,
        "repaired": result.repaired,
        "failed": result.failed,
        "signals": result.signals,
    }


@router.post(
    "/deletion",
    response_model=DeletionRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Request Account Deletion",
    description="""
    Schedule the account for permanent deletion after the recovery window
    (30 days by default).

    A recovery link is emailed to the account's own address; following it
    cancels the deletion.

    **Authentication required**: Yes (Bearer token)
    """,
    responses={
        409: {"model": ErrorResponse, "description": "Conflict - A deletion is already pending"},
        500: {"model": ErrorResponse, "description": "Partial Failure - Stores left inconsistent"},
    },
)
def request_deletion(
    user=Depends(get_current_user),
    lifecycle: DeletionLifecycle = Depends(get_deletion_lifecycle),
    notifier: EmailNotifier = Depends(get_notifier),
):
    """Schedule deletion of the current user's account."""
    email = user.email or ""
    token = lifecycle.request_deletion(user.id, email)
    report = lifecycle.check_status(user.id)
    sent = notifier.send_deletion_scheduled(email, token, report.scheduled_purge_at)
    if not sent:
        logger.warning("Recovery email for user %s was not delivered", user.id)
    return {
        "recovery_token": token,
        "scheduled_purge_at": report.scheduled_purge_at,
        "days_remaining": report.days_remaining,
        "email_sent": sent,
    }


@router.get(
    "/deletion",
    response_model=DeletionStatusResponse,
    summary="Get Deletion Status",
    description="""
    Report whether a deletion is pending and how many days remain before the
    account is purged.

    **Authentication required**: Yes (Bearer token)
    """,
)
def get_deletion_status(
    user=Depends(get_current_user),
    lifecycle: DeletionLifecycle = Depends(get_deletion_lifecycle),
):
    """Get the deletion status of the current user's account."""
    report = lifecycle.check_status(user.id)
    return {
        "pending": report.pending,
        "request_id": report.request_id,
        "requested_at": report.requested_at,
        "scheduled_purge_at": report.scheduled_purge_at,
        "days_remaining": report.days_remaining,
        "recovery_token": report.recovery_token,
    }


@router.post(
    "/deletion/recover",
    response_model=RecoverResponse,
    summary="Cancel Account Deletion",
    description="""
    Cancel a pending deletion using the recovery token from the deletion email.

    The token is the credential, so no bearer token is needed. Each token works
    once; reusing it returns 404 and changes nothing.

    **Authentication required**: No
    """,
    responses={
        404: {"model": ErrorResponse, "description": "Not Found - Token is invalid or already used"},
        500: {"model": ErrorResponse, "description": "Partial Failure - Request cancelled but profile not restored"},
    },
)
def recover_account(
    body: RecoverBody,
    lifecycle: DeletionLifecycle = Depends(get_deletion_lifecycle),
):
    """Cancel a pending deletion."""
    request = lifecycle.recover(body.token)
    return {
        "user_id": request.user_id,
        "request_id": request.id,
        "status": request.status.value,
        "message": "Account deletion cancelled. Your account is active again.",
    }


@router.post(
    "/deletion/reconcile",
    response_model=AccountStatusResponse,
    summary="Repair Account Status",
    description="""
    Bring the profile's account status back in line with the deletion requests.

    A profile left in `pending_deletion` after its request was cancelled is set
    back to `active`; a profile with a pending request is set to
    `pending_deletion`.

    **Authentication required**: Yes (Bearer token)
    """,
    responses={404: {"model": ErrorResponse, "description": "Not Found - Profile does not exist"}},
)
def reconcile_account_status(
    user=Depends(get_current_user),
    lifecycle: DeletionLifecycle = Depends(get_deletion_lifecycle),
):
    """Repair the current user's account status."""
    repaired = lifecycle.reconcile_account_status(user.id)
    return {"account_status": lifecycle.account_status(user.id).value, "repaired": repaired}


@router.post(
    "/email",
    response_model=EmailChangeResponse,
    summary="Request Email Change",
    description="""
    Start changing the account email.

    A verification link is sent to the new address. The account email stays
    the same until the link is followed. `accepted` is false when the address
    is unchanged or already used by another account.

    **Authentication required**: Yes (Bearer token)
    """,
    responses={404: {"model": ErrorResponse, "description": "Not Found - Profile does not exist"}},
)
def request_email_change(
    body: EmailChangeBody,
    user=Depends(get_current_user),
    coordinator: EmailChangeCoordinator = Depends(get_email_change_coordinator),
):
    """Request an email change for the current user."""
    result = coordinator.request_email_change(user.id, user.id, body.new_email)
    return {"accepted": result.accepted, "message": result.message}


@router.post(
    "/email/verify",
    response_model=VerifyEmailResponse,
    summary="Complete Email Change",
    description="""
    Verification callback. Applies the pending email change once the identity
    provider reports the new address for this user, which only happens after
    the verification link was followed. Replayed, stale or unverified callbacks
    return `completed: false`.

    **Authentication required**: Yes (Bearer token)
    """,
)
def verify_email_change(
    user=Depends(get_current_user),
    coordinator: EmailChangeCoordinator = Depends(get_email_change_coordinator),
):
    """Complete a pending email change."""
    return {"completed": coordinator.confirm_from_identity(user.id)}


@router.delete(
    "/email",
    response_model=SuccessResponse,
    summary="Cancel Email Change",
    description="""
    Discard a pending email change. Succeeds when nothing is pending.

    **Authentication required**: Yes (Bearer token)
    """,
)
def cancel_email_change(
    user=Depends(get_current_user),
    coordinator: EmailChangeCoordinator = Depends(get_email_change_coordinator),
):
    """Cancel the current user's pending email change."""
    cancelled = coordinator.cancel_email_change(user.id, user.id)
    return {"ok": True, "message": "Email change cancelled" if cancelled else "No email change pending"}
