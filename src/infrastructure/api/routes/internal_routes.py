from __future__ import annotations

from fastapi import APIRouter, Depends

from src.application.dtos.account_dto import PurgeResultResponse, PurgeRunResponse, PurgeUserBody
from src.application.dtos.common_dto import ErrorResponse
from src.application.use_cases.deletion_lifecycle import DeletionLifecycle
from src.infrastructure.api.dependencies import get_deletion_lifecycle, require_purge_secret

router = APIRouter(
    prefix="/internal",
    tags=["Internal"],
    dependencies=[Depends(require_purge_secret)],
    responses={
        403: {"description": "Forbidden - Missing or invalid X-Purge-Secret header"},
        500: {"model": ErrorResponse, "description": "Partial Failure - Purge stopped halfway, retried on next run"},
    },
)


@router.post(
    "/purge",
    response_model=PurgeRunResponse,
    summary="Run Scheduled Purge",
    description="""
    Purge every account whose recovery window has closed. Called by the
    scheduler; a failure for one user is reported in `errors` and does not stop
    the run.

    **Authentication required**: `X-Purge-Secret` header
    """,
)
def run_purge(lifecycle: DeletionLifecycle = Depends(get_deletion_lifecycle)):
    """Purge all due accounts."""
    summary = lifecycle.purge_due()
    return {
        "processed": summary.processed,
        "purged": summary.purged,
        "failed": summary.failed,
        "purged_user_ids": summary.purged_user_ids,
        "errors": summary.errors,
    }


@router.post(
    "/purge/{user_id}",
    response_model=PurgeResultResponse,
    summary="Purge One Account",
    description="""
    Purge a single account. A no-op when nothing is pending, or when the
    recovery window is still open and `force` is false.

    **Authentication required**: `X-Purge-Secret` header
    """,
)
def purge_user(
    user_id: str,
    body: PurgeUserBody | None = None,
    lifecycle: DeletionLifecycle = Depends(get_deletion_lifecycle),
):
    """Purge one account."""
    result = lifecycle.purge(user_id, force=bool(body and body.force))
    return {
        "user_id": result.user_id,
        "purged": result.purged,
        "reason": result.reason,
        "request_ids": result.request_ids,
    }
