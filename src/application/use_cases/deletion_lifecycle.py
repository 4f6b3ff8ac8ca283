from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Callable
from uuid import uuid4

from src.domain.entities.deletion_request import (
    DEFAULT_GRACE_DAYS,
    DeletionRequestEntity,
    DeletionStatus,
    days_remaining,
    scheduled_purge_for,
)
from src.domain.entities.profile import AccountStatus
from src.domain.errors import AccountError, ConflictError, NotFoundError, ValidationError
from src.domain.ports import DeletionRequestStore, IdentityStore, PreferenceStore, ProfileStore
from src.domain.services.saga import Saga, SagaStep

logger = logging.getLogger(__name__)


def _new_token() -> str:
    return secrets.token_hex(16)


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class PurgeStep:
    """Extra user-owned data removed during purge, before the profile.

    ``action`` receives the user id and must succeed when there is nothing left
    to delete.
    """

    name: str
    action: Callable[[str], object]


@dataclass(frozen=True)
class DeletionStatusReport:
    pending: bool
    request_id: str | None = None
    requested_at: datetime | None = None
    scheduled_purge_at: datetime | None = None
    days_remaining: int | None = None
    recovery_token: str | None = None


@dataclass(frozen=True)
class PurgeResult:
    user_id: str
    purged: bool
    reason: str | None = None
    request_ids: list[str] = field(default_factory=list)
    steps: list[str] = field(default_factory=list)


@dataclass
class PurgeRunSummary:
    processed: int = 0
    purged: int = 0
    failed: int = 0
    purged_user_ids: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


@dataclass
class DeletionLifecycle:
    """Soft delete with a recovery window, token recovery and purge.

    States: active -> pending_deletion -> active (recover) or purged.
    Multi-store writes run as sagas (``src.domain.services.saga``) so a failure
    either unwinds cleanly or surfaces as ``PartialFailureError``.
    """

    profiles: ProfileStore
    preferences: PreferenceStore
    requests: DeletionRequestStore
    identity: IdentityStore
    grace_days: int = DEFAULT_GRACE_DAYS
    purge_identity: bool = True
    extra_purge_steps: list[PurgeStep] = field(default_factory=list)
    token_factory: Callable[[], str] = _new_token
    clock: Callable[[], datetime] = _utcnow

    def request_deletion(self, user_id: str, email: str) -> str:
        """Schedule the account for purge and return the recovery token.

        Raises:
            ValidationError: ``user_id`` or ``email`` is empty.
            NotFoundError: the user has no profile.
            ConflictError: a pending request already exists for the user.
            StoreError: a write failed and the saga unwound cleanly.
            PartialFailureError: a write failed and the unwind did not finish.
        """
        user_id = (user_id or "").strip()
        email = (email or "").strip()
        if not user_id or not email:
            raise ValidationError(
                "user_id and email are required",
                details={"missing": [n for n, v in (("user_id", user_id), ("email", email)) if not v]},
            )

        existing = self.requests.find_pending_by_user(user_id)
        if existing is not None:
            raise ConflictError(
                "A deletion request is already pending for this account",
                details={"request_id": existing.id, "scheduled_purge_at": existing.scheduled_purge_at.isoformat()},
            )

        if self.profiles.get(user_id) is None:
            raise NotFoundError("Profile not found", details={"user_id": user_id})

        now = self.clock()
        request = DeletionRequestEntity(
            id=str(uuid4()),
            user_id=user_id,
            email=email,
            requested_at=now,
            scheduled_purge_at=scheduled_purge_for(now, self.grace_days),
            recovery_token=self.token_factory(),
        )

        Saga(
            operation="request_deletion",
            steps=[
                SagaStep(
                    name="mark_profile_pending",
                    action=lambda: self.profiles.upsert(
                        user_id,
                        {"account_status": AccountStatus.PENDING_DELETION, "deletion_requested_at": now},
                    ),
                    compensate=lambda: self.profiles.upsert(
                        user_id, {"account_status": AccountStatus.ACTIVE, "deletion_requested_at": None}
                    ),
                ),
                SagaStep(name="insert_request", action=lambda: self.requests.insert(request)),
            ],
            context={"user_id": user_id, "request_id": request.id},
        ).run()

        logger.info(
            "Deletion requested for user %s, purge scheduled at %s",
            user_id,
            request.scheduled_purge_at.isoformat(),
        )
        return request.recovery_token

    def recover(self, token: str) -> DeletionRequestEntity:
        """Cancel the pending deletion that owns ``token``.

        A token works once: any later call, or a call with an unknown token,
        raises ``NotFoundError`` and changes nothing.
        """
        token = (token or "").strip()
        if not token:
            raise ValidationError("Recovery token is required")

        request = self.requests.find_by_token(token)
        if request is None or not request.is_pending:
            raise NotFoundError("Recovery token is invalid or has already been used")

        now = self.clock()
        Saga(
            operation="recover",
            steps=[
                # a cancelled token must never become usable again, so no compensation
                SagaStep(
                    name="cancel_request",
                    action=lambda: self.requests.update_status(request.id, DeletionStatus.CANCELLED, now),
                ),
                SagaStep(
                    name="reactivate_profile",
                    action=lambda: self.profiles.upsert(
                        request.user_id,
                        {"account_status": AccountStatus.ACTIVE, "deletion_requested_at": None},
                    ),
                ),
            ],
            context={"user_id": request.user_id, "request_id": request.id},
        ).run()

        logger.info("Deletion cancelled for user %s (request %s)", request.user_id, request.id)
        return request.with_status(DeletionStatus.CANCELLED, now)

    def check_status(self, user_id: str) -> DeletionStatusReport:
        if not user_id:
            raise ValidationError("user_id is required")
        request = self.requests.find_pending_by_user(user_id)
        if request is None:
            return DeletionStatusReport(pending=False)
        return DeletionStatusReport(
            pending=True,
            request_id=request.id,
            requested_at=request.requested_at,
            scheduled_purge_at=request.scheduled_purge_at,
            days_remaining=days_remaining(request.scheduled_purge_at, self.clock()),
            recovery_token=request.recovery_token,
        )

    def account_status(self, user_id: str) -> AccountStatus:
        """Effective status: pending while a pending request exists, else the
        profile column with a stale ``pending_deletion`` read as active."""
        if not user_id:
            raise ValidationError("user_id is required")
        if self.requests.find_pending_by_user(user_id) is not None:
            return AccountStatus.PENDING_DELETION
        profile = self.profiles.get(user_id)
        if profile is not None and profile.account_status == AccountStatus.DELETED:
            return AccountStatus.DELETED
        return AccountStatus.ACTIVE

    def reconcile_account_status(self, user_id: str) -> bool:
        """Write the effective status back to the profile when the column drifted.

        Repairs a profile left in ``pending_deletion`` by a recovery whose second
        write failed. Returns True when a write was made.
        """
        if not user_id:
            raise ValidationError("user_id is required")
        profile = self.profiles.get(user_id)
        if profile is None:
            raise NotFoundError("Profile not found", details={"user_id": user_id})

        pending = self.requests.find_pending_by_user(user_id)
        if pending is not None:
            if profile.account_status == AccountStatus.PENDING_DELETION:
                return False
            fields = {"account_status": AccountStatus.PENDING_DELETION, "deletion_requested_at": pending.requested_at}
        else:
            if profile.account_status != AccountStatus.PENDING_DELETION:
                return False
            fields = {"account_status": AccountStatus.ACTIVE, "deletion_requested_at": None}

        self.profiles.upsert(user_id, fields)
        logger.warning(
            "Account status for user %s repaired: %s -> %s",
            user_id,
            profile.account_status.value,
            fields["account_status"].value,
        )
        return True

    def purge(self, user_id: str, *, force: bool = False) -> PurgeResult:
        """Permanently remove the user's data once their request is due.

        No pending request, or one that is not yet due (unless ``force``), is a
        no-op. Every step deletes idempotently, so a run that failed halfway is
        retried by the next trigger; the request stays pending until the end.
        """
        if not user_id:
            raise ValidationError("user_id is required")

        pending = self.requests.list_pending_by_user(user_id)
        if not pending:
            logger.info("Purge skipped for user %s: no pending deletion request", user_id)
            return PurgeResult(user_id=user_id, purged=False, reason="no_pending_request")

        now = self.clock()
        if not force and not any(r.is_due(now) for r in pending):
            logger.info("Purge skipped for user %s: recovery window still open", user_id)
            return PurgeResult(user_id=user_id, purged=False, reason="not_due")

        steps = [SagaStep(name="delete_preferences", action=lambda: self.preferences.delete(user_id))]
        for extra in self.extra_purge_steps:
            steps.append(SagaStep(name=extra.name, action=lambda a=extra.action: a(user_id)))
        steps.append(SagaStep(name="delete_profile", action=lambda: self.profiles.delete(user_id)))
        if self.purge_identity:
            steps.append(SagaStep(name="delete_identity", action=lambda: self.identity.delete_user(user_id)))
        for request in pending:
            steps.append(
                SagaStep(
                    name=f"complete_request:{request.id}",
                    action=lambda rid=request.id: self.requests.update_status(rid, DeletionStatus.COMPLETED, now),
                )
            )

        request_ids = [r.id for r in pending]
        logger.info("Purging user %s (requests %s)", user_id, ", ".join(request_ids))
        Saga(operation="purge", steps=steps, context={"user_id": user_id, "request_ids": request_ids}).run()
        logger.info("Purged user %s", user_id)
        return PurgeResult(user_id=user_id, purged=True, request_ids=request_ids, steps=[s.name for s in steps])

    def purge_due(self, now: datetime | None = None) -> PurgeRunSummary:
        """Purge every user whose recovery window has closed.

        One user's failure is recorded in the summary and does not stop the run.
        """
        now = now or self.clock()
        due = self.requests.list_due(now)
        summary = PurgeRunSummary()
        seen: set[str] = set()
        for request in due:
            if request.user_id in seen:
                continue
            seen.add(request.user_id)
            summary.processed += 1
            try:
                result = self.purge(request.user_id, force=True)
            except AccountError as exc:
                logger.error("Purge failed for user %s: %s", request.user_id, exc)
                summary.failed += 1
                summary.errors[request.user_id] = exc.message
                continue
            if result.purged:
                summary.purged += 1
                summary.purged_user_ids.append(request.user_id)

        logger.info(
            "Purge run finished: %d processed, %d purged, %d failed",
            summary.processed,
            summary.purged,
            summary.failed,
        )
        return summary
