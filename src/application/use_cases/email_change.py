from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Callable

from src.domain.errors import AccessDeniedError, NotFoundError, ValidationError
from src.domain.ports import AccountNotifier, IdentityStore, ProfileStore
from src.domain.services.saga import Saga, SagaStep

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class EmailChangeResult:
    accepted: bool
    message: str


@dataclass
class EmailChangeCoordinator:
    """Two-phase email change.

    Phase one records the pending address on the profile and has the identity
    provider issue a verification challenge. The profile email only changes in
    phase two, when the verified address comes back.
    """

    profiles: ProfileStore
    identity: IdentityStore
    notifier: AccountNotifier | None = None
    clock: Callable[[], datetime] = _utcnow

    def request_email_change(self, actor_id: str, user_id: str, new_email: str) -> EmailChangeResult:
        if not actor_id or actor_id != user_id:
            raise AccessDeniedError("You can only change your own email address")

        new_email = (new_email or "").strip()
        if not EMAIL_RE.match(new_email):
            raise ValidationError("A valid email address is required", details={"field": "new_email"})

        profile = self.profiles.get(user_id)
        if profile is None:
            raise NotFoundError("Profile not found")

        if profile.email and profile.email.casefold() == new_email.casefold():
            return EmailChangeResult(accepted=False, message="New email is the same as the current email")

        owner = self.profiles.find_by_email(new_email)
        if owner is not None and owner.id != user_id:
            return EmailChangeResult(accepted=False, message="Email address is already in use")

        restore = {
            "pending_email_change": profile.pending_email_change,
            "email_change_requested_at": profile.email_change_requested_at,
            "email_verified": profile.email_verified,
        }
        _, link = Saga(
            operation="request_email_change",
            steps=[
                SagaStep(
                    name="record_pending_change",
                    action=lambda: self.profiles.upsert(
                        user_id,
                        {
                            "pending_email_change": new_email,
                            "email_change_requested_at": self.clock(),
                            "email_verified": False,
                        },
                    ),
                    compensate=lambda: self.profiles.upsert(user_id, restore),
                ),
                SagaStep(
                    name="issue_challenge",
                    action=lambda: self.identity.issue_email_change(user_id, new_email),
                ),
            ],
            context={"user_id": user_id},
        ).run()

        if self.notifier is not None and not self.notifier.send_email_change_verification(new_email, link):
            logger.warning("Verification email for user %s could not be delivered", user_id)

        logger.info("Email change requested for user %s", user_id)
        return EmailChangeResult(
            accepted=True,
            message=f"Verification email sent to {new_email}. Check your inbox to confirm the change.",
        )

    def complete_email_change(self, user_id: str, verified_email: str) -> bool:
        """Apply a verified address.

        Returns False without writing when nothing matching is pending, which
        is what a replayed or stale verification callback looks like.
        """
        if not user_id or not verified_email:
            raise ValidationError("user_id and verified_email are required")

        profile = self.profiles.get(user_id)
        if profile is None:
            raise NotFoundError("Profile not found")

        pending = profile.pending_email_change
        if not pending or pending.casefold() != verified_email.strip().casefold():
            logger.info("Ignoring email verification for user %s: no matching pending change", user_id)
            return False

        self.profiles.upsert(
            user_id,
            {
                "email": pending,
                "pending_email_change": None,
                "email_change_requested_at": None,
                "email_verified": True,
            },
        )
        logger.info("Email change completed for user %s", user_id)
        return True

    def confirm_from_identity(self, user_id: str) -> bool:
        """Finish the change once the identity provider reports the new address.

        The address is read from the identity record, which only changes after
        the user follows the verification link.
        """
        if not user_id:
            raise ValidationError("user_id is required")
        user = self.identity.get_user(user_id)
        if user is None or not user.email:
            logger.info("Ignoring email verification for user %s: no identity email", user_id)
            return False
        return self.complete_email_change(user_id, user.email)

    def cancel_email_change(self, actor_id: str, user_id: str) -> bool:
        if not actor_id or actor_id != user_id:
            raise AccessDeniedError("You can only change your own email address")

        profile = self.profiles.get(user_id)
        if profile is None:
            raise NotFoundError("Profile not found")
        if not profile.pending_email_change:
            return False

        self.profiles.upsert(
            user_id,
            {"pending_email_change": None, "email_change_requested_at": None, "email_verified": True},
        )
        logger.info("Email change cancelled for user %s", user_id)
        return True
