from __future__ import annotations

import logging
from dataclasses import dataclass

from src.domain.entities.profile import AccountStatus, ProfileEntity
from src.domain.errors import AccountError, ValidationError
from src.domain.ports import IdentityStore, ProfileStore

logger = logging.getLogger(__name__)


@dataclass
class EnsureProfileUseCase:
    profiles: ProfileStore
    identity: IdentityStore

    def execute(self, user_id: str, email: str | None) -> ProfileEntity:
        """
        Return the caller's profile, creating it on first sign-in.

        The new row takes its names and avatar from the identity metadata and
        starts with onboarding not completed. An existing profile is returned
        untouched, except that a missing email is filled in.
        """
        if not user_id:
            raise ValidationError("user_id is required")

        profile = self.profiles.get(user_id)
        if profile is not None:
            if not profile.email and email:
                profile = self.profiles.upsert(user_id, {"email": email})
            return profile

        try:
            user = self.identity.get_user(user_id)
        except AccountError as exc:
            logger.warning("Identity lookup failed while creating profile for %s: %s", user_id, exc)
            user = None

        fields = {
            "email": email or (user.email if user else None),
            "first_name": user.first_name if user else "",
            "last_name": user.last_name if user else "",
            "avatar_url": user.avatar_url if user else "",
            "has_completed_onboarding": False,
            "account_status": AccountStatus.ACTIVE,
            "email_verified": True,
        }
        logger.info("Creating profile for user %s", user_id)
        return self.profiles.upsert(user_id, fields)
