from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from src.domain.entities.identity import ONBOARDING_METADATA_KEY
from src.domain.errors import AccountError, ValidationError
from src.domain.ports import IdentityStore, PreferenceStore, ProfileStore
from src.domain.services.onboarding_policy import METADATA, PREFERENCES, PROFILE, OnboardingSignals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    value: bool
    fixed: bool = False
    repaired: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    signals: dict[str, bool | None] = field(default_factory=dict)


@dataclass
class StatusReconciler:
    """Effective onboarding state across identity, profile and preferences.

    The three records are written by different steps of onboarding and there
    is no transaction spanning them. The effective value is their OR; drift is
    repaired by writing ``True`` into the writable signals that lag behind.
    """

    identity: IdentityStore
    profiles: ProfileStore
    preferences: PreferenceStore

    def read_signals(self, user_id: str) -> OnboardingSignals:
        if not user_id:
            raise ValidationError("user_id is required")

        def metadata() -> bool | None:
            user = self.identity.get_user(user_id)
            return None if user is None else user.onboarding_flag

        def profile() -> bool | None:
            entity = self.profiles.get(user_id)
            return None if entity is None else entity.has_completed_onboarding

        def preferences() -> bool | None:
            return self.preferences.exists(user_id)

        return OnboardingSignals(
            metadata=self._read(user_id, METADATA, metadata),
            profile=self._read(user_id, PROFILE, profile),
            preferences=self._read(user_id, PREFERENCES, preferences),
        )

    def _read(self, user_id: str, name: str, fn: Callable[[], bool | None]) -> bool | None:
        try:
            return fn()
        except AccountError as exc:
            logger.warning("Onboarding signal %s unreadable for user %s: %s", name, user_id, exc)
            return None

    def is_onboarding_complete(self, user_id: str) -> bool:
        return self.read_signals(user_id).complete

    def reconcile(self, user_id: str) -> ReconcileResult:
        """Compute the effective flag and repair the signals that disagree.

        Repair write failures are logged and reported in ``failed``; they never
        fail the call. Signals that could not be read are left alone.
        """
        signals = self.read_signals(user_id)
        drifted = signals.drifted()
        if not drifted:
            return ReconcileResult(value=signals.complete, signals=signals.as_dict())

        logger.info("Onboarding drift for user %s: %s", user_id, signals.as_dict())
        writers: dict[str, Callable[[], object]] = {
            METADATA: lambda: self.identity.update_metadata(user_id, {ONBOARDING_METADATA_KEY: True}),
            PROFILE: lambda: self.profiles.upsert(user_id, {"has_completed_onboarding": True}),
        }
        repaired: list[str] = []
        failed: list[str] = []
        for name in drifted:
            try:
                writers[name]()
            except AccountError as exc:
                logger.warning("Failed to repair %s onboarding flag for user %s: %s", name, user_id, exc)
                failed.append(name)
                continue
            logger.info("Repaired %s onboarding flag for user %s", name, user_id)
            repaired.append(name)

        return ReconcileResult(
            value=signals.complete,
            fixed=bool(repaired),
            repaired=repaired,
            failed=failed,
            signals=signals.as_dict(),
        )

    def mark_onboarding_complete(self, user_id: str) -> None:
        """Record onboarding completion.

        The profile flag is the authoritative write and its failure propagates.
        The metadata flag is a mirror: if it fails, ``reconcile`` fixes it.
        """
        if not user_id:
            raise ValidationError("user_id is required")
        self.profiles.upsert(user_id, {"has_completed_onboarding": True})
        try:
            self.identity.update_metadata(user_id, {ONBOARDING_METADATA_KEY: True})
        except AccountError as exc:
            logger.warning("Onboarding metadata mirror failed for user %s: %s", user_id, exc)
