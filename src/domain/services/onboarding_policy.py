from __future__ import annotations

from dataclasses import dataclass

METADATA = "metadata"
PROFILE = "profile"
PREFERENCES = "preferences"

# Signals that can be written back. A preference row cannot be created after
# the fact, so that signal is read-only.
WRITABLE_SIGNALS = (METADATA, PROFILE)


@dataclass(frozen=True)
class OnboardingSignals:
    """The three independent records that say a user finished onboarding.

    Each value is True/False when it could be read, or None when the record is
    missing or the read failed. Completion is the OR of the readable values:
    every signal is written by a different step of the onboarding flow and any
    one of them landing means the user finished.
    """

    metadata: bool | None = None
    profile: bool | None = None
    preferences: bool | None = None

    def as_dict(self) -> dict[str, bool | None]:
        return {METADATA: self.metadata, PROFILE: self.profile, PREFERENCES: self.preferences}

    @property
    def complete(self) -> bool:
        return any(value is True for value in self.as_dict().values())

    def drifted(self) -> list[str]:
        """Writable signals that disagree with the aggregate and can be repaired.

        Only a readable False can drift: when the aggregate is False every
        signal already agrees, and an unreadable signal is left alone.
        """
        if not self.complete:
            return []
        values = self.as_dict()
        return [name for name in WRITABLE_SIGNALS if values[name] is False]
