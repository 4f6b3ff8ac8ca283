from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

ONBOARDING_METADATA_KEY = "has_completed_onboarding"


@dataclass(frozen=True)
class IdentityUser:
    """Authentication record as seen by this service.

    ``metadata`` is the provider's opaque user metadata map. The names come
    already normalized by the provider adapter (given/family name, avatar).
    """

    id: str
    email: str | None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def onboarding_flag(self) -> bool:
        return self.metadata.get(ONBOARDING_METADATA_KEY) is True

    @property
    def first_name(self) -> str:
        return self.metadata.get("given_name") or self.metadata.get("first_name") or ""

    @property
    def last_name(self) -> str:
        return self.metadata.get("family_name") or self.metadata.get("last_name") or ""

    @property
    def avatar_url(self) -> str:
        return self.metadata.get("avatar_url") or self.metadata.get("picture") or ""
