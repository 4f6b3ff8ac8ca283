from __future__ import annotations

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum

DEFAULT_GRACE_DAYS = 30


class DeletionStatus(str, Enum):
    PENDING = "pending"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


@dataclass(frozen=True)
class DeletionRequestEntity:
    id: str
    user_id: str
    email: str
    requested_at: datetime
    scheduled_purge_at: datetime
    recovery_token: str
    status: DeletionStatus = DeletionStatus.PENDING
    cancelled_at: datetime | None = None
    purged_at: datetime | None = None

    @property
    def is_pending(self) -> bool:
        return self.status == DeletionStatus.PENDING

    def is_due(self, now: datetime) -> bool:
        return self.is_pending and self.scheduled_purge_at <= now

    def with_status(self, status: DeletionStatus, at: datetime | None) -> DeletionRequestEntity:
        if status == DeletionStatus.CANCELLED:
            return replace(self, status=status, cancelled_at=at)
        if status == DeletionStatus.COMPLETED:
            return replace(self, status=status, purged_at=at)
        return replace(self, status=status)

    def to_row(self) -> dict:
        """Persisted shape of the request, timestamps as ISO-8601 UTC."""
        row = {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "requested_at": self.requested_at.isoformat(),
            "scheduled_purge_at": self.scheduled_purge_at.isoformat(),
            "status": self.status.value,
            "recovery_token": self.recovery_token,
        }
        if self.cancelled_at is not None:
            row["cancelled_at"] = self.cancelled_at.isoformat()
        if self.purged_at is not None:
            row["purged_at"] = self.purged_at.isoformat()
        return row


def scheduled_purge_for(requested_at: datetime, grace_days: int = DEFAULT_GRACE_DAYS) -> datetime:
    return requested_at + timedelta(days=grace_days)


def days_remaining(scheduled_purge_at: datetime, now: datetime) -> int:
    """Whole days left before purge, rounded up and never negative."""
    seconds = (scheduled_purge_at - now).total_seconds()
    if seconds <= 0:
        return 0
    return math.ceil(seconds / 86400)
