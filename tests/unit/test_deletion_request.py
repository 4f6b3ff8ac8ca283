from datetime import UTC, datetime, timedelta

from src.domain.entities.deletion_request import (
    DeletionRequestEntity,
    DeletionStatus,
    days_remaining,
    scheduled_purge_for,
)

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _request(**overrides) -> DeletionRequestEntity:
    data = dict(
        id="r1",
        user_id="u1",
        email="ada@example.com",
        requested_at=T0,
        scheduled_purge_at=scheduled_purge_for(T0),
        recovery_token="tok",
    )
    data.update(overrides)
    return DeletionRequestEntity(**data)


def test_schedule_is_thirty_days_by_default():
    assert scheduled_purge_for(T0) == datetime(2024, 1, 31, tzinfo=UTC)
    assert scheduled_purge_for(T0, 7) == T0 + timedelta(days=7)


def test_days_remaining():
    purge_at = scheduled_purge_for(T0)
    assert days_remaining(purge_at, T0) == 30
    assert days_remaining(purge_at, T0 + timedelta(days=10)) == 20
    assert days_remaining(purge_at, T0 + timedelta(days=29, seconds=1)) == 1
    assert days_remaining(purge_at, purge_at) == 0
    assert days_remaining(purge_at, purge_at + timedelta(days=3)) == 0


def test_is_due():
    request = _request()
    assert not request.is_due(T0 + timedelta(days=29))
    assert request.is_due(T0 + timedelta(days=30))
    assert not request.with_status(DeletionStatus.CANCELLED, T0).is_due(T0 + timedelta(days=31))


def test_with_status_stamps_time():
    cancelled = _request().with_status(DeletionStatus.CANCELLED, T0)
    assert cancelled.cancelled_at == T0 and cancelled.purged_at is None
    completed = _request().with_status(DeletionStatus.COMPLETED, T0)
    assert completed.purged_at == T0 and not completed.is_pending


def test_row_shape():
    row = _request().to_row()
    assert row == {
        "id": "r1",
        "user_id": "u1",
        "email": "ada@example.com",
        "requested_at": "2024-01-01T00:00:00+00:00",
        "scheduled_purge_at": "2024-01-31T00:00:00+00:00",
        "status": "pending",
        "recovery_token": "tok",
    }
