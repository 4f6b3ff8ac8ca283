"""
Tests for the in-memory mode of the record store repositories.
"""
from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import Mock

import pytest

from src.application.use_cases.status_reconciler import StatusReconciler
from src.domain.entities.deletion_request import DeletionRequestEntity, DeletionStatus
from src.domain.entities.profile import AccountStatus
from src.domain.errors import NotFoundError, StoreError, ValidationError
from src.domain.ports import DeletionRequestStore, IdentityStore, PreferenceStore, ProfileStore
from src.infrastructure.database.repositories.deletion_request_repository import DeletionRequestRepository
from src.infrastructure.database.repositories.profile_repository import ProfileRepository

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _request(request_id: str, user_id: str, token: str, requested_at: datetime = T0) -> DeletionRequestEntity:
    return DeletionRequestEntity(
        id=request_id,
        user_id=user_id,
        email=f"{user_id}@example.com",
        requested_at=requested_at,
        scheduled_purge_at=requested_at + timedelta(days=30),
        recovery_token=token,
    )


def test_repositories_satisfy_ports(stores):
    assert isinstance(stores.identity, IdentityStore)
    assert isinstance(stores.profiles, ProfileStore)
    assert isinstance(stores.preferences, PreferenceStore)
    assert isinstance(stores.requests, DeletionRequestStore)


class TestProfileRepository:
    def test_unknown_column_fails_before_write(self, stores):
        with pytest.raises(ValidationError) as exc_info:
            stores.profiles.upsert("u1", {"first_name": "Ada", "birthdate": "1815-12-10"})

        assert exc_info.value.details == {"fields": ["birthdate"]}
        assert stores.profiles.get("u1") is None

    def test_upsert_merges_fields(self, stores):
        stores.profiles.upsert("u1", {"email": "ada@example.com", "first_name": "Ada"})
        profile = stores.profiles.upsert("u1", {"last_name": "Lovelace", "account_status": "pending_deletion"})

        assert profile.first_name == "Ada"
        assert profile.display_name == "Ada Lovelace"
        assert profile.account_status == AccountStatus.PENDING_DELETION
        assert profile.created_at is not None

    def test_find_by_email_ignores_case(self, stores):
        stores.profiles.upsert("u1", {"email": "Ada@Example.com"})
        assert stores.profiles.find_by_email("ada@example.COM").id == "u1"
        assert stores.profiles.find_by_email("bob@example.com") is None

    def test_delete_is_idempotent(self, stores):
        stores.profiles.upsert("u1", {"email": "ada@example.com"})
        stores.profiles.delete("u1")
        stores.profiles.delete("u1")
        assert stores.profiles.get("u1") is None


    def test_malformed_row_is_a_store_error(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_DISABLED", "0")
        client = Mock()
        query = client.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.return_value.data = [{"id": "u1", "account_status": "archived"}]

        with pytest.raises(StoreError) as exc_info:
            ProfileRepository(client).get("u1")

        assert exc_info.value.retryable is False

    def test_malformed_row_reads_as_unreadable_signal(self, monkeypatch, stores):
        monkeypatch.setenv("SUPABASE_DISABLED", "0")
        client = Mock()
        query = client.table.return_value.select.return_value.eq.return_value.limit.return_value
        query.execute.return_value.data = [{"id": "u1", "has_completed_onboarding": True, "account_status": "archived"}]
        reconciler = StatusReconciler(stores.identity, ProfileRepository(client), stores.preferences)

        assert reconciler.read_signals("u1").profile is None


class TestDeletionRequestRepository:
    def test_pending_requests_newest_first(self, stores):
        stores.requests.insert(_request("r1", "u1", "t1", T0))
        stores.requests.insert(_request("r2", "u1", "t2", T0 + timedelta(hours=1)))

        assert [r.id for r in stores.requests.list_pending_by_user("u1")] == ["r2", "r1"]
        assert stores.requests.find_pending_by_user("u1").id == "r2"

    def test_duplicate_token_is_rejected(self, stores):
        stores.requests.insert(_request("r1", "u1", "same"))
        with pytest.raises(StoreError):
            stores.requests.insert(_request("r2", "u2", "same"))

    def test_completed_rows_are_immutable(self, stores):
        stores.requests.insert(_request("r1", "u1", "t1"))
        stores.requests.update_status("r1", DeletionStatus.COMPLETED, T0)

        with pytest.raises(NotFoundError):
            stores.requests.update_status("r1", DeletionStatus.CANCELLED, T0)
        assert stores.requests.find_by_token("t1").status == DeletionStatus.COMPLETED

    def test_cancelled_request_cannot_be_completed(self, stores):
        stores.requests.insert(_request("r1", "u1", "t1"))
        stores.requests.update_status("r1", DeletionStatus.CANCELLED, T0)

        with pytest.raises(NotFoundError):
            stores.requests.update_status("r1", DeletionStatus.COMPLETED, T0 + timedelta(days=31))

        request = stores.requests.find_by_token("t1")
        assert request.status == DeletionStatus.CANCELLED
        assert request.purged_at is None

    def test_second_cancel_loses_the_race(self, stores):
        stores.requests.insert(_request("r1", "u1", "t1"))
        stores.requests.update_status("r1", DeletionStatus.CANCELLED, T0)

        with pytest.raises(NotFoundError):
            stores.requests.update_status("r1", DeletionStatus.CANCELLED, T0 + timedelta(hours=1))
        assert stores.requests.find_by_token("t1").cancelled_at == T0

    def test_update_of_unknown_request(self, stores):
        with pytest.raises(NotFoundError):
            stores.requests.update_status("missing", DeletionStatus.CANCELLED, T0)

    def test_supabase_update_matching_no_pending_row(self, monkeypatch):
        monkeypatch.setenv("SUPABASE_DISABLED", "0")
        client = Mock()
        by_id = client.table.return_value.update.return_value.eq.return_value
        by_id.eq.return_value.execute.return_value.data = []

        with pytest.raises(NotFoundError):
            DeletionRequestRepository(client).update_status("r1", DeletionStatus.COMPLETED, T0)

        by_id.eq.assert_called_once_with("status", "pending")

    def test_list_due(self, stores):
        stores.requests.insert(_request("r1", "u1", "t1", T0))
        stores.requests.insert(_request("r2", "u2", "t2", T0 + timedelta(days=5)))
        stores.requests.insert(_request("r3", "u3", "t3", T0 - timedelta(days=1)))
        stores.requests.update_status("r3", DeletionStatus.CANCELLED, T0)

        due = stores.requests.list_due(T0 + timedelta(days=31))

        assert [r.id for r in due] == ["r1"]


class TestIdentityRepository:
    def test_update_metadata_merges(self, stores):
        stores.identity.update_metadata("u1", {"given_name": "Ada"})
        stores.identity.update_metadata("u1", {"has_completed_onboarding": True})

        user = stores.identity.get_user("u1")
        assert user.first_name == "Ada"
        assert user.onboarding_flag is True

    def test_delete_missing_user_succeeds(self, stores):
        stores.identity.delete_user("nobody")
        assert stores.identity.get_user("nobody") is None

    def test_offline_email_change_is_confirmed_by_token(self, stores):
        stores.identity.update_metadata("u1", {"given_name": "Ada"})
        link = stores.identity.issue_email_change("u1", "new@example.com")
        token = link.split("token=", 1)[1]

        assert stores.identity.get_user("u1").email is None
        assert stores.identity.confirm_email_change(token) is True

        user = stores.identity.get_user("u1")
        assert user.email == "new@example.com"
        assert user.first_name == "Ada"
        assert stores.identity.confirm_email_change(token) is False

    def test_unknown_email_change_token(self, stores):
        assert stores.identity.confirm_email_change("nope") is False
