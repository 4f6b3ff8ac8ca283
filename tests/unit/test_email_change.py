"""
Tests for the two-phase email change.
"""
from __future__ import annotations

from unittest.mock import Mock

import pytest

from src.application.use_cases.email_change import EmailChangeCoordinator
from src.domain.errors import AccessDeniedError, NotFoundError, StoreError, ValidationError


@pytest.fixture
def notifier():
    mock = Mock()
    mock.send_email_change_verification.return_value = True
    return mock


@pytest.fixture
def coordinator(stores, notifier, clock):
    stores.profiles.upsert("u1", {"email": "ada@example.com", "email_verified": True})
    return EmailChangeCoordinator(profiles=stores.profiles, identity=stores.identity, notifier=notifier, clock=clock)


def test_request_records_pending_change(coordinator, stores, notifier, clock):
    result = coordinator.request_email_change("u1", "u1", "ada@new.example.com")

    assert result.accepted is True
    profile = stores.profiles.get("u1")
    assert profile.email == "ada@example.com"
    assert profile.pending_email_change == "ada@new.example.com"
    assert profile.email_change_requested_at == clock.now
    assert profile.email_verified is False
    address, link = notifier.send_email_change_verification.call_args.args
    assert address == "ada@new.example.com"
    assert "token=" in link


def test_other_users_account_is_denied(coordinator):
    with pytest.raises(AccessDeniedError):
        coordinator.request_email_change("intruder", "u1", "x@example.com")


@pytest.mark.parametrize("email", ["", "not-an-email", "a@b", "two words@example.com"])
def test_malformed_address_is_rejected(coordinator, email):
    with pytest.raises(ValidationError):
        coordinator.request_email_change("u1", "u1", email)


def test_missing_profile(coordinator):
    with pytest.raises(NotFoundError):
        coordinator.request_email_change("u2", "u2", "bob@example.com")


def test_same_address_is_not_accepted(coordinator, stores, notifier):
    result = coordinator.request_email_change("u1", "u1", "ADA@example.com")

    assert result.accepted is False
    assert stores.profiles.get("u1").pending_email_change is None
    notifier.send_email_change_verification.assert_not_called()


def test_address_of_another_profile_is_not_accepted(coordinator, stores):
    stores.profiles.upsert("u2", {"email": "bob@example.com"})

    result = coordinator.request_email_change("u1", "u1", "bob@example.com")

    assert result.accepted is False
    assert "in use" in result.message


def test_failed_challenge_restores_profile(stores, notifier, clock):
    stores.profiles.upsert("u1", {"email": "ada@example.com", "email_verified": True})
    identity = Mock()
    identity.issue_email_change.side_effect = StoreError("gotrue down", retryable=True)
    coordinator = EmailChangeCoordinator(stores.profiles, identity, notifier, clock)

    with pytest.raises(StoreError):
        coordinator.request_email_change("u1", "u1", "ada@new.example.com")

    profile = stores.profiles.get("u1")
    assert profile.pending_email_change is None
    assert profile.email_verified is True
    notifier.send_email_change_verification.assert_not_called()


def test_notifier_failure_does_not_fail_request(coordinator, notifier):
    notifier.send_email_change_verification.return_value = False
    assert coordinator.request_email_change("u1", "u1", "ada@new.example.com").accepted is True


def test_complete_applies_verified_address(coordinator, stores):
    coordinator.request_email_change("u1", "u1", "ada@new.example.com")

    assert coordinator.complete_email_change("u1", "Ada@New.example.com") is True

    profile = stores.profiles.get("u1")
    assert profile.email == "ada@new.example.com"
    assert profile.pending_email_change is None
    assert profile.email_change_requested_at is None
    assert profile.email_verified is True


def test_replayed_callback_is_a_noop(coordinator, stores):
    coordinator.request_email_change("u1", "u1", "ada@new.example.com")
    coordinator.complete_email_change("u1", "ada@new.example.com")
    before = stores.profiles.get("u1")

    assert coordinator.complete_email_change("u1", "ada@new.example.com") is False
    assert stores.profiles.get("u1") == before


def test_stale_callback_for_replaced_request(coordinator, stores):
    coordinator.request_email_change("u1", "u1", "first@example.com")
    coordinator.request_email_change("u1", "u1", "second@example.com")

    assert coordinator.complete_email_change("u1", "first@example.com") is False
    assert stores.profiles.get("u1").pending_email_change == "second@example.com"


def _confirm_link(notifier, stores):
    link = notifier.send_email_change_verification.call_args.args[1]
    return stores.identity.confirm_email_change(link.split("token=", 1)[1])


def test_confirm_from_identity_after_link_is_followed(coordinator, stores, notifier):
    coordinator.request_email_change("u1", "u1", "ada@new.example.com")
    assert _confirm_link(notifier, stores) is True

    assert coordinator.confirm_from_identity("u1") is True

    profile = stores.profiles.get("u1")
    assert profile.email == "ada@new.example.com"
    assert profile.email_verified is True


def test_confirm_from_identity_without_following_link(coordinator, stores):
    stores.identity.update_metadata("u1", {"given_name": "Ada"})
    coordinator.request_email_change("u1", "u1", "victim@example.com")

    assert coordinator.confirm_from_identity("u1") is False

    profile = stores.profiles.get("u1")
    assert profile.email == "ada@example.com"
    assert profile.pending_email_change == "victim@example.com"


def test_confirm_from_identity_ignores_other_address(coordinator, stores, notifier):
    coordinator.request_email_change("u1", "u1", "first@example.com")
    first_link = notifier.send_email_change_verification.call_args.args[1]
    coordinator.request_email_change("u1", "u1", "second@example.com")
    stores.identity.confirm_email_change(first_link.split("token=", 1)[1])

    assert coordinator.confirm_from_identity("u1") is False
    assert stores.profiles.get("u1").pending_email_change == "second@example.com"


def test_cancel_clears_pending_change(coordinator, stores):
    coordinator.request_email_change("u1", "u1", "ada@new.example.com")

    assert coordinator.cancel_email_change("u1", "u1") is True

    profile = stores.profiles.get("u1")
    assert profile.pending_email_change is None
    assert profile.email_verified is True
    assert coordinator.cancel_email_change("u1", "u1") is False


def test_cancel_for_other_user_is_denied(coordinator):
    with pytest.raises(AccessDeniedError):
        coordinator.cancel_email_change("u2", "u1")
