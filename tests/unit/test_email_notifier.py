from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import Mock

import httpx

from src.infrastructure.notifications import email_notifier
from src.infrastructure.notifications.email_notifier import EmailNotifier

PURGE_AT = datetime(2024, 1, 31, tzinfo=UTC)


def test_recovery_url():
    notifier = EmailNotifier(mode="console", app_url="https://getplanora.app/")
    assert notifier.recovery_url("abc") == "https://getplanora.app/cancel-deletion?token=abc"


def test_console_mode_logs(caplog):
    notifier = EmailNotifier(mode="console", app_url="https://getplanora.app")
    with caplog.at_level("INFO"):
        assert notifier.send_deletion_scheduled("ada@example.com", "abc", PURGE_AT) is True
    assert "cancel-deletion?token=abc" in caplog.text
    assert "2024-01-31" in caplog.text


def test_resend_without_key_falls_back_to_console(monkeypatch):
    monkeypatch.delenv("RESEND_API_KEY", raising=False)
    assert EmailNotifier(mode="resend").mode == "console"


def test_resend_success(monkeypatch):
    post = Mock(return_value=Mock(status_code=200, text="{}"))
    monkeypatch.setattr(email_notifier.httpx, "post", post)
    notifier = EmailNotifier(mode="resend", resend_api_key="re_test", from_address="Planora <a@b.co>")

    assert notifier.send_email_change_verification("ada@example.com", "https://link") is True

    payload = post.call_args.kwargs["json"]
    assert payload["to"] == ["ada@example.com"]
    assert "https://link" in payload["html"]
    assert post.call_args.kwargs["headers"] == {"Authorization": "Bearer re_test"}


def test_resend_failures_return_false(monkeypatch):
    notifier = EmailNotifier(mode="resend", resend_api_key="re_test")

    monkeypatch.setattr(email_notifier.httpx, "post", Mock(return_value=Mock(status_code=422, text="bad")))
    assert notifier.send_deletion_scheduled("ada@example.com", "abc", PURGE_AT) is False

    monkeypatch.setattr(email_notifier.httpx, "post", Mock(side_effect=httpx.ConnectError("down")))
    assert notifier.send_deletion_scheduled("ada@example.com", "abc", PURGE_AT) is False


def test_missing_link_is_not_sent(monkeypatch):
    post = Mock()
    monkeypatch.setattr(email_notifier.httpx, "post", post)
    notifier = EmailNotifier(mode="resend", resend_api_key="re_test")

    assert notifier.send_email_change_verification("ada@example.com", None) is True
    post.assert_not_called()
