from __future__ import annotations

import hashlib
import os
from dataclasses import dataclass
from typing import Any

try:
    from supabase import Client, ClientOptions, create_client
except Exception:  # pragma: no cover - env without supabase installed
    Client = Any  # type: ignore
    ClientOptions = None  # type: ignore
    create_client = None  # type: ignore


@dataclass(slots=True)
class UserInfo:
    id: str
    email: str | None


def _client_options() -> Any:
    if ClientOptions is None:
        return None
    timeout = int(os.getenv("SUPABASE_TIMEOUT_SECONDS", "10"))
    return ClientOptions(postgrest_client_timeout=timeout, storage_client_timeout=timeout)


class SupabaseAuthAdapter:
    """Small wrapper to validate Supabase access tokens.

    When SUPABASE_DISABLED=1, this returns a fake user for any token.
    """

    def __init__(self) -> None:
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.url = os.getenv("SUPABASE_URL")
        self.key = os.getenv("SUPABASE_ANON_KEY")
        self._client: Client | None = None
        if not self.disabled and self.url and self.key and create_client is not None:
            self._client = create_client(self.url, self.key)

    def validate_token(self, token: str) -> UserInfo:
        if not token:
            raise ValueError("Missing access token")
        if self.disabled or not self._client:
            # Deterministic fake user per token; tests address users by token
            digest = hashlib.sha256(token.encode()).hexdigest()[:12]
            return UserInfo(id=f"fake-{digest}", email=f"{digest}@example.test")
        try:
            res = self._client.auth.get_user(token)  # type: ignore[attr-defined]
            user = res.user  # type: ignore[assignment]
            if not user:
                raise ValueError("Invalid access token")
            return UserInfo(id=user.id, email=user.email)  # type: ignore[attr-defined]
        except Exception as exc:  # pragma: no cover - network path
            raise ValueError(f"Invalid access token: {exc}") from exc


_ADMIN_CLIENT_SINGLETON: Client | None = None


def get_supabase_admin_client() -> Client | None:
    """Service-role client.

    Deletion requests, purges and auth admin calls need the service role;
    an anon-key client can only read a user's own rows.
    """
    global _ADMIN_CLIENT_SINGLETON
    disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SUPABASE_SERVICE_ROLE_KEY")
    if disabled or create_client is None or not url or not key:
        return None
    if _ADMIN_CLIENT_SINGLETON is None:
        _ADMIN_CLIENT_SINGLETON = create_client(url, key, options=_client_options())
    return _ADMIN_CLIENT_SINGLETON
