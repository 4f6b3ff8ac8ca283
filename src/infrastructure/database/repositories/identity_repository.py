from __future__ import annotations

import json
import os
import secrets
from typing import Any

from src.domain.entities.identity import IdentityUser
from src.domain.errors import StoreError
from src.infrastructure.database.postgres_client import as_json, get_postgres_client
from src.infrastructure.database.store_calls import run_store_call

try:
    from supabase import Client
except Exception:  # pragma: no cover
    Client = object  # type: ignore

# module-level in-memory store for disabled mode
_MEM_IDENTITIES: dict[str, IdentityUser] = {}
# email-change challenges issued without a provider: token -> (user id, new email)
_MEM_EMAIL_CHALLENGES: dict[str, tuple[str, str]] = {}


def _is_not_found(exc: Exception) -> bool:
    return getattr(exc, "status", None) == 404 or "not found" in str(exc).lower()


class IdentityRepository:
    """Authentication records and their user metadata.

    Supabase mode talks to the GoTrue admin API and therefore needs the
    service-role client. Local PostgreSQL mode keeps identities in a ``users``
    table with a JSONB ``metadata`` column.
    """

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    def _row_to_user(self, row: dict) -> IdentityUser:
        metadata = row.get("metadata") or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        return IdentityUser(id=str(row["id"]), email=row.get("email"), metadata=dict(metadata))

    def get_user(self, user_id: str) -> IdentityUser | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            row = run_store_call(
                "identity.get_user",
                lambda: self.pg_client.execute_one("SELECT * FROM users WHERE id = %s", (user_id,)),
            )
            return self._row_to_user(row) if row else None

        # In-memory mode
        if self.disabled or self.client is None:
            return _MEM_IDENTITIES.get(user_id)

        # Supabase mode
        def fetch() -> IdentityUser | None:  # pragma: no cover - network
            try:
                res = self.client.auth.admin.get_user_by_id(user_id)  # type: ignore[attr-defined]
            except Exception as exc:
                if _is_not_found(exc):
                    return None
                raise
            user = res.user
            if user is None:
                return None
            return IdentityUser(id=user.id, email=user.email, metadata=dict(user.user_metadata or {}))

        return run_store_call("identity.get_user", fetch)

    def update_metadata(self, user_id: str, metadata: dict[str, Any]) -> None:
        """Merge ``metadata`` into the user's metadata map."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = """
                INSERT INTO users (id, metadata) VALUES (%s, %s)
                ON CONFLICT (id) DO UPDATE SET metadata = users.metadata || EXCLUDED.metadata
            """
            run_store_call(
                "identity.update_metadata",
                lambda: self.pg_client.execute_update(query, (user_id, as_json(metadata))),
            )
            return

        # In-memory mode
        if self.disabled or self.client is None:
            current = _MEM_IDENTITIES.get(user_id) or IdentityUser(id=user_id, email=None)
            _MEM_IDENTITIES[user_id] = IdentityUser(
                id=user_id, email=current.email, metadata={**current.metadata, **metadata}
            )
            return

        # Supabase mode: GoTrue replaces user_metadata wholesale, so merge first
        def write() -> None:  # pragma: no cover - network
            res = self.client.auth.admin.get_user_by_id(user_id)  # type: ignore[attr-defined]
            merged = {**(res.user.user_metadata or {}), **metadata}
            self.client.auth.admin.update_user_by_id(user_id, {"user_metadata": merged})  # type: ignore[attr-defined]

        run_store_call("identity.update_metadata", write)

    def delete_user(self, user_id: str) -> None:
        """Delete the auth record. Deleting a missing user succeeds."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            run_store_call(
                "identity.delete_user",
                lambda: self.pg_client.execute_update("DELETE FROM users WHERE id = %s", (user_id,)),
            )
            return

        # In-memory mode
        if self.disabled or self.client is None:
            _MEM_IDENTITIES.pop(user_id, None)
            return

        # Supabase mode
        def remove() -> None:  # pragma: no cover - network
            try:
                self.client.auth.admin.delete_user(user_id)  # type: ignore[attr-defined]
            except Exception as exc:
                if not _is_not_found(exc):
                    raise

        run_store_call("identity.delete_user", remove)

    def issue_email_change(self, user_id: str, new_email: str) -> str | None:
        """Create the email-change challenge for ``new_email``.

        Returns the verification link for the notifier to deliver. Without a
        provider (memory and local database modes) the challenge is kept in
        process and confirmed with ``confirm_email_change``.
        """
        if (self.use_local_db and self.pg_client) or self.disabled or self.client is None:
            token = secrets.token_urlsafe(24)
            _MEM_EMAIL_CHALLENGES[token] = (user_id, new_email)
            return f"{os.getenv('APP_URL', 'http://localhost:3000')}/auth/email-change?token={token}"

        def generate() -> str | None:  # pragma: no cover - network
            current = self.client.auth.admin.get_user_by_id(user_id).user  # type: ignore[attr-defined]
            res = self.client.auth.admin.generate_link(  # type: ignore[attr-defined]
                {
                    "type": "email_change_new",
                    "email": current.email,
                    "new_email": new_email,
                    "options": {"redirect_to": f"{os.getenv('APP_URL', 'http://localhost:3000')}/auth/email-change"},
                }
            )
            return res.properties.action_link

        return run_store_call("identity.issue_email_change", generate)

    def confirm_email_change(self, token: str) -> bool:
        """Accept an offline email-change challenge and set the identity email.

        Returns False for an unknown or already used token. In Supabase mode the
        provider confirms the link itself, so calling this is an error.
        """
        if not (self.use_local_db and self.pg_client) and not (self.disabled or self.client is None):
            raise StoreError(
                "Email changes are confirmed by the identity provider", operation="identity.confirm_email_change"
            )
        challenge = _MEM_EMAIL_CHALLENGES.pop(token, None)
        if challenge is None:
            return False
        user_id, new_email = challenge

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = """
                INSERT INTO users (id, email) VALUES (%s, %s)
                ON CONFLICT (id) DO UPDATE SET email = EXCLUDED.email
            """
            run_store_call(
                "identity.confirm_email_change",
                lambda: self.pg_client.execute_update(query, (user_id, new_email)),
            )
            return True

        # In-memory mode
        current = _MEM_IDENTITIES.get(user_id) or IdentityUser(id=user_id, email=None)
        _MEM_IDENTITIES[user_id] = IdentityUser(id=user_id, email=new_email, metadata=dict(current.metadata))
        return True


def reset_memory() -> None:
    _MEM_IDENTITIES.clear()
    _MEM_EMAIL_CHALLENGES.clear()
