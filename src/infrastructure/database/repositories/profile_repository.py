from __future__ import annotations

import os
from dataclasses import replace
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from src.domain.entities.profile import PROFILE_COLUMNS, AccountStatus, ProfileEntity
from src.domain.errors import StoreError, ValidationError
from src.infrastructure.database.postgres_client import get_postgres_client
from src.infrastructure.database.store_calls import run_store_call

try:
    from supabase import Client
except Exception:  # pragma: no cover
    Client = object  # type: ignore

# module-level in-memory store for disabled mode
_MEM_PROFILES: dict[str, ProfileEntity] = {}


def _parse_ts(value: Any) -> datetime | None:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def _check_columns(fields: dict[str, Any]) -> None:
    unknown = sorted(set(fields) - PROFILE_COLUMNS)
    if unknown:
        raise ValidationError(
            f"Unknown profile field(s): {', '.join(unknown)}", details={"fields": unknown}
        )


def _to_db_value(value: Any, *, iso: bool) -> Any:
    if isinstance(value, Enum):
        return value.value
    if iso and isinstance(value, datetime):
        return value.isoformat()
    return value


class ProfileRepository:
    """Profiles table, one row per user.

    The column set is fixed by ``PROFILE_COLUMNS``. An update is written in a
    single statement or not at all; a store-side schema error surfaces as
    ``StoreError`` instead of being retried with fewer fields.
    """

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    def _row_to_entity(self, row: dict) -> ProfileEntity:
        """Convert database row to ProfileEntity."""
        return ProfileEntity(
            id=str(row["id"]),
            email=row.get("email"),
            first_name=row.get("first_name"),
            last_name=row.get("last_name"),
            location=row.get("location"),
            avatar_url=row.get("avatar_url"),
            has_completed_onboarding=bool(row.get("has_completed_onboarding")),
            account_status=AccountStatus(row.get("account_status") or AccountStatus.ACTIVE.value),
            deletion_requested_at=_parse_ts(row.get("deletion_requested_at")),
            email_verified=bool(row.get("email_verified")),
            pending_email_change=row.get("pending_email_change"),
            email_change_requested_at=_parse_ts(row.get("email_change_requested_at")),
            created_at=_parse_ts(row.get("created_at")),
            updated_at=_parse_ts(row.get("updated_at")),
        )

    def _first(self, rows: list | None) -> ProfileEntity | None:
        """Convert the first row. Runs inside the store call so a malformed row
        surfaces as StoreError."""
        rows = [r for r in rows or [] if r]
        return self._row_to_entity(rows[0]) if rows else None

    def get(self, user_id: str) -> ProfileEntity | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            return run_store_call(
                "profiles.get",
                lambda: self._first([self.pg_client.execute_one("SELECT * FROM profiles WHERE id = %s", (user_id,))]),
            )

        # In-memory mode
        if self.disabled or self.client is None:
            return _MEM_PROFILES.get(user_id)

        # Supabase mode
        return run_store_call(  # pragma: no cover - network
            "profiles.get",
            lambda: self._first(
                self.client.table("profiles").select("*").eq("id", user_id).limit(1).execute().data
            ),
        )

    def find_by_email(self, email: str) -> ProfileEntity | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            return run_store_call(
                "profiles.find_by_email",
                lambda: self._first(
                    [self.pg_client.execute_one("SELECT * FROM profiles WHERE lower(email) = lower(%s) LIMIT 1", (email,))]
                ),
            )

        # In-memory mode
        if self.disabled or self.client is None:
            wanted = email.casefold()
            for profile in _MEM_PROFILES.values():
                if profile.email and profile.email.casefold() == wanted:
                    return profile
            return None

        # Supabase mode
        return run_store_call(  # pragma: no cover - network
            "profiles.find_by_email",
            lambda: self._first(self.client.table("profiles").select("*").ilike("email", email).limit(1).execute().data),
        )

    def upsert(self, user_id: str, fields: dict[str, Any]) -> ProfileEntity:
        """Insert the profile or update the given columns of an existing one."""
        _check_columns(fields)
        now = datetime.now(UTC)

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            columns = list(fields)
            values = [_to_db_value(fields[c], iso=False) for c in columns]
            insert_cols = ", ".join(["id", *columns, "updated_at"])
            placeholders = ", ".join(["%s"] * (len(columns) + 2))
            updates = ", ".join(f"{c} = EXCLUDED.{c}" for c in [*columns, "updated_at"])
            query = f"""
                INSERT INTO profiles ({insert_cols}) VALUES ({placeholders})
                ON CONFLICT (id) DO UPDATE SET {updates}
                RETURNING *
            """
            return run_store_call(
                "profiles.upsert",
                lambda: self._row_to_entity(self.pg_client.execute_returning(query, (user_id, *values, now))),
            )

        # In-memory mode
        if self.disabled or self.client is None:
            current = _MEM_PROFILES.get(user_id) or ProfileEntity(
                id=user_id, email=None, created_at=now
            )
            changes = dict(fields)
            if "account_status" in changes:
                changes["account_status"] = AccountStatus(changes["account_status"])
            entity = replace(current, **changes, updated_at=now)
            _MEM_PROFILES[user_id] = entity
            return entity

        # Supabase mode
        data = {k: _to_db_value(v, iso=True) for k, v in fields.items()}
        data.update({"id": user_id, "updated_at": now.isoformat()})
        entity = run_store_call(  # pragma: no cover - network
            "profiles.upsert",
            lambda: self._first(self.client.table("profiles").upsert(data, on_conflict="id").execute().data),
        )
        if entity is not None:  # pragma: no cover - network
            return entity
        entity = self.get(user_id)  # pragma: no cover - network
        if entity is None:  # pragma: no cover - network
            raise StoreError(f"Profile {user_id} was not persisted", operation="profiles.upsert")
        return entity

    def delete(self, user_id: str) -> None:
        """Delete the profile. Deleting a missing profile succeeds."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            run_store_call(
                "profiles.delete",
                lambda: self.pg_client.execute_update("DELETE FROM profiles WHERE id = %s", (user_id,)),
            )
            return

        # In-memory mode
        if self.disabled or self.client is None:
            _MEM_PROFILES.pop(user_id, None)
            return

        # Supabase mode
        run_store_call(  # pragma: no cover - network
            "profiles.delete",
            lambda: self.client.table("profiles").delete().eq("id", user_id).execute(),
        )


def reset_memory() -> None:
    _MEM_PROFILES.clear()
