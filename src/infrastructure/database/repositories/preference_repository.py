from __future__ import annotations

import os
from typing import Any

from src.infrastructure.database.postgres_client import as_json, get_postgres_client
from src.infrastructure.database.store_calls import run_store_call

try:
    from supabase import Client
except Exception:  # pragma: no cover
    Client = object  # type: ignore

# module-level in-memory store for disabled mode
_MEM_PREFERENCES: dict[str, dict[str, Any]] = {}


class PreferenceRepository:
    """travel_preferences rows, keyed by user_id.

    The account code only needs to know whether a row exists and to remove it
    on purge; the preference form writes through ``save``.
    """

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    def exists(self, user_id: str) -> bool:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            row = run_store_call(
                "travel_preferences.exists",
                lambda: self.pg_client.execute_one(
                    "SELECT 1 AS found FROM travel_preferences WHERE user_id = %s LIMIT 1", (user_id,)
                ),
            )
            return row is not None

        # In-memory mode
        if self.disabled or self.client is None:
            return user_id in _MEM_PREFERENCES

        # Supabase mode
        res = run_store_call(  # pragma: no cover - network
            "travel_preferences.exists",
            lambda: self.client.table("travel_preferences")
            .select("user_id")
            .eq("user_id", user_id)
            .limit(1)
            .execute(),
        )
        return bool(res.data)

    def save(self, user_id: str, preferences: dict[str, Any]) -> None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = """
                INSERT INTO travel_preferences (user_id, preferences, updated_at)
                VALUES (%s, %s, CURRENT_TIMESTAMP)
                ON CONFLICT (user_id) DO UPDATE
                SET preferences = EXCLUDED.preferences, updated_at = EXCLUDED.updated_at
            """
            run_store_call(
                "travel_preferences.save",
                lambda: self.pg_client.execute_update(query, (user_id, as_json(preferences))),
            )
            return

        # In-memory mode
        if self.disabled or self.client is None:
            _MEM_PREFERENCES[user_id] = dict(preferences)
            return

        # Supabase mode
        run_store_call(  # pragma: no cover - network
            "travel_preferences.save",
            lambda: self.client.table("travel_preferences")
            .upsert({"user_id": user_id, **preferences}, on_conflict="user_id")
            .execute(),
        )

    def delete(self, user_id: str) -> None:
        """Delete the user's preferences. Deleting nothing succeeds."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            run_store_call(
                "travel_preferences.delete",
                lambda: self.pg_client.execute_update(
                    "DELETE FROM travel_preferences WHERE user_id = %s", (user_id,)
                ),
            )
            return

        # In-memory mode
        if self.disabled or self.client is None:
            _MEM_PREFERENCES.pop(user_id, None)
            return

        # Supabase mode
        run_store_call(  # pragma: no cover - network
            "travel_preferences.delete",
            lambda: self.client.table("travel_preferences").delete().eq("user_id", user_id).execute(),
        )


def reset_memory() -> None:
    _MEM_PREFERENCES.clear()
