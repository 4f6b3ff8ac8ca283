from __future__ import annotations

import os
from datetime import datetime

from src.domain.entities.deletion_request import DeletionRequestEntity, DeletionStatus
from src.domain.errors import NotFoundError, StoreError
from src.infrastructure.database.postgres_client import get_postgres_client
from src.infrastructure.database.store_calls import run_store_call

try:
    from supabase import Client
except Exception:  # pragma: no cover
    Client = object  # type: ignore

TABLE = "account_deletion_requests"

# module-level in-memory store for disabled mode
_MEM_REQUESTS: dict[str, DeletionRequestEntity] = {}


def _parse_ts(value) -> datetime | None:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


class DeletionRequestRepository:
    """Append/update log of account deletion requests.

    Rows are never deleted: completed requests stay behind as the audit trail
    of a purge.
    """

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    def _row_to_entity(self, row: dict) -> DeletionRequestEntity:
        return DeletionRequestEntity(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            email=row.get("email") or "",
            requested_at=_parse_ts(row["requested_at"]),
            scheduled_purge_at=_parse_ts(row["scheduled_purge_at"]),
            recovery_token=row["recovery_token"],
            status=DeletionStatus(row.get("status") or DeletionStatus.PENDING.value),
            cancelled_at=_parse_ts(row.get("cancelled_at")),
            purged_at=_parse_ts(row.get("purged_at")),
        )

    def insert(self, request: DeletionRequestEntity) -> DeletionRequestEntity:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = f"""
                INSERT INTO {TABLE} (
                    id, user_id, email, requested_at, scheduled_purge_at, status, recovery_token
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING *
            """
            row = run_store_call(
                f"{TABLE}.insert",
                lambda: self.pg_client.execute_returning(
                    query,
                    (
                        request.id, request.user_id, request.email, request.requested_at,
                        request.scheduled_purge_at, request.status.value, request.recovery_token,
                    ),
                ),
            )
            return self._row_to_entity(row)

        # In-memory mode
        if self.disabled or self.client is None:
            if any(r.recovery_token == request.recovery_token for r in _MEM_REQUESTS.values()):
                raise StoreError("Duplicate recovery token", operation=f"{TABLE}.insert")
            _MEM_REQUESTS[request.id] = request
            return request

        # Supabase mode
        res = run_store_call(  # pragma: no cover - network
            f"{TABLE}.insert",
            lambda: self.client.table(TABLE).insert(request.to_row()).execute(),
        )
        rows = res.data or []
        return self._row_to_entity(rows[0]) if rows else request

    def update_status(
        self,
        request_id: str,
        status: DeletionStatus,
        at: datetime | None = None,
        *,
        expected: DeletionStatus = DeletionStatus.PENDING,
    ) -> None:
        """Move the request from ``expected`` to ``status``.

        The write only applies while the row is still in ``expected``, so two
        callers racing on the same pending request cannot both win.

        Raises:
            NotFoundError: no row with that id is in the expected status.
        """
        stamp_column = {
            DeletionStatus.CANCELLED: "cancelled_at",
            DeletionStatus.COMPLETED: "purged_at",
        }.get(status)
        lost = NotFoundError(
            f"Deletion request {request_id} is no longer {expected.value}",
            details={"request_id": request_id, "expected": expected.value},
        )

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            if stamp_column:
                query = f"UPDATE {TABLE} SET status = %s, {stamp_column} = %s WHERE id = %s AND status = %s"
                params: tuple = (status.value, at, request_id, expected.value)
            else:
                query = f"UPDATE {TABLE} SET status = %s WHERE id = %s AND status = %s"
                params = (status.value, request_id, expected.value)
            affected = run_store_call(
                f"{TABLE}.update_status", lambda: self.pg_client.execute_update(query, params)
            )
            if affected == 0:
                raise lost
            return

        # In-memory mode
        if self.disabled or self.client is None:
            current = _MEM_REQUESTS.get(request_id)
            if current is None or current.status != expected:
                raise lost
            _MEM_REQUESTS[request_id] = current.with_status(status, at)
            return

        # Supabase mode
        data = {"status": status.value}
        if stamp_column and at is not None:
            data[stamp_column] = at.isoformat()
        res = run_store_call(  # pragma: no cover - network
            f"{TABLE}.update_status",
            lambda: self.client.table(TABLE)
            .update(data)
            .eq("id", request_id)
            .eq("status", expected.value)
            .execute(),
        )
        if not res.data:  # pragma: no cover - network
            raise lost

    def find_by_token(self, token: str) -> DeletionRequestEntity | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            row = run_store_call(
                f"{TABLE}.find_by_token",
                lambda: self.pg_client.execute_one(
                    f"SELECT * FROM {TABLE} WHERE recovery_token = %s LIMIT 1", (token,)
                ),
            )
            return self._row_to_entity(row) if row else None

        # In-memory mode
        if self.disabled or self.client is None:
            return next((r for r in _MEM_REQUESTS.values() if r.recovery_token == token), None)

        # Supabase mode
        res = run_store_call(  # pragma: no cover - network
            f"{TABLE}.find_by_token",
            lambda: self.client.table(TABLE).select("*").eq("recovery_token", token).limit(1).execute(),
        )
        rows = res.data or []
        return self._row_to_entity(rows[0]) if rows else None

    def list_pending_by_user(self, user_id: str) -> list[DeletionRequestEntity]:
        """Pending requests for the user, newest first."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            rows = run_store_call(
                f"{TABLE}.list_pending_by_user",
                lambda: self.pg_client.execute_many(
                    f"""
                    SELECT * FROM {TABLE}
                    WHERE user_id = %s AND status = 'pending'
                    ORDER BY requested_at DESC
                    """,
                    (user_id,),
                ),
            )
            return [self._row_to_entity(row) for row in rows]

        # In-memory mode
        if self.disabled or self.client is None:
            pending = [r for r in _MEM_REQUESTS.values() if r.user_id == user_id and r.is_pending]
            return sorted(pending, key=lambda r: r.requested_at, reverse=True)

        # Supabase mode
        res = run_store_call(  # pragma: no cover - network
            f"{TABLE}.list_pending_by_user",
            lambda: self.client.table(TABLE)
            .select("*")
            .eq("user_id", user_id)
            .eq("status", DeletionStatus.PENDING.value)
            .order("requested_at", desc=True)
            .execute(),
        )
        return [self._row_to_entity(row) for row in res.data or []]

    def find_pending_by_user(self, user_id: str) -> DeletionRequestEntity | None:
        pending = self.list_pending_by_user(user_id)
        return pending[0] if pending else None

    def list_due(self, now: datetime) -> list[DeletionRequestEntity]:
        """Pending requests whose purge time has passed, oldest first."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            rows = run_store_call(
                f"{TABLE}.list_due",
                lambda: self.pg_client.execute_many(
                    f"""
                    SELECT * FROM {TABLE}
                    WHERE status = 'pending' AND scheduled_purge_at <= %s
                    ORDER BY scheduled_purge_at ASC
                    """,
                    (now,),
                ),
            )
            return [self._row_to_entity(row) for row in rows]

        # In-memory mode
        if self.disabled or self.client is None:
            due = [r for r in _MEM_REQUESTS.values() if r.is_due(now)]
            return sorted(due, key=lambda r: r.scheduled_purge_at)

        # Supabase mode
        res = run_store_call(  # pragma: no cover - network
            f"{TABLE}.list_due",
            lambda: self.client.table(TABLE)
            .select("*")
            .eq("status", DeletionStatus.PENDING.value)
            .lte("scheduled_purge_at", now.isoformat())
            .order("scheduled_purge_at", desc=False)
            .execute(),
        )
        return [self._row_to_entity(row) for row in res.data or []]


def reset_memory() -> None:
    _MEM_REQUESTS.clear()
