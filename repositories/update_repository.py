"""
Update (notification) repository (persistence).

Stores Update rows and their delivery bookkeeping. Delivery policy (retries,
backoff) lives in services/notification_service.py.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional, Protocol

from postgrest.exceptions import APIError  # type: ignore[import-not-found]

from domain.errors import NotFound, StoreError
from domain.time import parse_utc_datetime, to_iso_utc
from domain.update import DeliveryStatus, Update, UpdateType

_UPDATES_TABLE: str = "updates"


class UpdateRepository(Protocol):
    def insert(self, update: Update) -> Update: ...

    def save_delivery(self, update: Update) -> Update: ...

    def save_read(self, update: Update) -> Update: ...

    def get(self, update_id: int) -> Optional[Update]: ...

    def list_for_user(self, user_id: str) -> List[Update]: ...

    def list_failed(self, max_attempts: int) -> List[Update]: ...


def update_to_row(update: Update) -> dict[str, Any]:
    return {
        "recipient_id": update.recipient_id,
        "title": update.title,
        "message": update.message,
        "update_type": update.update_type.value,
        "template_name": update.template_name,
        "lead_id": update.lead_id,
        "delivery_status": update.delivery_status.value,
        "delivery_attempts": update.delivery_attempts,
        "created_at": to_iso_utc(update.created_at),
        "last_attempt_at": to_iso_utc(update.last_attempt_at),
        "delivered_at": to_iso_utc(update.delivered_at),
        "read_at": to_iso_utc(update.read_at),
        "last_error": update.last_error,
    }


def delivery_columns(update: Update) -> dict[str, Any]:
    """Columns owned by the delivery worker; never touches read_at."""

    return {
        "delivery_status": update.delivery_status.value,
        "delivery_attempts": update.delivery_attempts,
        "last_attempt_at": to_iso_utc(update.last_attempt_at),
        "delivered_at": to_iso_utc(update.delivered_at),
        "last_error": update.last_error,
    }


def row_to_update(row: Mapping[str, Any]) -> Update:
    created_at = parse_utc_datetime(row["created_at"])
    if created_at is None:
        raise ValueError("update row is missing created_at")
    return Update(
        id=int(row["id"]),
        recipient_id=str(row["recipient_id"]),
        title=str(row["title"]),
        message=str(row["message"]),
        update_type=UpdateType(str(row["update_type"])),
        template_name=row.get("template_name"),
        lead_id=int(row["lead_id"]) if row.get("lead_id") is not None else None,
        delivery_status=DeliveryStatus(str(row.get("delivery_status") or DeliveryStatus.PENDING.value)),
        delivery_attempts=int(row.get("delivery_attempts") or 0),
        created_at=created_at,
        last_attempt_at=parse_utc_datetime(row.get("last_attempt_at")),
        delivered_at=parse_utc_datetime(row.get("delivered_at")),
        read_at=parse_utc_datetime(row.get("read_at")),
        last_error=row.get("last_error"),
    )


class SupabaseUpdateRepository:
    def __init__(self, client: Any) -> None:
        self._client = client

    def _execute(self, query: Any, action: str) -> List[Mapping[str, Any]]:
        try:
            response = query.execute()
        except APIError as e:
            raise StoreError(f"Failed to {action}: {e}") from e
        error = getattr(response, "error", None)
        if error:
            raise StoreError(f"Failed to {action}: {error}")
        return list(getattr(response, "data", None) or [])

    def insert(self, update: Update) -> Update:
        rows = self._execute(self._client.table(_UPDATES_TABLE).insert(update_to_row(update)), "insert update")
        if not rows:
            raise StoreError("Failed to insert update: no row returned")
        return row_to_update(rows[0])

    def _update_columns(self, update_id: int, columns: dict[str, Any], action: str) -> Update:
        rows = self._execute(
            self._client.table(_UPDATES_TABLE).update(columns).eq("id", update_id),
            action,
        )
        if not rows:
            raise NotFound(f"Update not found: {update_id}")
        return row_to_update(rows[0])

    def save_delivery(self, update: Update) -> Update:
        return self._update_columns(update.id, delivery_columns(update), "record delivery attempt")

    def save_read(self, update: Update) -> Update:
        return self._update_columns(update.id, {"read_at": to_iso_utc(update.read_at)}, "mark update read")

    def get(self, update_id: int) -> Optional[Update]:
        rows = self._execute(
            self._client.table(_UPDATES_TABLE).select("*").eq("id", update_id).limit(1),
            "fetch update",
        )
        return row_to_update(rows[0]) if rows else None

    def list_for_user(self, user_id: str) -> List[Update]:
        rows = self._execute(
            self._client.table(_UPDATES_TABLE)
            .select("*")
            .eq("recipient_id", user_id)
            .order("created_at", desc=True)
            .order("id", desc=True),
            "list updates",
        )
        return [row_to_update(row) for row in rows]

    def list_failed(self, max_attempts: int) -> List[Update]:
        rows = self._execute(
            self._client.table(_UPDATES_TABLE)
            .select("*")
            .eq("delivery_status", DeliveryStatus.FAILED.value)
            .lt("delivery_attempts", max_attempts)
            .order("created_at"),
            "list failed updates",
        )
        return [row_to_update(row) for row in rows]


__all__ = [
    "SupabaseUpdateRepository",
    "UpdateRepository",
    "delivery_columns",
    "row_to_update",
    "update_to_row",
]
