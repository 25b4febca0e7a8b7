"""
User and agency repository (persistence).

Provides lookups for the identities the lifecycle needs: the acting user
(resolved from a bearer token), assignment targets, and the agency admins who
receive rejection/failure notices.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, List, Mapping, Optional, Protocol

from postgrest.exceptions import APIError  # type: ignore[import-not-found]

from domain.errors import NotFound, StoreError
from domain.time import parse_utc_datetime
from domain.user import Agency, User, UserRole

logger = logging.getLogger(__name__)

_USERS_TABLE: str = "users"
_AGENCIES_TABLE: str = "agencies"


class UserRepository(Protocol):
    def get_user(self, user_id: str) -> Optional[User]: ...

    def get_user_by_token(self, token: str) -> Optional[User]: ...

    def get_agency(self, agency_id: str) -> Optional[Agency]: ...

    def list_agents(self, agency_id: str) -> List[User]: ...

    def list_agency_admins(self, agency_id: str) -> List[User]: ...

    def set_active(self, user_id: str, is_active: bool) -> User: ...


def row_to_user(row: Mapping[str, Any]) -> User:
    return User(
        id=str(row["id"]),
        email=str(row["email"]),
        role=UserRole(str(row["role"])),
        username=row.get("username"),
        first_name=row.get("first_name") or "",
        last_name=row.get("last_name") or "",
        phone=row.get("phone"),
        agency_id=str(row["agency_id"]) if row.get("agency_id") else None,
        is_active=bool(row.get("is_active", True)),
        created_at=parse_utc_datetime(row.get("created_at")),
        last_login_at=parse_utc_datetime(row.get("last_login")),
    )


def row_to_agency(row: Mapping[str, Any]) -> Agency:
    license_raw = row.get("license_valid_until")
    return Agency(
        id=str(row["id"]),
        name=str(row["name"]),
        email=row.get("email"),
        phone=row.get("phone"),
        address=row.get("address"),
        license_valid_until=date.fromisoformat(license_raw) if license_raw else None,
    )


class SupabaseUserRepository:
    """
    Users live in the `users` profile table keyed by the Supabase auth user id.

    Bearer tokens are Supabase access tokens; `get_user_by_token` verifies them
    with the auth API and loads the matching profile row.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    def _select(self, table: str, action: str, **filters: Any) -> List[Mapping[str, Any]]:
        query = self._client.table(table).select("*")
        for column, value in filters.items():
            query = query.eq(column, value)
        try:
            response = query.execute()
        except APIError as e:
            raise StoreError(f"Failed to {action}: {e}") from e
        error = getattr(response, "error", None)
        if error:
            raise StoreError(f"Failed to {action}: {error}")
        return list(getattr(response, "data", None) or [])

    def get_user(self, user_id: str) -> Optional[User]:
        rows = self._select(_USERS_TABLE, "fetch user", id=user_id)
        return row_to_user(rows[0]) if rows else None

    def get_user_by_token(self, token: str) -> Optional[User]:
        try:
            response = self._client.auth.get_user(token)
        except Exception as e:
            # Rejected tokens come back as auth errors with a 4xx status.
            status = getattr(e, "status", None)
            if isinstance(status, int) and 400 <= status < 500:
                logger.info("Rejected bearer token: %s", e)
                return None
            raise StoreError(f"Failed to verify token: {e}") from e

        auth_user = getattr(response, "user", None)
        if auth_user is None:
            return None
        return self.get_user(str(auth_user.id))

    def get_agency(self, agency_id: str) -> Optional[Agency]:
        rows = self._select(_AGENCIES_TABLE, "fetch agency", id=agency_id)
        return row_to_agency(rows[0]) if rows else None

    def list_agents(self, agency_id: str) -> List[User]:
        rows = self._select(_USERS_TABLE, "list agents", agency_id=agency_id, role=UserRole.AGENT.value)
        return [row_to_user(row) for row in rows]

    def list_agency_admins(self, agency_id: str) -> List[User]:
        rows = self._select(
            _USERS_TABLE, "list agency admins", agency_id=agency_id, role=UserRole.AGENCY_ADMIN.value
        )
        return [row_to_user(row) for row in rows]

    def set_active(self, user_id: str, is_active: bool) -> User:
        """Flip the `is_active` flag on a profile row and return the updated user."""
        query = self._client.table(_USERS_TABLE).update({"is_active": is_active}).eq("id", user_id)
        action = "activate user" if is_active else "deactivate user"
        try:
            response = query.execute()
        except APIError as e:
            raise StoreError(f"Failed to {action}: {e}") from e
        error = getattr(response, "error", None)
        if error:
            raise StoreError(f"Failed to {action}: {error}")
        rows = list(getattr(response, "data", None) or [])
        if not rows:
            raise NotFound(f"User not found: {user_id}")
        return row_to_user(rows[0])


__all__ = ["SupabaseUserRepository", "UserRepository", "row_to_agency", "row_to_user"]
