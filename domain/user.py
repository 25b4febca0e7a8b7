"""
Domain: platform users and agencies.

Spotters, Agents and Agency Admins are all Users distinguished by `role`.
Agents and Agency Admins belong to exactly one Agency; Spotters belong to none.
A user's role is resolved server side from the bearer token and is never taken
from client-supplied fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional

from .time import require_optional_utc_timestamp


class UserRole(str, Enum):
    SPOTTER = "spotter"
    AGENT = "agent"
    AGENCY_ADMIN = "agency_admin"


@dataclass(frozen=True, slots=True)
class Agency:
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    license_valid_until: Optional[date] = None


@dataclass(frozen=True, slots=True)
class User:
    """
    Authenticated platform user.

    Invariants:
    - Agents and Agency Admins carry an agency_id.
    """

    id: str
    email: str
    role: UserRole
    username: Optional[str] = None
    first_name: str = ""
    last_name: str = ""
    phone: Optional[str] = None
    agency_id: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    last_login_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_optional_utc_timestamp("created_at", self.created_at)
        require_optional_utc_timestamp("last_login_at", self.last_login_at)
        if self.role in (UserRole.AGENT, UserRole.AGENCY_ADMIN) and not self.agency_id:
            raise ValueError(f"{self.role.value} users must belong to an agency")

    @property
    def full_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.username or self.email

    def is_agent(self) -> bool:
        return self.role == UserRole.AGENT

    def is_spotter(self) -> bool:
        return self.role == UserRole.SPOTTER

    def is_agency_admin(self) -> bool:
        return self.role == UserRole.AGENCY_ADMIN

    def administers(self, agency_id: str) -> bool:
        """True if this user is an active admin of the given agency."""
        return self.is_agency_admin() and self.is_active and self.agency_id == agency_id

    def can_receive_assignments(self) -> bool:
        return self.is_agent() and self.is_active


__all__ = ["Agency", "User", "UserRole"]
