"""
Domain: Update (notification) records.

An Update is a message delivered to a single recipient on a lifecycle event.
It starts pending, records every delivery attempt, and ends delivered or
failed. read_at is set once, when the recipient opens it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from .time import require_optional_utc_timestamp, require_utc_timestamp


class UpdateType(str, Enum):
    LEAD_STATUS = "LEAD_STATUS"
    ASSIGNMENT = "ASSIGNMENT"
    COMMISSION = "COMMISSION"
    GENERAL = "GENERAL"


class DeliveryStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class Update:
    id: int
    recipient_id: str
    title: str
    message: str
    update_type: UpdateType
    created_at: datetime
    template_name: Optional[str] = None
    lead_id: Optional[int] = None
    delivery_status: DeliveryStatus = DeliveryStatus.PENDING
    delivery_attempts: int = 0
    last_attempt_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_optional_utc_timestamp("last_attempt_at", self.last_attempt_at)
        require_optional_utc_timestamp("delivered_at", self.delivered_at)
        require_optional_utc_timestamp("read_at", self.read_at)
        if self.delivery_attempts < 0:
            raise ValueError("delivery_attempts must be >= 0")
        if (self.delivery_status == DeliveryStatus.DELIVERED) != (self.delivered_at is not None):
            raise ValueError("delivered_at must be set iff delivery_status is delivered")

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def attempt_succeeded(self, at: datetime) -> "Update":
        require_utc_timestamp("at", at)
        return replace(
            self,
            delivery_status=DeliveryStatus.DELIVERED,
            delivery_attempts=self.delivery_attempts + 1,
            last_attempt_at=at,
            delivered_at=at,
            last_error=None,
        )

    def attempt_failed(self, at: datetime, error: str) -> "Update":
        require_utc_timestamp("at", at)
        return replace(
            self,
            delivery_status=DeliveryStatus.FAILED,
            delivery_attempts=self.delivery_attempts + 1,
            last_attempt_at=at,
            last_error=error,
        )

    def mark_read(self, at: datetime) -> "Update":
        """Set read_at once; re-reading keeps the first timestamp."""
        require_utc_timestamp("at", at)
        if self.read_at is not None:
            return self
        return replace(self, read_at=at)


__all__ = ["DeliveryStatus", "Update", "UpdateType"]
