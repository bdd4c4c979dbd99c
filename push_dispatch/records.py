"""Notification records and device registrations — the data model shared by all components."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class NotificationType(str, Enum):
    LIKE = "LIKE"
    COMMENT = "COMMENT"


class NotificationStatus(str, Enum):
    NEW = "NEW"
    DISPATCHING = "DISPATCHING"
    SENT = "SENT"
    FAILED = "FAILED"


UNKNOWN_TYPE = "UNKNOWN"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationRecord(BaseModel):
    # Identity
    id: str
    # Semantic; kept as a plain string so future kinds pass through untouched
    type: str = ""
    args: list[str] = Field(default_factory=list)
    # Client navigation
    target_route: str = ""
    target_id: str = ""
    # Lifecycle
    status: NotificationStatus = NotificationStatus.NEW
    created_at: datetime = Field(default_factory=_now)

    @property
    def type_tag(self) -> str:
        """Record type as sent on the wire; never empty."""
        return self.type or UNKNOWN_TYPE


class DeviceRegistration(BaseModel):
    user_id: str
    token: str
    created_at: datetime = Field(default_factory=_now)
