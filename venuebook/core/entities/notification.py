from __future__ import annotations

from enum import Enum


class NotificationKind(str, Enum):
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    CANCELLED = "cancelled"
