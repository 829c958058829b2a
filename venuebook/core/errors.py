from __future__ import annotations

from datetime import date
from typing import Any, Iterable


class SchedulingError(Exception):
    """Base class for every error the scheduler surfaces to its caller."""


class ValidationError(SchedulingError):
    """Raise to map to HTTP 422 (malformed input, rejected before any scheduling work)."""


class ConflictError(SchedulingError):
    """Raise to map to HTTP 409. Carries every conflicting date of the request, not just the first."""

    def __init__(self, message: str, conflicting_dates: Iterable[date]) -> None:
        super().__init__(message)
        self.message = message
        self.conflicting_dates: list[date] = sorted(set(conflicting_dates))

    def to_report(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "conflictingDates": [d.isoformat() for d in self.conflicting_dates],
        }


class NotFoundError(SchedulingError):
    """Raise to map to HTTP 404."""


class StateError(SchedulingError):
    """Raise to map to HTTP 409 (operation not valid for the current state)."""


class RepositoryError(SchedulingError):
    """Storage-layer failure. Surfaced as-is, never retried by the scheduler."""
