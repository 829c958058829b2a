from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SchedulingConfig:
    """
    Venue-level settings the scheduler needs for a single call.

    Built by the wiring layer from application settings and handed to the manager explicitly,
    so scheduling logic never reads global configuration.
    """
    opening_time: str = "07:00"
    closing_time: str = "23:00"
    max_occurrences: int = 366
