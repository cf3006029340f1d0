"""Exceptions raised while checking resource conflicts."""

from __future__ import annotations

from datetime import datetime


class ConflictCheckError(Exception):
    """Base exception for conflict-check failures."""


class InvalidWindow(ConflictCheckError):
    """Raised when a candidate window does not end after it starts."""

    def __init__(self, start_time: datetime, end_time: datetime) -> None:
        self.start_time = start_time
        self.end_time = end_time
        super().__init__(
            f"start_time ({start_time.isoformat()}) must be before "
            f"end_time ({end_time.isoformat()})"
        )


class RepositoryUnavailable(ConflictCheckError):
    """Raised when the order universe could not be fetched."""
