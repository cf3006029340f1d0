"""Messages that drive the conflict query service."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from app.domain.models import ConflictCheckParams, ResourceConflict


class ConflictParamsChanged(BaseModel):
    """Fired when the caller edits the candidate vehicle, driver or window."""

    params: ConflictCheckParams | None = None


class OrdersRefreshed(BaseModel):
    """Fired by the repository owner after the order universe changed."""

    order_count: int | None = None


class RecheckRequested(BaseModel):
    """Fired for an explicit "check before save" action."""


class ConflictCheckCompleted(BaseModel):
    """Fired when a sequence-numbered check produced a result."""

    sequence: int
    conflicts: list[ResourceConflict]
    completed_at: datetime


class ConflictCheckFailed(BaseModel):
    """Fired when a sequence-numbered check could not produce a result."""

    sequence: int
    error: str
    error_type: str
    failed_at: datetime
