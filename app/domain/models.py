"""Domain models for resource-conflict detection."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from enum import StrEnum

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator


class OrderStatus(StrEnum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class ConflictType(StrEnum):
    VEHICLE = "vehicle"
    DRIVER = "driver"
    VEHICLE_AND_DRIVER = "vehicle_and_driver"


class ConflictSeverity(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    def escalate(self) -> ConflictSeverity:
        """Return the next severity up, saturating at HIGH."""
        if self is ConflictSeverity.LOW:
            return ConflictSeverity.MEDIUM
        return ConflictSeverity.HIGH


_SEVERITY_RANK = {
    ConflictSeverity.LOW: 0,
    ConflictSeverity.MEDIUM: 1,
    ConflictSeverity.HIGH: 2,
}


class QueryStatus(StrEnum):
    IDLE = "idle"
    CHECKING = "checking"
    READY = "ready"
    FAILED = "failed"


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Core domain models
# ---------------------------------------------------------------------------


class Order(BaseModel):
    id: str = Field(default_factory=_new_id)
    order_number: str
    vehicle_id: str | None = None
    vehicle_plate: str | None = None
    driver_id: str | None = None
    driver_name: str | None = None
    scheduled_start: AwareDatetime
    scheduled_end: AwareDatetime
    status: OrderStatus = OrderStatus.DRAFT

    @model_validator(mode="after")
    def _end_after_start(self) -> Order:
        if self.scheduled_end <= self.scheduled_start:
            raise ValueError("scheduled_end must be after scheduled_start")
        return self


class ConflictCheckParams(BaseModel):
    """A candidate assignment to test against the existing orders.

    The window is deliberately not validated here: a malformed window is
    reported by the detector as ``InvalidWindow`` so that callers observing
    the query service see it as an error state.
    """

    model_config = ConfigDict(frozen=True)

    exclude_order_id: str | None = None
    vehicle_id: str | None = None
    driver_id: str | None = None
    start_time: AwareDatetime
    end_time: AwareDatetime

    @property
    def has_resources(self) -> bool:
        return self.vehicle_id is not None or self.driver_id is not None


class TimeRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


class ResourceConflict(BaseModel):
    """Snapshot of one clash between the candidate and an existing order."""

    model_config = ConfigDict(frozen=True)

    order_id: str
    order_number: str
    order_status: OrderStatus
    type: ConflictType
    severity: ConflictSeverity
    overlap: TimeRange
    overlap_ratio: float
    vehicle_id: str | None = None
    driver_id: str | None = None
    resource_names: list[str] = Field(default_factory=list)
    message: str
    suggestions: list[str] = Field(default_factory=list)


class ConflictQueryState(BaseModel):
    """Observable state of the conflict query service."""

    model_config = ConfigDict(frozen=True)

    status: QueryStatus = QueryStatus.IDLE
    params: ConflictCheckParams | None = None
    conflicts: list[ResourceConflict] = Field(default_factory=list)
    error: str | None = None
    error_type: str | None = None
    sequence: int = 0
    checked_at: datetime | None = None

    @property
    def loading(self) -> bool:
        return self.status == QueryStatus.CHECKING

    @property
    def blocks_save(self) -> bool:
        return self.loading or any(
            c.severity == ConflictSeverity.HIGH for c in self.conflicts
        )


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class ConflictCheckResponse(BaseModel):
    conflicts: list[ResourceConflict]
    highest_severity: ConflictSeverity | None = None
    blocks_save: bool = False


class ConflictQueryResponse(BaseModel):
    status: QueryStatus
    loading: bool
    error: str | None = None
    error_type: str | None = None
    sequence: int
    conflicts: list[ResourceConflict]
    blocks_save: bool
    checked_at: datetime | None = None

    @classmethod
    def from_state(cls, state: ConflictQueryState) -> ConflictQueryResponse:
        return cls(
            status=state.status,
            loading=state.loading,
            error=state.error,
            error_type=state.error_type,
            sequence=state.sequence,
            conflicts=state.conflicts,
            blocks_save=state.blocks_save,
            checked_at=state.checked_at,
        )
