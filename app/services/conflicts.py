"""Service for detecting vehicle and driver double-bookings between orders."""

from __future__ import annotations

from datetime import datetime

from app.domain.errors import InvalidWindow
from app.domain.models import (
    ConflictCheckParams,
    ConflictSeverity,
    ConflictType,
    Order,
    OrderStatus,
    ResourceConflict,
    TimeRange,
)

DEFAULT_ESCALATION_RATIO = 0.5

_BASE_SEVERITY = {
    OrderStatus.CONFIRMED: ConflictSeverity.HIGH,
    OrderStatus.IN_PROGRESS: ConflictSeverity.HIGH,
    OrderStatus.DRAFT: ConflictSeverity.MEDIUM,
    OrderStatus.COMPLETED: ConflictSeverity.LOW,
}

_MESSAGES = {
    ConflictType.VEHICLE: "Vehicle is already assigned to order {number}",
    ConflictType.DRIVER: "Driver is already assigned to order {number}",
    ConflictType.VEHICLE_AND_DRIVER: (
        "Vehicle and driver are already assigned to order {number}"
    ),
}


def windows_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Open-interval overlap test.

    Exact boundary touches (a_end == b_start) are NOT overlaps, so
    back-to-back orders on the same resource are allowed.
    """
    return a_start < b_end and b_start < a_end


def overlap_range(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> TimeRange | None:
    """Return the intersection of two windows, or None if they do not overlap."""
    if not windows_overlap(a_start, a_end, b_start, b_end):
        return None
    return TimeRange(start=max(a_start, b_start), end=min(a_end, b_end))


def classify_severity(
    status: OrderStatus,
    overlap_ratio: float,
    escalation_ratio: float = DEFAULT_ESCALATION_RATIO,
) -> ConflictSeverity:
    """Rank a clash against an order in *status* covering *overlap_ratio* of the window."""
    severity = _BASE_SEVERITY.get(status, ConflictSeverity.LOW)
    if overlap_ratio >= escalation_ratio:
        severity = severity.escalate()
    return severity


def _suggestions(conflict_type: ConflictType, order: Order) -> list[str]:
    suggestions = []
    if conflict_type in (ConflictType.VEHICLE, ConflictType.VEHICLE_AND_DRIVER):
        suggestions.append("Select another available vehicle")
    if conflict_type in (ConflictType.DRIVER, ConflictType.VEHICLE_AND_DRIVER):
        suggestions.append("Select another available driver")
    suggestions.append("Change the scheduled window")
    suggestions.append(f"Reschedule order {order.order_number}")
    return suggestions


def _build_conflict(
    params: ConflictCheckParams,
    order: Order,
    overlap: TimeRange,
    escalation_ratio: float,
) -> ResourceConflict | None:
    vehicle_match = params.vehicle_id is not None and params.vehicle_id == order.vehicle_id
    driver_match = params.driver_id is not None and params.driver_id == order.driver_id
    if not (vehicle_match or driver_match):
        return None

    if vehicle_match and driver_match:
        conflict_type = ConflictType.VEHICLE_AND_DRIVER
    elif vehicle_match:
        conflict_type = ConflictType.VEHICLE
    else:
        conflict_type = ConflictType.DRIVER

    resource_names = []
    if vehicle_match:
        resource_names.append(order.vehicle_plate or order.vehicle_id)
    if driver_match:
        resource_names.append(order.driver_name or order.driver_id)

    window = params.end_time - params.start_time
    ratio = overlap.duration / window

    return ResourceConflict(
        order_id=order.id,
        order_number=order.order_number,
        order_status=order.status,
        type=conflict_type,
        severity=classify_severity(order.status, ratio, escalation_ratio),
        overlap=overlap,
        overlap_ratio=ratio,
        vehicle_id=order.vehicle_id if vehicle_match else None,
        driver_id=order.driver_id if driver_match else None,
        resource_names=resource_names,
        message=_MESSAGES[conflict_type].format(number=order.order_number),
        suggestions=_suggestions(conflict_type, order),
    )


def detect_conflicts(
    params: ConflictCheckParams,
    orders: list[Order],
    *,
    escalation_ratio: float = DEFAULT_ESCALATION_RATIO,
) -> list[ResourceConflict]:
    """Return the orders that already claim the requested vehicle or driver.

    One conflict is produced per clashing order, ordered by severity
    (highest first), then by overlap start, then by order id.
    Raises ``InvalidWindow`` when the candidate window is empty or inverted.
    """
    if params.start_time >= params.end_time:
        raise InvalidWindow(params.start_time, params.end_time)

    conflicts: list[ResourceConflict] = []
    for order in orders:
        if order.id == params.exclude_order_id:
            continue
        if order.status == OrderStatus.CANCELLED:
            continue

        overlap = overlap_range(
            params.start_time, params.end_time, order.scheduled_start, order.scheduled_end
        )
        if overlap is None:
            continue

        conflict = _build_conflict(params, order, overlap, escalation_ratio)
        if conflict is not None:
            conflicts.append(conflict)

    conflicts.sort(key=lambda c: (-c.severity.rank, c.overlap.start, c.order_id))
    return conflicts


def highest_severity(conflicts: list[ResourceConflict]) -> ConflictSeverity | None:
    if not conflicts:
        return None
    return max((c.severity for c in conflicts), key=lambda s: s.rank)


def has_blocking_conflicts(conflicts: list[ResourceConflict]) -> bool:
    """True when any conflict is severe enough to block saving the order."""
    return any(c.severity == ConflictSeverity.HIGH for c in conflicts)
