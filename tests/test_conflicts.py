"""Tests for the conflict-detection service."""

from datetime import datetime, timedelta, timezone

import pytest

from app.domain.errors import InvalidWindow
from app.domain.models import (
    ConflictCheckParams,
    ConflictSeverity,
    ConflictType,
    Order,
    OrderStatus,
)
from app.services.conflicts import (
    classify_severity,
    detect_conflicts,
    has_blocking_conflicts,
    highest_severity,
    overlap_range,
    windows_overlap,
)


def _at(hour: int, minute: int = 0) -> datetime:
    return datetime(2025, 1, 1, hour, minute, tzinfo=timezone.utc)


def _make_order(start: datetime, end: datetime, **overrides) -> Order:
    defaults = dict(
        order_number="ORD-1",
        scheduled_start=start,
        scheduled_end=end,
        status=OrderStatus.CONFIRMED,
    )
    defaults.update(overrides)
    return Order(**defaults)


def _params(start: datetime, end: datetime, **overrides) -> ConflictCheckParams:
    return ConflictCheckParams(start_time=start, end_time=end, **overrides)


# ---------------------------------------------------------------------------
# Worked examples
# ---------------------------------------------------------------------------


def test_partial_vehicle_overlap_with_confirmed_order():
    """Half the window clashes with a confirmed order on the same vehicle."""
    existing = _make_order(_at(11), _at(13), vehicle_id="V1", order_number="ORD-7")

    conflicts = detect_conflicts(_params(_at(10), _at(12), vehicle_id="V1"), [existing])

    assert len(conflicts) == 1
    conflict = conflicts[0]
    assert conflict.type == ConflictType.VEHICLE
    assert conflict.overlap.start == _at(11)
    assert conflict.overlap.end == _at(12)
    assert conflict.overlap_ratio == 0.5
    assert conflict.severity == ConflictSeverity.HIGH
    assert conflict.order_id == existing.id
    assert conflict.vehicle_id == "V1"
    assert conflict.driver_id is None
    assert "ORD-7" in conflict.message


def test_touching_driver_window_is_not_a_conflict():
    existing = _make_order(_at(10), _at(11), driver_id="D1", status=OrderStatus.DRAFT)

    conflicts = detect_conflicts(_params(_at(9), _at(10), driver_id="D1"), [existing])

    assert conflicts == []


def test_contained_order_on_both_resources():
    existing = _make_order(_at(8, 30), _at(8, 45), vehicle_id="V2", driver_id="D2")

    conflicts = detect_conflicts(
        _params(_at(8), _at(9), vehicle_id="V2", driver_id="D2"), [existing]
    )

    assert len(conflicts) == 1
    assert conflicts[0].type == ConflictType.VEHICLE_AND_DRIVER
    assert conflicts[0].severity == ConflictSeverity.HIGH
    assert conflicts[0].overlap_ratio == 0.25
    assert conflicts[0].vehicle_id == "V2"
    assert conflicts[0].driver_id == "D2"


@pytest.mark.parametrize("end", [_at(10), _at(9)])
def test_empty_or_inverted_window_raises(end):
    with pytest.raises(InvalidWindow):
        detect_conflicts(_params(_at(10), end, vehicle_id="V1"), [])


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def test_excluded_order_never_conflicts_with_itself():
    existing = _make_order(_at(10), _at(12), vehicle_id="V1", driver_id="D1")

    params = _params(
        _at(10), _at(12), vehicle_id="V1", driver_id="D1", exclude_order_id=existing.id
    )

    conflicts = detect_conflicts(params, [existing])

    assert conflicts == []


def test_exclusion_is_exact_match():
    target = _make_order(_at(10), _at(12), vehicle_id="V1", id="order-1")
    other = _make_order(_at(10), _at(12), vehicle_id="V1", id="order-10")

    conflicts = detect_conflicts(
        _params(_at(10), _at(12), vehicle_id="V1", exclude_order_id="order-1"),
        [target, other],
    )

    assert [c.order_id for c in conflicts] == ["order-10"]


def test_cancelled_orders_are_ignored():
    existing = _make_order(
        _at(10), _at(12), vehicle_id="V1", status=OrderStatus.CANCELLED
    )

    assert detect_conflicts(_params(_at(10), _at(12), vehicle_id="V1"), [existing]) == []


def test_overlap_on_unrelated_resources_is_ignored():
    existing = _make_order(_at(10), _at(12), vehicle_id="V9", driver_id="D9")

    conflicts = detect_conflicts(
        _params(_at(10), _at(12), vehicle_id="V1", driver_id="D1"), [existing]
    )

    assert conflicts == []


def test_driver_only_candidate_reports_driver_conflict():
    """A driver-only candidate clashes on the driver alone."""
    existing = _make_order(_at(10), _at(12), driver_id="D1")

    conflicts = detect_conflicts(_params(_at(10), _at(12), driver_id="D1"), [existing])

    assert len(conflicts) == 1
    assert conflicts[0].type == ConflictType.DRIVER
    assert conflicts[0].vehicle_id is None


def test_one_entry_per_order_when_both_resources_clash():
    existing = _make_order(_at(10), _at(12), vehicle_id="V1", driver_id="D1")

    conflicts = detect_conflicts(
        _params(_at(11), _at(13), vehicle_id="V1", driver_id="D1"), [existing]
    )

    assert len(conflicts) == 1
    assert conflicts[0].type == ConflictType.VEHICLE_AND_DRIVER


def test_resource_names_and_suggestions_use_display_labels():
    existing = _make_order(
        _at(10),
        _at(12),
        order_number="ORD-42",
        vehicle_id="V1",
        vehicle_plate="ABC-123",
        driver_id="D1",
        driver_name="Ana Torres",
    )

    conflict = detect_conflicts(
        _params(_at(10), _at(11), vehicle_id="V1", driver_id="D1"), [existing]
    )[0]

    assert conflict.resource_names == ["ABC-123", "Ana Torres"]
    assert "Select another available vehicle" in conflict.suggestions
    assert "Select another available driver" in conflict.suggestions
    assert "Reschedule order ORD-42" in conflict.suggestions


# ---------------------------------------------------------------------------
# Severity and ordering
# ---------------------------------------------------------------------------


def test_draft_severity_escalates_with_overlap_ratio():
    small = _make_order(_at(10), _at(10, 30), vehicle_id="V1", status=OrderStatus.DRAFT)
    large = _make_order(_at(10), _at(11), vehicle_id="V1", status=OrderStatus.DRAFT)
    params = _params(_at(10), _at(12), vehicle_id="V1")

    assert detect_conflicts(params, [small])[0].severity == ConflictSeverity.MEDIUM
    assert detect_conflicts(params, [large])[0].severity == ConflictSeverity.HIGH


@pytest.mark.parametrize(
    "status",
    [OrderStatus.DRAFT, OrderStatus.CONFIRMED, OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED],
)
def test_severity_is_monotonic_in_overlap_ratio(status):
    ratios = [0.05, 0.1, 0.2, 0.4, 0.5, 0.8, 1.0]
    ranks = [classify_severity(status, r).rank for r in ratios]

    assert ranks == sorted(ranks)


def test_high_severity_is_never_lowered():
    assert classify_severity(OrderStatus.IN_PROGRESS, 0.01) == ConflictSeverity.HIGH
    assert classify_severity(OrderStatus.IN_PROGRESS, 1.0) == ConflictSeverity.HIGH


def test_completed_orders_start_low():
    assert classify_severity(OrderStatus.COMPLETED, 0.1) == ConflictSeverity.LOW
    assert classify_severity(OrderStatus.COMPLETED, 0.5) == ConflictSeverity.MEDIUM


def test_custom_escalation_ratio():
    assert classify_severity(OrderStatus.DRAFT, 0.3, escalation_ratio=0.25) == ConflictSeverity.HIGH
    assert classify_severity(OrderStatus.DRAFT, 0.3, escalation_ratio=0.75) == ConflictSeverity.MEDIUM


def test_results_sorted_by_severity_then_overlap_start():
    draft_early = _make_order(
        _at(8), _at(8, 30), vehicle_id="V1", status=OrderStatus.DRAFT, id="a"
    )
    confirmed_late = _make_order(_at(11), _at(11, 30), vehicle_id="V1", id="b")
    confirmed_early = _make_order(_at(9), _at(9, 30), driver_id="D1", id="c")
    params = _params(_at(8), _at(12), vehicle_id="V1", driver_id="D1")

    conflicts = detect_conflicts(params, [draft_early, confirmed_late, confirmed_early])

    assert [c.order_id for c in conflicts] == ["c", "b", "a"]


def test_detection_is_idempotent_and_does_not_mutate_input():
    orders = [
        _make_order(_at(9), _at(11), vehicle_id="V1", id="x"),
        _make_order(_at(10), _at(13), driver_id="D1", status=OrderStatus.DRAFT, id="y"),
        _make_order(_at(10), _at(11), vehicle_id="V1", id="z"),
    ]
    snapshot = [o.model_copy() for o in orders]
    params = _params(_at(10), _at(12), vehicle_id="V1", driver_id="D1")

    first = detect_conflicts(params, orders)
    second = detect_conflicts(params, orders)

    assert first == second
    assert orders == snapshot


def test_every_result_overlaps_and_shares_a_resource():
    params = _params(_at(10), _at(14), vehicle_id="V1", driver_id="D1")
    orders = [
        _make_order(_at(h), _at(h + 1), vehicle_id=v, driver_id=d)
        for h in range(6, 18)
        for v, d in (("V1", None), (None, "D1"), ("V2", "D2"))
    ]

    for conflict in detect_conflicts(params, orders):
        order = next(o for o in orders if o.id == conflict.order_id)
        assert windows_overlap(
            params.start_time, params.end_time, order.scheduled_start, order.scheduled_end
        )
        assert order.vehicle_id == "V1" or order.driver_id == "D1"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def test_overlap_range_returns_intersection():
    window = overlap_range(_at(9), _at(12), _at(10), _at(13))

    assert window.start == _at(10)
    assert window.end == _at(12)
    assert window.duration == timedelta(hours=2)


def test_overlap_range_none_for_touching_windows():
    assert overlap_range(_at(9), _at(10), _at(10), _at(11)) is None


def test_summary_helpers():
    params = _params(_at(10), _at(12), vehicle_id="V1")
    draft = _make_order(_at(10), _at(10, 15), vehicle_id="V1", status=OrderStatus.DRAFT)
    confirmed = _make_order(_at(11), _at(12), vehicle_id="V1")

    only_draft = detect_conflicts(params, [draft])
    both = detect_conflicts(params, [draft, confirmed])

    assert highest_severity([]) is None
    assert highest_severity(only_draft) == ConflictSeverity.MEDIUM
    assert not has_blocking_conflicts(only_draft)
    assert highest_severity(both) == ConflictSeverity.HIGH
    assert has_blocking_conflicts(both)
