"""Order repositories consumed by the conflict query service."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Protocol

from app.domain.bus import EventBus
from app.domain.events import OrdersRefreshed
from app.domain.models import Order, OrderStatus


class OrderRepository(Protocol):
    """Read capability required by conflict detection."""

    def get_all_orders(self) -> list[Order]: ...


class InMemoryOrderRepository:
    """Dict-backed store for Order instances, keyed by id.

    When a bus is given, every change publishes ``OrdersRefreshed`` so
    subscribers can recompute against the new snapshot.
    """

    def __init__(self, bus: EventBus | None = None) -> None:
        self._store: dict[str, Order] = {}
        self._bus = bus

    def add(self, order: Order) -> None:
        self._store[order.id] = order
        self._notify()

    def get(self, order_id: str) -> Order | None:
        return self._store.get(order_id)

    def get_all_orders(self) -> list[Order]:
        return list(self._store.values())

    def replace_all(self, orders: list[Order]) -> None:
        self._store = {order.id: order for order in orders}
        self._notify()

    def delete(self, order_id: str) -> None:
        if self._store.pop(order_id, None) is not None:
            self._notify()

    def _notify(self) -> None:
        if self._bus is not None:
            self._bus.publish(OrdersRefreshed(order_count=len(self._store)))


# ---------------------------------------------------------------------------
# Seed data – a few near-future orders useful for conflict testing
# ---------------------------------------------------------------------------


def _sample_orders(now: datetime) -> list[Order]:
    day = now.replace(minute=0, second=0, microsecond=0) + timedelta(days=1)
    return [
        Order(
            order_number="ORD-1001",
            vehicle_id="veh-001",
            vehicle_plate="ABC-123",
            driver_id="drv-001",
            driver_name="Carlos Mendoza",
            scheduled_start=day + timedelta(hours=8),
            scheduled_end=day + timedelta(hours=12),
            status=OrderStatus.CONFIRMED,
        ),
        Order(
            order_number="ORD-1002",
            vehicle_id="veh-002",
            vehicle_plate="XYZ-789",
            driver_id="drv-002",
            driver_name="Ana Torres",
            scheduled_start=day + timedelta(hours=9),
            scheduled_end=day + timedelta(hours=15),
            status=OrderStatus.IN_PROGRESS,
        ),
        Order(
            order_number="ORD-1003",
            vehicle_id="veh-001",
            vehicle_plate="ABC-123",
            scheduled_start=day + timedelta(hours=13),
            scheduled_end=day + timedelta(hours=17),
            status=OrderStatus.DRAFT,
        ),
        Order(
            order_number="ORD-1004",
            vehicle_id="veh-003",
            vehicle_plate="JKL-456",
            driver_id="drv-001",
            driver_name="Carlos Mendoza",
            scheduled_start=day + timedelta(days=1, hours=8),
            scheduled_end=day + timedelta(days=1, hours=10),
            status=OrderStatus.CANCELLED,
        ),
    ]


def create_order_repository(bus: EventBus | None = None) -> InMemoryOrderRepository:
    """Return an InMemoryOrderRepository pre-loaded with sample data."""
    repo = InMemoryOrderRepository(bus)
    repo.replace_all(_sample_orders(datetime.now(timezone.utc)))
    return repo
