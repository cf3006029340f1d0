"""Stateful conflict query service: the detector behind a small state machine.

States move ``idle -> checking -> ready | failed``. Parameter changes and
order refreshes are debounced; ``recheck()`` bypasses the debounce. Every
check is tagged with a monotonically increasing sequence number and only
the result of the most recently issued check is ever applied.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable

from app.domain.bus import EventBus
from app.domain.errors import ConflictCheckError, RepositoryUnavailable
from app.domain.events import (
    ConflictCheckCompleted,
    ConflictCheckFailed,
    ConflictParamsChanged,
    OrdersRefreshed,
    RecheckRequested,
)
from app.domain.models import (
    ConflictCheckParams,
    ConflictQueryState,
    Order,
    QueryStatus,
)
from app.repos.memory import OrderRepository
from app.services.conflicts import DEFAULT_ESCALATION_RATIO, detect_conflicts

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE = timedelta(milliseconds=250)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConflictQueryService:
    """Keeps the latest conflict result for a candidate order up to date."""

    def __init__(
        self,
        bus: EventBus,
        repository: OrderRepository,
        *,
        debounce: timedelta = DEFAULT_DEBOUNCE,
        escalation_ratio: float = DEFAULT_ESCALATION_RATIO,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.bus = bus
        self.repository = repository
        self.debounce = debounce
        self.escalation_ratio = escalation_ratio
        self._clock = clock
        self._state = ConflictQueryState()
        self._sequence = 0
        self._accepting: int | None = None
        self._due_at: datetime | None = None
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(ConflictParamsChanged, self.on_params_changed)
        self.bus.subscribe(OrdersRefreshed, self.on_orders_refreshed)
        self.bus.subscribe(RecheckRequested, self.on_recheck_requested)
        self.bus.subscribe(ConflictCheckCompleted, self.on_check_completed)
        self.bus.subscribe(ConflictCheckFailed, self.on_check_failed)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConflictQueryState:
        return self._state

    @property
    def pending_until(self) -> datetime | None:
        """When the debounced check will run, or None if nothing is pending."""
        return self._due_at

    def set_params(self, params: ConflictCheckParams | None) -> ConflictQueryState:
        if params == self._state.params:
            return self._state
        self.bus.publish(ConflictParamsChanged(params=params))
        return self._state

    def recheck(self) -> ConflictQueryState:
        self.bus.publish(RecheckRequested())
        return self._state

    def clear(self) -> ConflictQueryState:
        return self.set_params(None)

    def orders_refreshed(self) -> ConflictQueryState:
        """Announce new order data for repositories that do not publish it themselves."""
        self.bus.publish(OrdersRefreshed())
        return self._state

    def tick(self, now: datetime | None = None) -> ConflictQueryState:
        """Run the pending debounced check once its due time has been reached."""
        current_time = now or self._clock()
        if self._due_at is not None and current_time >= self._due_at:
            self._run_check()
        return self._state

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def on_params_changed(self, event: ConflictParamsChanged) -> None:
        # Whatever is in flight was computed for the previous params.
        self._accepting = None
        params = event.params

        if params is None or not params.has_resources:
            self._due_at = None
            self._state = ConflictQueryState(params=params, sequence=self._sequence)
            logger.debug("Conflict query idle: no vehicle or driver to check")
            return

        self._state = self._state.model_copy(
            update={
                "status": QueryStatus.CHECKING,
                "params": params,
                "error": None,
                "error_type": None,
            }
        )
        self._schedule()

    def on_orders_refreshed(self, event: OrdersRefreshed) -> None:
        params = self._state.params
        if params is None or not params.has_resources:
            return
        self._accepting = None
        logger.debug("Orders refreshed (count=%s), rescheduling check", event.order_count)
        self._state = self._state.model_copy(update={"status": QueryStatus.CHECKING})
        self._schedule()

    def on_recheck_requested(self, event: RecheckRequested) -> None:
        params = self._state.params
        if params is None or not params.has_resources:
            return
        self._run_check()

    def on_check_completed(self, event: ConflictCheckCompleted) -> None:
        if event.sequence != self._accepting:
            logger.warning("Discarding stale conflict check #%d", event.sequence)
            return

        self._state = self._state.model_copy(
            update={
                "status": QueryStatus.READY,
                "conflicts": event.conflicts,
                "error": None,
                "error_type": None,
                "checked_at": event.completed_at,
            }
        )
        logger.info(
            "Conflict check #%d found %d conflict(s)", event.sequence, len(event.conflicts)
        )

    def on_check_failed(self, event: ConflictCheckFailed) -> None:
        if event.sequence != self._accepting:
            logger.warning("Discarding stale failed conflict check #%d", event.sequence)
            return

        # Never leave conflicts from an earlier check on display after a failure.
        self._state = self._state.model_copy(
            update={
                "status": QueryStatus.FAILED,
                "conflicts": [],
                "error": event.error,
                "error_type": event.error_type,
                "checked_at": event.failed_at,
            }
        )
        logger.warning(
            "Conflict check #%d failed (%s): %s", event.sequence, event.error_type, event.error
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _schedule(self) -> None:
        if self.debounce <= timedelta(0):
            self._run_check()
            return
        self._due_at = self._clock() + self.debounce
        logger.debug("Conflict check scheduled for %s", self._due_at.isoformat())

    def _run_check(self) -> None:
        params = self._state.params
        self._due_at = None
        self._sequence += 1
        sequence = self._sequence
        self._accepting = sequence
        self._state = self._state.model_copy(
            update={"status": QueryStatus.CHECKING, "sequence": sequence}
        )
        logger.debug("Starting conflict check #%d", sequence)

        try:
            orders = fetch_orders(self.repository)
            conflicts = detect_conflicts(
                params, orders, escalation_ratio=self.escalation_ratio
            )
        except ConflictCheckError as exc:
            self._fail(sequence, exc)
            return
        except Exception as exc:
            # Reported as a failed check rather than re-raised, so the
            # service never stays in ``checking`` with stale conflicts.
            logger.exception("Conflict check #%d raised unexpectedly", sequence)
            self._fail(sequence, exc)
            return

        self.bus.publish(
            ConflictCheckCompleted(
                sequence=sequence, conflicts=conflicts, completed_at=self._clock()
            )
        )

    def _fail(self, sequence: int, exc: Exception) -> None:
        self.bus.publish(
            ConflictCheckFailed(
                sequence=sequence,
                error=str(exc),
                error_type=type(exc).__name__,
                failed_at=self._clock(),
            )
        )


def fetch_orders(repository: OrderRepository) -> list[Order]:
    """Read the order universe, reporting any repository failure as RepositoryUnavailable."""
    try:
        return repository.get_all_orders()
    except RepositoryUnavailable:
        raise
    except Exception as exc:
        raise RepositoryUnavailable(f"Could not load orders: {exc}") from exc
