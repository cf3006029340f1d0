"""FastAPI application: entry point for the resource-conflict service."""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException
from pydantic import AwareDatetime

from app.config import settings
from app.domain.bus import EventBus
from app.domain.errors import InvalidWindow, RepositoryUnavailable
from app.domain.models import (
    ConflictCheckParams,
    ConflictCheckResponse,
    ConflictQueryResponse,
    Order,
)
from app.repos.memory import InMemoryOrderRepository, create_order_repository
from app.services.conflict_query import ConflictQueryService, fetch_orders
from app.services.conflicts import (
    detect_conflicts,
    has_blocking_conflicts,
    highest_severity,
)

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title=settings.app_name)

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
order_repo = (
    create_order_repository(event_bus)
    if settings.seed_sample_orders
    else InMemoryOrderRepository(event_bus)
)
conflict_query = ConflictQueryService(
    bus=event_bus,
    repository=order_repo,
    debounce=settings.debounce,
    escalation_ratio=settings.severity_escalation_ratio,
)


# ── Routes ────────────────────────────────────────────────────────────


@app.get("/orders", response_model=list[Order])
def list_orders() -> list[Order]:
    """Return all stored orders."""
    return order_repo.get_all_orders()


@app.get("/orders/{order_id}", response_model=Order)
def get_order(order_id: str) -> Order:
    """Return a single order by id."""
    order = order_repo.get(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    return order


@app.post("/conflicts/check", response_model=ConflictCheckResponse)
def check_conflicts(params: ConflictCheckParams) -> ConflictCheckResponse:
    """Run a one-shot conflict check for a candidate assignment."""
    try:
        orders = fetch_orders(order_repo)
        conflicts = detect_conflicts(
            params, orders, escalation_ratio=settings.severity_escalation_ratio
        )
    except InvalidWindow as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except RepositoryUnavailable as exc:
        logger.error("Order repository unavailable: %s", exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return ConflictCheckResponse(
        conflicts=conflicts,
        highest_severity=highest_severity(conflicts),
        blocks_save=has_blocking_conflicts(conflicts),
    )


@app.get("/conflict-query", response_model=ConflictQueryResponse)
def get_conflict_query() -> ConflictQueryResponse:
    """Return the observed state of the conflict query session."""
    return ConflictQueryResponse.from_state(conflict_query.state)


@app.put("/conflict-query/params", response_model=ConflictQueryResponse)
def set_conflict_query_params(params: ConflictCheckParams) -> ConflictQueryResponse:
    """Replace the candidate being watched; the check runs after the debounce."""
    return ConflictQueryResponse.from_state(conflict_query.set_params(params))


@app.post("/conflict-query/recheck", response_model=ConflictQueryResponse)
def recheck_conflict_query() -> ConflictQueryResponse:
    """Check immediately, bypassing the debounce (e.g. right before saving)."""
    return ConflictQueryResponse.from_state(conflict_query.recheck())


@app.post("/conflict-query/clear", response_model=ConflictQueryResponse)
def clear_conflict_query() -> ConflictQueryResponse:
    return ConflictQueryResponse.from_state(conflict_query.clear())


@app.post("/tick", response_model=ConflictQueryResponse)
def tick(now: AwareDatetime | None = None) -> ConflictQueryResponse:
    """Advance the scheduler clock and run any debounced check that is due.

    Pass *now* as a query param to control the simulated clock.
    Defaults to the service clock when omitted.
    """
    return ConflictQueryResponse.from_state(conflict_query.tick(now))
