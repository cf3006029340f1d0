"""Simple synchronous in-process message bus."""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventBus:
    """Publish/subscribe bus for domain messages.

    Handlers are called synchronously in registration order. A message
    published from inside a handler is queued and delivered after the
    current one has reached every subscriber, so delivery stays FIFO.

    If a handler raises, the remaining subscribers and every message already
    queued are still delivered; the first error is then re-raised to the
    original publisher and any later ones are logged.
    """

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable]] = defaultdict(list)
        self._queue: deque[Any] = deque()
        self._dispatching = False

    def subscribe(self, event_type: type, handler: Callable) -> None:
        self._subscribers[event_type].append(handler)

    def publish(self, event: Any) -> None:
        self._queue.append(event)
        if self._dispatching:
            return

        self._dispatching = True
        error: Exception | None = None
        try:
            while self._queue:
                message = self._queue.popleft()
                for handler in self._subscribers.get(type(message), []):
                    try:
                        handler(message)
                    except Exception as exc:
                        if error is None:
                            error = exc
                        else:
                            logger.exception(
                                "Handler %r failed for %s", handler, type(message).__name__
                            )
        finally:
            self._dispatching = False

        if error is not None:
            raise error
