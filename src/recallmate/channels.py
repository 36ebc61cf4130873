"""Explicit result publication with a request-generation guard.

Each service owns a ResultChannel. A request takes a generation number
before it starts; when it finishes it publishes with that number, and the
channel only delivers it if no newer request has been issued since. Late
results from superseded requests are dropped instead of overwriting newer
ones.

Publication happens on the event loop thread (after the awaited blocking
work returns), so subscribers never see concurrent calls.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Subscriber = Callable[[T], None]


class ResultChannel(Generic[T]):
    """Latest-value channel with subscriber callbacks."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._generation = 0
        self._latest: T | None = None
        self._subscribers: list[Subscriber[T]] = []

    @property
    def generation(self) -> int:
        """The most recently issued generation."""
        return self._generation

    @property
    def latest(self) -> T | None:
        """The last delivered value, or None before the first delivery."""
        return self._latest

    def next_generation(self) -> int:
        """Issue a generation for a new request."""
        self._generation += 1
        return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def subscribe(self, callback: Subscriber[T]) -> Callable[[], None]:
        """Register a callback; returns a function that unsubscribes it."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, generation: int, value: T) -> bool:
        """Deliver value if generation is still the latest issued.

        Returns:
            True if delivered, False if the request was superseded.
        """
        if not self.is_current(generation):
            logger.debug(
                "Dropping stale %s result (generation=%d, latest=%d)",
                self.name,
                generation,
                self._generation,
            )
            return False

        self._latest = value
        for callback in list(self._subscribers):
            callback(value)
        return True
