"""Keyed work queue with single-flight processing and per-key backoff.

Semantics follow the client-go workqueue:

* A key waiting in the queue is stored once, however often it is added.
* A key that is being processed is not handed to a second worker.  Adds that
  arrive meanwhile mark it dirty, and ``done()`` puts it back in the queue.
* ``add_rate_limited()`` delays a key by ``base * 2**(failures - 1)`` seconds,
  capped at ``max_delay``; ``forget()`` resets the failure count.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Hashable

from node_label_inheritor.observability.logging import get_logger
from node_label_inheritor.observability.metrics import (
    workqueue_adds_total,
    workqueue_depth,
    workqueue_retries_total,
)

_log = get_logger("controller.queue")

_DEFAULT_BASE_DELAY = 0.005
_DEFAULT_MAX_DELAY = 300.0


class QueueShutDownError(Exception):
    """Raised from ``get()`` once the queue has been shut down."""


class WorkQueue:
    """Async work queue of hashable keys.

    Args:
        base_delay: First retry delay in seconds.
        max_delay:  Upper bound for the retry delay in seconds.
    """

    def __init__(
        self,
        base_delay: float = _DEFAULT_BASE_DELAY,
        max_delay: float = _DEFAULT_MAX_DELAY,
    ) -> None:
        if base_delay <= 0 or max_delay < base_delay:
            raise ValueError("backoff delays must satisfy 0 < base_delay <= max_delay")
        self._base_delay = base_delay
        self._max_delay = max_delay

        self._queue: deque[Hashable] = deque()
        self._dirty: set[Hashable] = set()
        self._processing: set[Hashable] = set()
        self._failures: dict[Hashable, int] = {}
        self._timers: dict[Hashable, asyncio.TimerHandle] = {}
        self._not_empty = asyncio.Event()
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._queue)

    @property
    def shutting_down(self) -> bool:
        return self._shutting_down

    def add(self, key: Hashable) -> None:
        """Queue *key* unless it is already queued."""
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        workqueue_adds_total.inc()
        if key in self._processing:
            return
        self._queue.append(key)
        workqueue_depth.set(len(self._queue))
        self._not_empty.set()

    def add_after(self, key: Hashable, delay: float) -> None:
        """Queue *key* after *delay* seconds.  An earlier pending timer wins."""
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return
        loop = asyncio.get_running_loop()
        when = loop.time() + delay
        existing = self._timers.get(key)
        if existing is not None:
            if existing.when() <= when:
                return
            existing.cancel()
        self._timers[key] = loop.call_at(when, self._fire_timer, key)

    def _fire_timer(self, key: Hashable) -> None:
        self._timers.pop(key, None)
        self.add(key)

    def add_rate_limited(self, key: Hashable) -> None:
        """Queue *key* after its exponential backoff delay."""
        failures = self._failures.get(key, 0) + 1
        self._failures[key] = failures
        workqueue_retries_total.inc()
        self.add_after(key, self.backoff_for(failures))

    def backoff_for(self, failures: int) -> float:
        """Delay applied after the *failures*-th consecutive failure."""
        if failures <= 0:
            return 0.0
        # Cap the exponent so very long failure streaks cannot overflow.
        exponent = min(failures - 1, 62)
        return min(self._base_delay * (2**exponent), self._max_delay)

    def forget(self, key: Hashable) -> None:
        """Clear the failure history of *key*."""
        self._failures.pop(key, None)

    def num_requeues(self, key: Hashable) -> int:
        return self._failures.get(key, 0)

    async def get(self) -> Hashable:
        """Wait for the next key and mark it as being processed.

        Raises:
            QueueShutDownError: the queue was shut down.
        """
        while not self._queue:
            if self._shutting_down:
                raise QueueShutDownError
            self._not_empty.clear()
            await self._not_empty.wait()
        if self._shutting_down:
            raise QueueShutDownError
        key = self._queue.popleft()
        workqueue_depth.set(len(self._queue))
        self._processing.add(key)
        self._dirty.discard(key)
        return key

    def done(self, key: Hashable) -> None:
        """Mark *key* as processed, re-queueing it if it was added meanwhile."""
        self._processing.discard(key)
        if key in self._dirty and not self._shutting_down:
            self._queue.append(key)
            workqueue_depth.set(len(self._queue))
            self._not_empty.set()

    def shut_down(self) -> None:
        """Stop accepting keys, cancel pending timers and wake every waiter."""
        if self._shutting_down:
            return
        self._shutting_down = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        _log.debug("work queue shut down", pending=len(self._queue))
        self._not_empty.set()
