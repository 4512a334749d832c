"""
Single-flight execution keyed by id.

At most one call per key runs at a time. Callers that arrive while a call
for the same key is in flight wait for it and receive its result, or its
exception, instead of starting a second run.
"""

import threading
from concurrent.futures import Future
from typing import Callable, Dict, Hashable, TypeVar

T = TypeVar("T")


class SingleFlight:
    """Deduplicates concurrent calls that share a key."""

    def __init__(self):
        self._lock = threading.Lock()
        self._in_flight: Dict[Hashable, Future] = {}

    def do(self, key: Hashable, fn: Callable[[], T]) -> T:
        """
        Run fn for key, or join the call already running for key.

        Args:
            key: Deduplication key (e.g. a recipe id)
            fn: Zero-argument callable to run

        Returns:
            The result of the in-flight call

        Raises:
            Whatever fn raised, re-raised in every waiting caller
        """
        with self._lock:
            future = self._in_flight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._in_flight[key] = future

        if not leader:
            return future.result()

        try:
            result = fn()
        except BaseException as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._in_flight.pop(key, None)

    def in_flight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._in_flight

    def __len__(self) -> int:
        with self._lock:
            return len(self._in_flight)
