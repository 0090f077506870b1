"""
Per-key single-flight execution.

Concurrent callers asking for the same key while a computation is in
progress wait for that computation and receive its result (or its
exception) instead of starting their own.
"""

import logging
import threading
from concurrent.futures import Future
from typing import Callable, Dict, Hashable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlight:
    """Collapse concurrent calls for one key into a single execution."""

    def __init__(self):
        self._lock = threading.Lock()
        self._in_flight: Dict[Hashable, Future] = {}

    def do(self, key: Hashable, fn: Callable[[], T]) -> T:
        with self._lock:
            future = self._in_flight.get(key)
            leader = future is None
            if leader:
                future = Future()
                self._in_flight[key] = future

        if not leader:
            logger.debug(f"Joining in-flight computation for {key}")
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
