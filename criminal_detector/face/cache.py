from __future__ import annotations

import threading

from typing import Callable, Dict, Generic, Hashable, Optional, TypeVar

from criminal_detector.utils.log import get_logger

logger = get_logger(__name__)

V = TypeVar("V")


class _Pending:
    __slots__ = ("event", "value", "error")

    def __init__(self):
        self.event = threading.Event()
        self.value = None
        self.error: Optional[BaseException] = None


class RepresentationCache(Generic[V]):
    """Thread-safe get-or-compute map for per-record canonical faces.

    - A stored ``None`` means "computed, no representation available" and is
      returned as-is until the next `invalidate()`; it is not recomputed.
    - Concurrent lookups of the same missing key share one computation: the
      first caller computes outside the lock, the others wait on it.
      Lookups of other keys are never blocked by a computation.
    - `invalidate()` drops every entry. A computation that started before the
      invalidation still answers its own callers but is not stored.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._entries: Dict[Hashable, Optional[V]] = {}
        self._inflight: Dict[Hashable, _Pending] = {}
        self._generation = 0
        self.computations = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def peek(self, key: Hashable) -> Optional[V]:
        with self._lock:
            return self._entries.get(key)

    def get_or_compute(self, key: Hashable, compute: Callable[[Hashable], Optional[V]]) -> Optional[V]:
        with self._lock:
            if key in self._entries:
                return self._entries[key]
            pending = self._inflight.get(key)
            owner = pending is None
            if owner:
                pending = _Pending()
                self._inflight[key] = pending
                self.computations += 1
            generation = self._generation

        if not owner:
            pending.event.wait()
            if pending.error is not None:
                raise pending.error
            return pending.value

        try:
            value = compute(key)
        except BaseException as e:
            with self._lock:
                if self._inflight.get(key) is pending:
                    del self._inflight[key]
            pending.error = e
            pending.event.set()
            raise

        with self._lock:
            if generation == self._generation:
                self._entries[key] = value
            if self._inflight.get(key) is pending:
                del self._inflight[key]
        pending.value = value
        pending.event.set()
        return value

    def invalidate(self) -> None:
        with self._lock:
            dropped = len(self._entries)
            self._entries.clear()
            self._inflight.clear()
            self._generation += 1
        logger.info(f"Representation cache cleared ({dropped} entries)")
