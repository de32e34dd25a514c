from __future__ import annotations

import threading
import time

from concurrent.futures import ThreadPoolExecutor

import pytest

from criminal_detector.face.cache import RepresentationCache


class _CountingCompute:
    def __init__(self, delay: float = 0.0, result="rep"):
        self.delay = delay
        self.result = result
        self.calls = 0
        self._lock = threading.Lock()

    def __call__(self, key):
        with self._lock:
            self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        return self.result if self.result is None else f"{self.result}:{key}"


def test_get_or_compute_memoizes():
    cache = RepresentationCache()
    compute = _CountingCompute()

    assert cache.get_or_compute("a", compute) == "rep:a"
    assert cache.get_or_compute("a", compute) == "rep:a"

    assert compute.calls == 1
    assert cache.computations == 1
    assert "a" in cache
    assert len(cache) == 1


def test_failed_representation_is_cached_as_none():
    cache = RepresentationCache()
    compute = _CountingCompute(result=None)

    assert cache.get_or_compute("no-face", compute) is None
    assert cache.get_or_compute("no-face", compute) is None

    assert compute.calls == 1
    assert "no-face" in cache
    assert cache.peek("no-face") is None


def test_invalidate_forces_recompute():
    cache = RepresentationCache()
    compute = _CountingCompute()
    cache.get_or_compute("a", compute)
    cache.get_or_compute("b", compute)

    cache.invalidate()

    assert len(cache) == 0
    assert "a" not in cache
    cache.get_or_compute("a", compute)
    cache.get_or_compute("b", compute)
    assert compute.calls == 4
    assert cache.computations == 4


def test_concurrent_lookups_share_one_computation():
    cache = RepresentationCache()
    compute = _CountingCompute(delay=0.05)
    n = 16
    barrier = threading.Barrier(n)

    def worker(_):
        barrier.wait()
        return cache.get_or_compute("same", compute)

    with ThreadPoolExecutor(max_workers=n) as pool:
        results = list(pool.map(worker, range(n)))

    assert results == ["rep:same"] * n
    assert compute.calls == 1
    assert len(cache) == 1


def test_slow_key_does_not_block_other_keys():
    cache = RepresentationCache()
    release = threading.Event()

    def slow(key):
        release.wait(timeout=5)
        return "slow"

    t = threading.Thread(target=cache.get_or_compute, args=("slow", slow))
    t.start()
    try:
        st = time.time()
        assert cache.get_or_compute("fast", lambda key: "fast") == "fast"
        assert time.time() - st < 1.0
    finally:
        release.set()
        t.join(timeout=5)
    assert cache.peek("slow") == "slow"


def test_invalidate_during_computation_discards_stale_value():
    cache = RepresentationCache()
    started = threading.Event()
    release = threading.Event()
    out = {}

    def slow(key):
        started.set()
        release.wait(timeout=5)
        return "stale"

    t = threading.Thread(target=lambda: out.setdefault("v", cache.get_or_compute("k", slow)))
    t.start()
    assert started.wait(timeout=5)

    cache.invalidate()
    release.set()
    t.join(timeout=5)

    # The in-flight caller still gets its value, but it is not stored.
    assert out["v"] == "stale"
    assert "k" not in cache
    assert cache.get_or_compute("k", lambda key: "fresh") == "fresh"


def test_compute_error_propagates_and_is_not_cached():
    cache = RepresentationCache()

    def boom(key):
        raise RuntimeError("decode failed")

    with pytest.raises(RuntimeError):
        cache.get_or_compute("k", boom)
    assert "k" not in cache
    assert cache.get_or_compute("k", lambda key: "ok") == "ok"
