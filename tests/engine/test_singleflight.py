"""Single-flight guard tests."""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from linkcurator.engine.singleflight import SingleFlight


def test_concurrent_callers_share_one_call():
    flight: SingleFlight[int] = SingleFlight()
    started = threading.Event()
    release = threading.Event()
    entered = threading.Semaphore(0)
    calls = []

    def slow():
        calls.append(1)
        started.set()
        release.wait(timeout=5)
        return 42

    def follower():
        entered.release()
        return flight.do("anchor", slow)

    with ThreadPoolExecutor(max_workers=4) as pool:
        leader = pool.submit(flight.do, "anchor", slow)
        assert started.wait(timeout=5)
        followers = [pool.submit(follower) for _ in range(3)]
        for _ in followers:
            assert entered.acquire(timeout=5)
        time.sleep(0.1)
        assert flight.in_flight() == 1
        release.set()
        results = [leader.result(timeout=5)] + [future.result(timeout=5) for future in followers]

    assert results == [42, 42, 42, 42]
    assert len(calls) == 1
    assert flight.in_flight() == 0


def test_errors_propagate_and_are_not_cached():
    flight: SingleFlight[int] = SingleFlight()

    def boom():
        raise RuntimeError("upstream down")

    with pytest.raises(RuntimeError):
        flight.do("key", boom)

    assert flight.in_flight() == 0
    assert flight.do("key", lambda: 7) == 7
