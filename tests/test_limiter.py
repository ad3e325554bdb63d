from __future__ import annotations

import threading
import time

import pytest

from imguard.limiter import Limiter


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        Limiter(0)


def test_never_exceeds_capacity() -> None:
    lock = threading.Lock()
    running = 0
    observed = []

    def task(i: int) -> int:
        nonlocal running
        with lock:
            running += 1
            observed.append(running)
        time.sleep(0.01)
        with lock:
            running -= 1
        return i

    with Limiter(3) as limiter:
        futures = [limiter.submit(task, i) for i in range(20)]
        results = sorted(f.result() for f in futures)

    assert results == list(range(20))
    assert max(observed) <= 3
    assert limiter.peak <= 3
    assert limiter.active == 0


def test_capacity_is_actually_used() -> None:
    barrier = threading.Barrier(4, timeout=5)

    def task() -> None:
        barrier.wait()

    with Limiter(4) as limiter:
        futures = [limiter.submit(task) for _ in range(4)]
        for f in futures:
            f.result(timeout=5)

    assert limiter.peak == 4


def test_single_slot_runs_in_submission_order() -> None:
    started = []

    with Limiter(1) as limiter:
        futures = [limiter.submit(started.append, i) for i in range(50)]
        for f in futures:
            f.result()

    assert started == list(range(50))


def test_failure_stays_with_its_own_caller() -> None:
    def task(i: int) -> int:
        if i == 2:
            raise RuntimeError("boom")
        return i * 10

    with Limiter(2) as limiter:
        futures = [limiter.submit(task, i) for i in range(5)]

    assert isinstance(futures[2].exception(), RuntimeError)
    assert [f.result() for i, f in enumerate(futures) if i != 2] == [0, 10, 30, 40]
    assert limiter.active == 0


def test_large_batch_completes() -> None:
    with Limiter(4) as limiter:
        futures = [limiter.submit(lambda n=n: n) for n in range(5000)]
        total = sum(f.result() for f in futures)

    assert total == sum(range(5000))
