from __future__ import annotations

import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, TypeVar


T = TypeVar("T")


class Limiter:
    """
    Runs submitted callables with at most `capacity` of them in flight.

    A fixed set of worker threads pulls tasks from a FIFO queue, so later
    submissions wait their turn and every task eventually runs. A task's
    exception lands on its own Future and never affects the others.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")
        self.capacity = capacity
        self._executor = ThreadPoolExecutor(max_workers=capacity, thread_name_prefix="imguard")
        self._lock = threading.Lock()
        self._active = 0
        self._peak = 0

    @property
    def active(self) -> int:
        with self._lock:
            return self._active

    @property
    def peak(self) -> int:
        """Highest number of tasks seen running at once."""
        with self._lock:
            return self._peak

    def submit(self, task: Callable[..., T], *args: Any, **kwargs: Any) -> "Future[T]":
        return self._executor.submit(self._run, task, args, kwargs)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "Limiter":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown(wait=True)

    def _run(self, task: Callable[..., T], args: tuple, kwargs: dict) -> T:
        with self._lock:
            self._active += 1
            self._peak = max(self._peak, self._active)
        try:
            return task(*args, **kwargs)
        finally:
            with self._lock:
                self._active -= 1
