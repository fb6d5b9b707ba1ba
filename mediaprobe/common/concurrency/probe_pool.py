# mediaprobe/common/concurrency/probe_pool.py
from __future__ import annotations

import os
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, List, Optional, TypeVar

from mediaprobe.common.logging import get_logger

T = TypeVar("T")
R = TypeVar("R")

log = get_logger(__name__)


@dataclass
class PoolStats:
    start_ts: float
    submitted: int = 0
    completed: int = 0
    failed: int = 0

    @property
    def uptime_sec(self) -> float:
        return time.time() - self.start_ts

    @property
    def in_flight(self) -> int:
        return max(0, self.submitted - (self.completed + self.failed))


class ProbePool(Generic[T, R]):
    """
    Bounded thread pool for running independent probes side by side.

    Every probe call owns its own library handles and symbol table, so the
    only thing shared between workers is this pool's bookkeeping.

    Notes
    -----
    - `max_pending` bounds submitted-but-unfinished tasks; `submit()` blocks
      once the bound is reached.
    - Task exceptions stay on the Future; they are counted, and logged when
      `log_failures` is set.
    """

    def __init__(
        self,
        name: str = "probe",
        max_workers: Optional[int] = None,
        max_pending: Optional[int] = None,
        log_failures: bool = False,
    ) -> None:
        if max_workers is None:
            max_workers = max(1, min(8, os.cpu_count() or 4))

        self._name = name
        self._max_workers = max_workers
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=name)
        self._slots = threading.Semaphore(max_pending) if max_pending and max_pending > 0 else None
        self._stats = PoolStats(start_ts=time.time())
        self._log_failures = log_failures
        self._closed = False
        self._lock = threading.Lock()

    @property
    def max_workers(self) -> int:
        return self._max_workers

    # -------------------------
    # Lifecycle
    # -------------------------
    def shutdown(self, wait: bool = True, cancel_futures: bool = False) -> None:
        """Shut down the executor. Safe to call multiple times."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait, cancel_futures=cancel_futures)

    def __enter__(self) -> "ProbePool[T, R]":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown(wait=True, cancel_futures=exc_type is not None)

    def stats(self) -> PoolStats:
        """Return a snapshot of the counters."""
        with self._lock:
            return PoolStats(
                start_ts=self._stats.start_ts,
                submitted=self._stats.submitted,
                completed=self._stats.completed,
                failed=self._stats.failed,
            )

    # -------------------------
    # Submission
    # -------------------------
    def submit(self, fn: Callable[..., R], /, *args, **kwargs) -> Future[R]:
        if self._closed:
            raise RuntimeError(f"{self._name}: submit() after shutdown")

        if self._slots is not None:
            self._slots.acquire()

        def _run(*a, **kw) -> R:
            try:
                return fn(*a, **kw)
            finally:
                if self._slots is not None:
                    self._slots.release()

        with self._lock:
            self._stats.submitted += 1

        fut: Future[R] = self._executor.submit(_run, *args, **kwargs)
        fut.add_done_callback(self._account)
        return fut

    def _account(self, fut: Future) -> None:
        exc = fut.exception() if not fut.cancelled() else None
        with self._lock:
            if fut.cancelled() or exc is not None:
                self._stats.failed += 1
            else:
                self._stats.completed += 1
        if exc is not None and self._log_failures:
            log.error("%s task failed: %s", self._name, exc, exc_info=exc)

    def map(self, fn: Callable[[T], R], iterable: Iterable[T]) -> List[R]:
        """Run `fn` over `iterable`; results come back in input order."""
        futures = [self.submit(fn, item) for item in iterable]
        return [f.result() for f in futures]
