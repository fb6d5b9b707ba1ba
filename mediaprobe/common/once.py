# mediaprobe/common/once.py
from __future__ import annotations

import threading
from typing import Callable


class RunOnce:
    """
    Thread-safe one-shot initializer.

    The first successful call runs ``fn``; every later call is a no-op.
    If ``fn`` raises, the guard stays open so the next caller retries.
    """

    def __init__(self, name: str = "once") -> None:
        self._name = name
        self._lock = threading.Lock()
        self._done = False

    @property
    def done(self) -> bool:
        return self._done

    def __call__(self, fn: Callable[[], object]) -> bool:
        """Run ``fn`` if nobody has yet. Returns True if this call ran it."""
        if self._done:
            return False
        with self._lock:
            if self._done:
                return False
            fn()
            self._done = True
            return True

    def reset(self) -> None:
        # tests only
        with self._lock:
            self._done = False

    def __repr__(self) -> str:
        return f"RunOnce({self._name!r}, done={self._done})"
