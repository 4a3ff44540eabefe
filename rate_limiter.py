# -*- coding: utf-8 -*-
"""
Fixed-delay scheduling and cooperative cancellation for batch jobs.
"""

import threading
import time
from typing import Callable, Optional


class RateLimiter:
    """
    Enforce a minimum delay between consecutive calls.

    ``wait()`` is called before each outbound request; it sleeps only for the
    part of the delay that has not already elapsed since the previous call.
    """

    def __init__(
        self,
        delay: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.delay = max(0.0, float(delay))
        self._clock = clock
        self._sleep = sleep
        self._last_call: Optional[float] = None

    def wait(self) -> float:
        """Block until the next call is allowed. Returns the time slept."""
        slept = 0.0
        if self._last_call is not None and self.delay > 0:
            elapsed = self._clock() - self._last_call
            remaining = self.delay - elapsed
            if remaining > 0:
                self._sleep(remaining)
                slept = remaining
        self._last_call = self._clock()
        return slept

    def reset(self):
        self._last_call = None


class CancelToken:
    """Stop flag polled by batch jobs between records."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
