"""
Name: Timing Utilities

Responsibilities:
  - Measure execution time of code blocks (chunk attempts, provider calls)

Collaborators:
  - application.batch_dispatcher: elapsed_ms per chunk
  - application.orchestrator: latency in logs

Notes:
  - Use as context manager: with Timer() as t: ... t.elapsed_ms
"""

import time
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Timer:
    """
    R: Simple timer for measuring elapsed time.

    Usage:
        with Timer() as t:
            ...
        t.elapsed_ms
    """

    _start_time: Optional[float] = field(default=None, repr=False)
    _end_time: Optional[float] = field(default=None, repr=False)

    def start(self) -> "Timer":
        """R: Start the timer."""
        self._start_time = time.perf_counter()
        self._end_time = None
        return self

    def stop(self) -> "Timer":
        """R: Stop the timer."""
        if self._start_time is None:
            raise RuntimeError("Timer was not started")
        self._end_time = time.perf_counter()
        return self

    @property
    def elapsed_ms(self) -> int:
        """R: Elapsed milliseconds (running timers report time so far)."""
        if self._start_time is None:
            return 0
        end = self._end_time if self._end_time is not None else time.perf_counter()
        return int((end - self._start_time) * 1000)

    def __enter__(self) -> "Timer":
        return self.start()

    def __exit__(self, *exc) -> None:
        self.stop()
