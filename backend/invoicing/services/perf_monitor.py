"""Performance monitoring utilities for the invoicing engine."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict

logger = logging.getLogger("invoicing-api.perf")


def timed(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for synchronous functions
    and records it on the module-level ``tracker``.

    Usage::

        @timed
        def assemble_totals(...):
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        failed = False
        try:
            return func(*args, **kwargs)
        except Exception:
            failed = True
            raise
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 3)
            tracker.record_call(func.__qualname__, duration_ms, failed)
            logger.debug(
                "function timed",
                extra={
                    "function": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class PerformanceTracker:
    """
    Thread-safe in-memory counters for timed engine calls.

    Tracks per function: call count, error count and cumulative duration.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._calls: Dict[str, int] = {}
        self._errors: Dict[str, int] = {}
        self._duration_ms: Dict[str, float] = {}

    def record_call(self, name: str, duration_ms: float, failed: bool = False) -> None:
        with self._lock:
            self._calls[name] = self._calls.get(name, 0) + 1
            self._duration_ms[name] = self._duration_ms.get(name, 0.0) + duration_ms
            if failed:
                self._errors[name] = self._errors.get(name, 0) + 1

    def get_metrics(self) -> Dict[str, Any]:
        """
        Snapshot of the collected counters.

        Returns
        -------
        dict with keys:
            calls            : {function: count}
            errors           : {function: count}
            avg_duration_ms  : {function: avg_ms}
        """
        with self._lock:
            avgs = {
                name: round(total / self._calls[name], 3)
                for name, total in self._duration_ms.items()
            }
            return {
                "calls": dict(self._calls),
                "errors": dict(self._errors),
                "avg_duration_ms": avgs,
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._calls.clear()
            self._errors.clear()
            self._duration_ms.clear()


# Module-level singleton, shared by every @timed function.
tracker = PerformanceTracker()
