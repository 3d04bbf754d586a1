"""
Timing instrumentation for command delivery.

A command run can legitimately take ``repeat * timeout_secs`` seconds, so the
decorator here only warns when a coroutine exceeds TUYA_PERF_THRESHOLD_MS.
Disabled unless TUYA_PERF_TRACKING is set.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Coroutine
from typing import Any, ParamSpec, TypeVar

from tuya_lan.logging_abstraction import TuyaLogger, get_logger

__all__ = [
    "measure_time",
    "timed_async",
]

P = ParamSpec("P")
T = TypeVar("T")


def measure_time(start_time: float) -> float:
    """Return milliseconds elapsed since ``start_time`` (a perf_counter value)."""
    return (time.perf_counter() - start_time) * 1000


def timed_async(
    operation_name: str | None = None,
) -> Callable[[Callable[P, Coroutine[Any, Any, T]]], Callable[P, Coroutine[Any, Any, T]]]:
    """
    Decorator timing an async function.

    Args:
        operation_name: Name for the operation (defaults to function name)

    Example:
        @timed_async("dispatcher_send")
        async def send(self, endpoint, dps):
            ...
    """

    def decorator(func: Callable[P, Coroutine[Any, Any, T]]) -> Callable[P, Coroutine[Any, Any, T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            from tuya_lan.const import TUYA_PERF_THRESHOLD_MS, TUYA_PERF_TRACKING  # noqa: PLC0415

            if not TUYA_PERF_TRACKING:
                return await func(*args, **kwargs)

            start_time = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                _log_timing(
                    get_logger(__name__),
                    operation_name or func.__name__,
                    measure_time(start_time),
                    TUYA_PERF_THRESHOLD_MS,
                )

        return wrapper

    return decorator


def _log_timing(logger: TuyaLogger, operation_name: str, elapsed_ms: float, threshold_ms: int) -> None:
    context = {
        "operation": operation_name,
        "duration_ms": round(elapsed_ms, 2),
        "threshold_ms": threshold_ms,
        "exceeded_threshold": elapsed_ms > threshold_ms,
    }
    if elapsed_ms > threshold_ms:
        logger.warning(
            "[%s] completed in %.1fms (threshold: %dms)",
            operation_name,
            elapsed_ms,
            threshold_ms,
            extra=context,
        )
    else:
        logger.debug("[%s] completed in %.1fms", operation_name, elapsed_ms, extra=context)
