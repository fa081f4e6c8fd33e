"""Time and memory budget checks for store operations."""

import inspect
import logging
import time
import tracemalloc
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BenchmarkResult:
    passed: bool
    duration: float
    peak_memory: int
    max_duration: float
    max_memory_bytes: int | None = None
    result: Any = None


async def measure(
    operation: Callable[[], Any],
    max_duration: float,
    max_memory_bytes: int | None = None,
) -> BenchmarkResult:
    """Run ``operation`` once and check it against a time and memory budget.

    ``operation`` may be a plain callable or return an awaitable. Memory is
    the peak Python allocation seen by tracemalloc while it ran.
    """
    already_tracing = tracemalloc.is_tracing()
    if not already_tracing:
        tracemalloc.start()
    tracemalloc.reset_peak()

    start = time.perf_counter()
    try:
        value = operation()
        if inspect.isawaitable(value):
            value = await value
    finally:
        duration = time.perf_counter() - start
        _, peak = tracemalloc.get_traced_memory()
        if not already_tracing:
            tracemalloc.stop()

    passed = duration <= max_duration and (
        max_memory_bytes is None or peak <= max_memory_bytes
    )
    if not passed:
        logger.warning(
            "Benchmark over budget: %.4fs (max %.4fs), %d bytes (max %s)",
            duration, max_duration, peak, max_memory_bytes,
        )
    return BenchmarkResult(
        passed=passed,
        duration=duration,
        peak_memory=peak,
        max_duration=max_duration,
        max_memory_bytes=max_memory_bytes,
        result=value,
    )
