from __future__ import annotations

"""Timing and resource usage of the individual score sources."""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, Tuple, TypeVar
import time
import psutil

T = TypeVar("T")


@dataclass
class SourceMetrics:
    name: str
    ms: float
    outcome: str
    rss_bytes: int


async def measure_async(fn: Callable[[], Awaitable[T]], name: str) -> Tuple[T, SourceMetrics]:
    """Await ``fn()`` and record wall time and RSS growth.

    Exceptions propagate; callers that need an outcome on failure record
    it themselves.
    """

    proc = psutil.Process()
    rss_before = proc.memory_info().rss
    start = time.perf_counter()
    result = await fn()
    end = time.perf_counter()
    metrics = SourceMetrics(
        name=name,
        ms=(end - start) * 1000.0,
        outcome="ok",
        rss_bytes=max(0, proc.memory_info().rss - rss_before),
    )
    return result, metrics


class Stopwatch:
    def __init__(self):
        self.start = time.perf_counter()

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start) * 1000.0


def describe_runtime(cfg) -> Dict[str, Any]:
    return {
        "parallel_config": dict(cfg.__dict__),
        "hw": {"cpu_count": psutil.cpu_count(), "ram_gb": psutil.virtual_memory().total / 1e9},
    }


def embed_report_metrics(report: Dict[str, Any], total_ms: float, sources: Iterable[SourceMetrics], runtime: Dict[str, Any]):
    report["metrics"] = {
        "total_ms": total_ms,
        "sources": [s.__dict__ for s in sources],
    }
    report["metrics"].update(runtime)
    return report
