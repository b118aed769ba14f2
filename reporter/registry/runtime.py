"""프로세스 런타임 메트릭 (스레드 수, GC, uptime, RSS)"""

import gc
import threading
import time
from typing import Callable

from reporter.models.snapshot import CounterSnapshot, FloatGaugeSnapshot, GaugeSnapshot
from reporter.registry.base import BaseMetric
from reporter.registry.memory import MemoryRegistry

try:
    import resource
except ImportError:  # Windows
    resource = None


class FunctionCounter(BaseMetric):
    def __init__(self, fn: Callable[[], int]) -> None:
        self._fn = fn

    def snapshot(self) -> CounterSnapshot:
        return CounterSnapshot(int(self._fn()))


class FunctionGauge(BaseMetric):
    """정수 gauge. float 값은 소수점 이하를 버리고, NaN/inf면 snapshot()이 ValueError를 던진다.

    소수 값이 필요하면 FunctionFloatGauge를 쓴다.
    """

    def __init__(self, fn: Callable[[], int]) -> None:
        self._fn = fn

    def snapshot(self) -> GaugeSnapshot:
        return GaugeSnapshot(int(self._fn()))


class FunctionFloatGauge(BaseMetric):
    def __init__(self, fn: Callable[[], float]) -> None:
        self._fn = fn

    def snapshot(self) -> FloatGaugeSnapshot:
        return FloatGaugeSnapshot(float(self._fn()))


def _gc_collections() -> int:
    return sum(stat["collections"] for stat in gc.get_stats())


def _max_rss() -> int:
    # Linux는 KiB 단위
    return resource.getrusage(resource.RUSAGE_SELF).ru_maxrss


def register_runtime_metrics(registry: MemoryRegistry, prefix: str = "runtime") -> None:
    """호스트 프로세스의 런타임 통계를 레지스트리에 등록"""
    started = time.monotonic()

    registry.register(f"{prefix}.threads", FunctionGauge(threading.active_count))
    registry.register(f"{prefix}.gc.collections", FunctionCounter(_gc_collections))
    registry.register(f"{prefix}.gc.objects", FunctionGauge(lambda: len(gc.get_objects())))
    registry.register(
        f"{prefix}.uptime", FunctionFloatGauge(lambda: time.monotonic() - started)
    )
    if resource is not None:
        registry.register(f"{prefix}.max-rss", FunctionGauge(_max_rss))
