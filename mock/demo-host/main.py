"""
Demo host - 합성 메트릭을 레지스트리에 등록하고 리포터를 돌린다.

collector-simulator와 함께 실행해서 handshake, 평탄화된 gauge 라인,
재연결 동작을 눈으로 확인하는 용도.
"""

import asyncio
import logging
import math
import os
import random
import time

from reporter.config import Config
from reporter.connection import ConnectionManager
from reporter.models.greeting import Greeting
from reporter.models.snapshot import (
    CounterSnapshot,
    FloatGaugeSnapshot,
    HistogramSnapshot,
    MeterSnapshot,
    TimerSnapshot,
)
from reporter.registry.base import BaseMetric
from reporter.registry.memory import MemoryRegistry
from reporter.registry.runtime import register_runtime_metrics

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

COLLECTOR_ADDR: str = os.environ.get("COLLECTOR_ADDR", "127.0.0.1:8000")
TOKEN: str = os.environ.get("TOKEN", "demo-token")
PREFIX: str = os.environ.get("PREFIX", "demo")
INTERVAL: float = float(os.environ.get("INTERVAL", "2"))

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_start_ts: float = time.time()


def _wave(base: float, amplitude: float, period_seconds: float = 60.0, noise: float = 0.0) -> float:
    elapsed = time.time() - _start_ts
    sine = math.sin(2 * math.pi * elapsed / period_seconds)
    return base + amplitude * sine + random.uniform(-noise, noise)


def _samples(base: float, amplitude: float, size: int = 50) -> list[float]:
    return [max(0.0, _wave(base, amplitude, noise=amplitude / 2)) for _ in range(size)]


# ---------------------------------------------------------------------------
# Synthetic metric handles
# ---------------------------------------------------------------------------


class RequestCounter(BaseMetric):
    """호출할 때마다 조금씩 증가하는 카운터"""

    def __init__(self) -> None:
        self.count = 0

    def snapshot(self) -> CounterSnapshot:
        self.count += random.randint(5, 25)
        return CounterSnapshot(self.count)


class QueueDepth(BaseMetric):
    def snapshot(self) -> FloatGaugeSnapshot:
        return FloatGaugeSnapshot(max(0.0, _wave(40.0, 30.0, 90, 5.0)))


class PayloadSize(BaseMetric):
    def snapshot(self) -> HistogramSnapshot:
        return HistogramSnapshot.from_values(_samples(512.0, 256.0))


class Throughput(BaseMetric):
    def snapshot(self) -> MeterSnapshot:
        rate = max(0.0, _wave(120.0, 40.0, 120, 10.0))
        return MeterSnapshot(
            count=int((time.time() - _start_ts) * 120),
            rate1=rate,
            rate5=rate * 0.95,
            rate15=rate * 0.9,
            rate_mean=120.0,
        )


class RequestLatency(BaseMetric):
    def snapshot(self) -> TimerSnapshot:
        rate = max(0.0, _wave(80.0, 20.0, 60, 5.0))
        return TimerSnapshot.from_values(
            _samples(0.045, 0.02),
            rate1=rate,
            rate5=rate * 0.97,
            rate15=rate * 0.93,
            rate_mean=80.0,
        )


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


async def main() -> None:
    registry = MemoryRegistry()
    register_runtime_metrics(registry)
    registry.register("requests", RequestCounter())
    registry.register("queue.depth", QueueDepth())
    registry.register("payload.bytes", PayloadSize())
    registry.register("throughput", Throughput())
    registry.register("latency", RequestLatency())

    config = Config(addr=COLLECTOR_ADDR, token=TOKEN, prefix=PREFIX)
    manager = ConnectionManager(registry, INTERVAL, config, Greeting.current())

    print(
        f"[demo-host] Starting: collector={COLLECTOR_ADDR}, "
        f"interval={INTERVAL}s, metrics={len(registry)}",
        flush=True,
    )
    await manager.run()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutting down.", flush=True)
