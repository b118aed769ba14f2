"""레지스트리에서 읽어온 메트릭 스냅샷 (종류별 tagged variant)

스냅샷은 읽는 순간의 값이며, 리포터는 이를 변경하지 않는다.
Timer의 min/max/mean 등은 호스트가 기록한 duration 단위를 그대로 따른다.
"""

import math
from dataclasses import dataclass, field
from typing import Sequence

REPORT_QUANTILES: tuple[float, ...] = (0.5, 0.75, 0.95)


def percentiles(values: Sequence[float], quantiles: Sequence[float]) -> list[float]:
    """샘플 기반 percentile (pos = q * (n + 1) 선형 보간)"""
    scores = [0.0] * len(quantiles)
    if not values:
        return scores
    ordered = sorted(values)
    size = len(ordered)
    for i, q in enumerate(quantiles):
        pos = q * (size + 1)
        if pos < 1.0:
            scores[i] = float(ordered[0])
        elif pos >= size:
            scores[i] = float(ordered[-1])
        else:
            lower = ordered[int(pos) - 1]
            upper = ordered[int(pos)]
            scores[i] = lower + (pos - math.floor(pos)) * (upper - lower)
    return scores


def _describe(values: Sequence[float]) -> tuple[float, float, float, float]:
    if not values:
        return 0.0, 0.0, 0.0, 0.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return float(min(values)), float(max(values)), mean, math.sqrt(variance)


@dataclass(frozen=True)
class CounterSnapshot:
    count: int


@dataclass(frozen=True)
class GaugeSnapshot:
    value: int


@dataclass(frozen=True)
class FloatGaugeSnapshot:
    value: float


@dataclass(frozen=True)
class HistogramSnapshot:
    count: int
    min: float
    max: float
    mean: float
    stddev: float
    values: tuple[float, ...] = field(default=(), repr=False)

    @classmethod
    def from_values(cls, values: Sequence[float], count: int | None = None) -> "HistogramSnapshot":
        lo, hi, mean, stddev = _describe(values)
        return cls(
            count=len(values) if count is None else count,
            min=lo,
            max=hi,
            mean=mean,
            stddev=stddev,
            values=tuple(values),
        )

    def percentiles(self, quantiles: Sequence[float] = REPORT_QUANTILES) -> list[float]:
        return percentiles(self.values, quantiles)


@dataclass(frozen=True)
class MeterSnapshot:
    count: int
    rate1: float
    rate5: float
    rate15: float
    rate_mean: float


@dataclass(frozen=True)
class TimerSnapshot:
    """Histogram(duration) + Meter(rate) 필드의 합집합"""

    count: int
    min: float
    max: float
    mean: float
    stddev: float
    rate1: float
    rate5: float
    rate15: float
    rate_mean: float
    values: tuple[float, ...] = field(default=(), repr=False)

    @classmethod
    def from_values(
        cls,
        values: Sequence[float],
        rate1: float,
        rate5: float,
        rate15: float,
        rate_mean: float,
        count: int | None = None,
    ) -> "TimerSnapshot":
        lo, hi, mean, stddev = _describe(values)
        return cls(
            count=len(values) if count is None else count,
            min=lo,
            max=hi,
            mean=mean,
            stddev=stddev,
            rate1=rate1,
            rate5=rate5,
            rate15=rate15,
            rate_mean=rate_mean,
            values=tuple(values),
        )

    def percentiles(self, quantiles: Sequence[float] = REPORT_QUANTILES) -> list[float]:
        return percentiles(self.values, quantiles)


MetricSnapshot = (
    CounterSnapshot
    | GaugeSnapshot
    | FloatGaugeSnapshot
    | HistogramSnapshot
    | MeterSnapshot
    | TimerSnapshot
)
