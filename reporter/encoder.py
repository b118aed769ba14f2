"""Metric Encoder - 레지스트리 스냅샷을 gauge 라인으로 평탄화

모든 값(count, rate, percentile 포함)은 gauge 동사로 전송된다.
한 tick의 라인은 모두 같은 timestamp(인코딩 시점의 Unix 초)를 쓴다.
"""

import logging
import time

from reporter.models.snapshot import (
    REPORT_QUANTILES,
    CounterSnapshot,
    FloatGaugeSnapshot,
    GaugeSnapshot,
    HistogramSnapshot,
    MeterSnapshot,
    TimerSnapshot,
)
from reporter.registry.base import BaseMetric, BaseRegistry

logger = logging.getLogger(__name__)

SEPARATOR = "."


def _histogram_values(vals: dict[str, float], name: str, s: HistogramSnapshot | TimerSnapshot) -> None:
    p50, p75, p95 = s.percentiles(REPORT_QUANTILES)
    vals[name + ".count"] = float(s.count)
    vals[name + ".min"] = float(s.min)
    vals[name + ".max"] = float(s.max)
    vals[name + ".mean"] = float(s.mean)
    vals[name + ".std-dev"] = float(s.stddev)
    vals[name + ".50-percentile"] = float(p50)
    vals[name + ".75-percentile"] = float(p75)
    vals[name + ".95-percentile"] = float(p95)


def _rate_values(vals: dict[str, float], name: str, s: MeterSnapshot | TimerSnapshot) -> None:
    vals[name + ".count"] = float(s.count)
    vals[name + ".one-minute"] = float(s.rate1)
    vals[name + ".five-minute"] = float(s.rate5)
    vals[name + ".fifteen-minute"] = float(s.rate15)
    vals[name + ".mean"] = float(s.rate_mean)


def _entry_values(name: str, snapshot: object) -> dict[str, float]:
    vals: dict[str, float] = {}
    match snapshot:
        case CounterSnapshot(count=count):
            vals[name] = float(count)
        case GaugeSnapshot(value=value):
            vals[name] = float(value)
        case FloatGaugeSnapshot(value=value):
            vals[name] = float(value)
        case HistogramSnapshot() as s:
            _histogram_values(vals, name, s)
        case MeterSnapshot() as s:
            _rate_values(vals, name, s)
        case TimerSnapshot() as s:
            # .mean은 duration 평균 다음 mean rate로 덮어쓴다
            _histogram_values(vals, name, s)
            _rate_values(vals, name, s)
        case other:
            logger.debug("skipping %r: unsupported snapshot %s", name, type(other).__name__)
    return vals


def flatten(registry: BaseRegistry) -> dict[str, float]:
    """(sub-metric 이름 → float 값)

    알 수 없는 종류나 snapshot()에서 예외를 던지는 핸들은 건너뛴다.
    한 핸들의 실패가 다른 메트릭 전송을 막지 않는다.
    """
    vals: dict[str, float] = {}
    for name, handle in registry.each():
        if not isinstance(handle, BaseMetric):
            logger.debug("skipping %r: unsupported metric %s", name, type(handle).__name__)
            continue
        try:
            vals.update(_entry_values(name, handle.snapshot()))
        except Exception:
            logger.debug("skipping %r: snapshot failed", name, exc_info=True)
    return vals


def compose_name(prefix: str, name: str) -> str:
    if name.startswith(SEPARATOR):
        name = name[1:]
    return prefix + SEPARATOR + name


def format_line(name: str, value: float, timestamp: int) -> str:
    """NaN/무한대는 Python 표기(nan, inf, -inf) 그대로 전송된다"""
    return "gauge %s %f %d\n" % (name, value, timestamp)


def encode(registry: BaseRegistry, prefix: str, now: int | None = None) -> list[str]:
    """한 tick 분량의 wire 라인"""
    timestamp = int(time.time()) if now is None else now
    return [
        format_line(compose_name(prefix, name), value, timestamp)
        for name, value in flatten(registry).items()
    ]
