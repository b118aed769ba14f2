"""메트릭 레지스트리 읽기 계약 (추상 베이스 클래스)"""

from abc import ABC, abstractmethod
from typing import Iterator

from reporter.models.snapshot import MetricSnapshot


class BaseMetric(ABC):
    """레지스트리에 등록되는 메트릭 핸들

    Counter, Gauge, FloatGauge, Histogram, Meter, Timer 중 하나의
    스냅샷을 돌려준다. 그 외의 객체는 리포터가 무시한다.
    """

    @abstractmethod
    def snapshot(self) -> MetricSnapshot:
        """호출 시점의 값을 담은 불변 스냅샷"""
        ...


class BaseRegistry(ABC):
    """호스트가 관리하는 이름 → 메트릭 핸들 저장소"""

    @abstractmethod
    def each(self) -> Iterator[tuple[str, object]]:
        """(이름, 핸들) 쌍 순회. 순서는 의미 없다."""
        ...
