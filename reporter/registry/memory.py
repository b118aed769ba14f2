"""프로세스 내 메모리 레지스트리"""

import threading
from typing import Callable, Iterator

from reporter.registry.base import BaseRegistry


class MemoryRegistry(BaseRegistry):
    """스레드 안전한 이름 → 핸들 저장소

    each()는 잠금 상태에서 복사본을 만든 뒤 순회하므로, 리포터가 읽는 동안
    호스트 스레드가 등록/해제해도 된다.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics: dict[str, object] = {}

    def register(self, name: str, handle: object) -> None:
        with self._lock:
            if name in self._metrics:
                raise KeyError(f"metric already registered: {name}")
            self._metrics[name] = handle

    def get_or_register(self, name: str, factory: Callable[[], object]) -> object:
        with self._lock:
            if name not in self._metrics:
                self._metrics[name] = factory()
            return self._metrics[name]

    def unregister(self, name: str) -> None:
        with self._lock:
            self._metrics.pop(name, None)

    def each(self) -> Iterator[tuple[str, object]]:
        with self._lock:
            items = list(self._metrics.items())
        yield from items

    def __len__(self) -> int:
        with self._lock:
            return len(self._metrics)
