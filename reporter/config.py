"""Instrumental Reporter 설정"""

import os
from dataclasses import dataclass, field
from typing import Callable

from reporter.errors import ReporterError, always_retry

DEFAULT_ADDR = "collector.instrumentalapp.com:8000"


def _timeout(raw: str) -> float | None:
    value = float(raw)
    return value if value > 0 else None


INSTRUMENTAL_ADDR: str = os.environ.get("INSTRUMENTAL_ADDR", DEFAULT_ADDR)
INSTRUMENTAL_TOKEN: str = os.environ.get("INSTRUMENTAL_TOKEN", "")
INSTRUMENTAL_PREFIX: str = os.environ.get("INSTRUMENTAL_PREFIX", "")
REPORT_INTERVAL: float = float(os.environ.get("REPORT_INTERVAL", "10"))
RETRY_DELAY: float = float(os.environ.get("RETRY_DELAY", "1"))
IO_TIMEOUT: float | None = _timeout(os.environ.get("IO_TIMEOUT", "10"))
LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")
HEALTH_PORT: int = int(os.environ.get("HEALTH_PORT", "9091"))


@dataclass(frozen=True)
class Config:
    """컬렉터 접속 설정 (시작 시 한 번 만들고 이후 변경하지 않는다)

    timeout 값이 None이면 해당 단계에 deadline을 두지 않는다.
    """

    addr: str = DEFAULT_ADDR
    token: str = ""
    prefix: str = ""
    retry_delay: float = 1.0
    dial_timeout: float | None = 10.0
    handshake_timeout: float | None = 10.0
    write_timeout: float | None = 10.0
    retry_policy: Callable[[ReporterError], bool] = field(
        default=always_retry, compare=False
    )

    def __post_init__(self) -> None:
        if not self.addr:
            object.__setattr__(self, "addr", DEFAULT_ADDR)

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            addr=INSTRUMENTAL_ADDR,
            token=INSTRUMENTAL_TOKEN,
            prefix=INSTRUMENTAL_PREFIX,
            retry_delay=RETRY_DELAY,
            dial_timeout=IO_TIMEOUT,
            handshake_timeout=IO_TIMEOUT,
            write_timeout=IO_TIMEOUT,
        )

    def host_port(self) -> tuple[str, int]:
        host, sep, port = self.addr.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"invalid collector address: {self.addr!r}")
        return host.strip("[]"), int(port)
