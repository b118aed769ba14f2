"""리포터 연결 상태 모델"""

from dataclasses import dataclass
from enum import Enum


class ConnectionState(str, Enum):
    IDLE = "idle"
    DIALING = "dialing"
    HANDSHAKING = "handshaking"
    STREAMING = "streaming"
    BACKOFF = "backoff"
    STOPPED = "stopped"


@dataclass
class ReporterStatus:
    """Connection Manager가 갱신하는 상태 및 누적 카운터"""

    state: ConnectionState = ConnectionState.IDLE
    connect_attempts: int = 0
    connections: int = 0
    failures: int = 0
    ticks: int = 0
    lines_sent: int = 0
    last_error: str | None = None

    def to_prometheus_lines(self, namespace: str = "instrumental_reporter") -> list[str]:
        lines = [
            f"{namespace}_connect_attempts_total {self.connect_attempts}",
            f"{namespace}_connections_total {self.connections}",
            f"{namespace}_failures_total {self.failures}",
            f"{namespace}_ticks_total {self.ticks}",
            f"{namespace}_lines_sent_total {self.lines_sent}",
        ]
        # 현재 상태만 1, 나머지는 0
        for state in ConnectionState:
            value = 1 if state is self.state else 0
            lines.append(f'{namespace}_state{{state="{state.value}"}} {value}')
        return lines
