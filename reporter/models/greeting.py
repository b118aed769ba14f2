"""컬렉터 handshake 첫 줄 (hello)"""

import os
import platform
import socket
import sys
from dataclasses import dataclass

CLIENT_ID = "python/instrumental-reporter/0.1.0"


@dataclass(frozen=True)
class Greeting:
    """프로세스 식별 정보. 프로세스 생애 동안 한 번만 만든다."""

    client_id: str
    hostname: str
    pid: int
    runtime: str
    platform: str  # <os>-<arch>

    @classmethod
    def current(cls, client_id: str = CLIENT_ID) -> "Greeting":
        return cls(
            client_id=client_id,
            hostname=socket.gethostname(),
            pid=os.getpid(),
            runtime=f"{platform.python_implementation().lower()}{platform.python_version()}",
            platform=f"{sys.platform}-{platform.machine().lower() or 'unknown'}",
        )

    def to_line(self) -> str:
        return (
            f"hello version {self.client_id} hostname {self.hostname} "
            f"pid {self.pid} runtime {self.runtime} platform {self.platform}\n"
        )
