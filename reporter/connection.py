"""Connection Manager - 컬렉터 연결 생명주기와 주기적 전송

idle → dialing → handshaking → streaming 순으로 진행하고, 어떤 실패든
연결을 닫고 로그를 남긴 뒤 retry_delay 만큼 쉬었다가 처음부터 다시 시도한다.
재시도 횟수 제한은 없다 (retry_policy가 거부하는 경우만 멈춘다).
"""

import asyncio
import contextlib
import logging
import sys
from typing import Awaitable, Callable, TextIO

from reporter.config import Config
from reporter.encoder import encode
from reporter.errors import DialError, HandshakeError, ReporterError, WriteError
from reporter.models.greeting import Greeting
from reporter.models.status import ConnectionState, ReporterStatus
from reporter.registry.base import BaseRegistry

logger = logging.getLogger(__name__)

Dial = Callable[[str, int], Awaitable[tuple[asyncio.StreamReader, asyncio.StreamWriter]]]

OK = "ok"


async def _wait_stopped(stop: asyncio.Event, delay: float) -> bool:
    """delay 동안 대기. 그 사이 stop이 설정되면 True"""
    if stop.is_set():
        return True
    try:
        await asyncio.wait_for(stop.wait(), timeout=max(delay, 0.0))
    except asyncio.TimeoutError:
        return False
    return True


async def _close(writer: asyncio.StreamWriter) -> None:
    writer.close()
    with contextlib.suppress(OSError, asyncio.TimeoutError):
        await asyncio.wait_for(writer.wait_closed(), timeout=1.0)


class ConnectionManager:
    """레지스트리를 주기적으로 읽어 컬렉터로 스트리밍한다

    연결은 한 번에 하나만 유지한다. handshake가 끝나기 전에는 메트릭
    라인을 보내지 않는다.
    """

    def __init__(
        self,
        registry: BaseRegistry,
        interval: float,
        config: Config,
        greeting: Greeting,
        *,
        dial: Dial | None = None,
        diagnostics: TextIO | None = None,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.registry = registry
        self.interval = interval
        self.config = config
        self.greeting = greeting
        self.status = ReporterStatus()
        self._dial = dial or asyncio.open_connection
        self._diagnostics = diagnostics

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """stop이 설정될 때까지 연결 → 전송 → 재연결을 반복"""
        stop = stop or asyncio.Event()
        try:
            while not stop.is_set():
                try:
                    await self._connect_and_send(stop)
                except ReporterError as exc:
                    self.status.failures += 1
                    self.status.last_error = str(exc)
                    logger.warning("instrumental: %s", exc)
                    if not self.config.retry_policy(exc):
                        logger.error("instrumental: giving up: %s", exc)
                        raise
                if stop.is_set():
                    break
                self.status.state = ConnectionState.BACKOFF
                if await _wait_stopped(stop, self.config.retry_delay):
                    break
                self.status.state = ConnectionState.IDLE
        finally:
            self.status.state = ConnectionState.STOPPED

    async def connect(self) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
        self.status.state = ConnectionState.DIALING
        self.status.connect_attempts += 1
        try:
            host, port = self.config.host_port()
            return await asyncio.wait_for(self._dial(host, port), self.config.dial_timeout)
        except (OSError, ValueError, asyncio.TimeoutError) as exc:
            raise DialError(f"dial {self.config.addr}: {exc!r}") from exc

    async def handshake(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        self.status.state = ConnectionState.HANDSHAKING
        await self._exchange(reader, writer, "hello", self.greeting.to_line())
        await self._exchange(reader, writer, "authenticate", f"authenticate {self.config.token}\n")

    async def _exchange(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        stage: str,
        line: str,
    ) -> None:
        try:
            await self._write(writer, line)
        except WriteError as exc:
            raise HandshakeError(stage, None, str(exc)) from exc

        try:
            raw = await asyncio.wait_for(reader.readline(), self.config.handshake_timeout)
        except (OSError, ValueError, asyncio.TimeoutError) as exc:
            raise HandshakeError(stage, None, repr(exc)) from exc
        if not raw:
            raise HandshakeError(stage, None, "connection closed")

        response = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if response != OK:
            raise HandshakeError(stage, response)

    async def _write(self, writer: asyncio.StreamWriter, line: str) -> None:
        try:
            writer.write(line.encode("utf-8"))
            await asyncio.wait_for(writer.drain(), self.config.write_timeout)
        except (OSError, RuntimeError, asyncio.TimeoutError) as exc:
            raise WriteError(f"write: {exc!r}") from exc

    async def send_tick(self, writer: asyncio.StreamWriter) -> int:
        """현재 레지스트리를 인코딩해서 전송. 첫 실패에서 남은 라인은 버린다."""
        self.status.ticks += 1
        sent = 0
        for line in encode(self.registry, self.config.prefix):
            await self._write(writer, line)
            sent += 1
            self.status.lines_sent += 1
        return sent

    async def _drain_diagnostics(self, reader: asyncio.StreamReader) -> None:
        # 컬렉터가 보내는 진단 메시지는 파싱하지 않고 그대로 흘려보낸다
        sink = self._diagnostics or sys.stderr
        try:
            while True:
                data = await reader.read(4096)
                if not data:
                    return
                sink.write(data.decode("utf-8", errors="replace"))
                sink.flush()
        except (OSError, ValueError) as exc:
            logger.debug("instrumental: diagnostics drain stopped: %r", exc)

    async def _connect_and_send(self, stop: asyncio.Event) -> None:
        reader, writer = await self.connect()
        drain: asyncio.Task | None = None
        try:
            await self.handshake(reader, writer)
            self.status.connections += 1
            self.status.state = ConnectionState.STREAMING
            logger.info("instrumental: connected to %s", self.config.addr)

            drain = asyncio.create_task(self._drain_diagnostics(reader))

            loop = asyncio.get_running_loop()
            next_tick = loop.time() + self.interval
            while True:
                if await _wait_stopped(stop, next_tick - loop.time()):
                    return
                await self.send_tick(writer)
                next_tick += self.interval
                # 밀린 tick은 몰아서 보내지 않는다
                if next_tick <= loop.time():
                    next_tick = loop.time() + self.interval
        finally:
            if drain is not None:
                drain.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await drain
            await _close(writer)
