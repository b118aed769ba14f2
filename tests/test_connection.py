import asyncio
import io

import pytest

from reporter.config import Config
from reporter.connection import ConnectionManager
from reporter.errors import DialError, HandshakeError, WriteError, retry_unless_rejected
from reporter.models.greeting import Greeting
from reporter.models.snapshot import CounterSnapshot, HistogramSnapshot
from reporter.models.status import ConnectionState
from reporter.registry.base import BaseMetric
from reporter.registry.memory import MemoryRegistry

GREETING = Greeting(
    client_id="python/test/0.0.1",
    hostname="host-a",
    pid=4242,
    runtime="cpython3.12.0",
    platform="linux-x86_64",
)


class Fixed(BaseMetric):
    def __init__(self, snap):
        self.snap = snap

    def snapshot(self):
        return self.snap


class FakeWriter:
    def __init__(self, fail_on_gauge=None, on_gauge=None):
        self.lines = []
        self.closed = False
        self.fail_on_gauge = fail_on_gauge
        self.on_gauge = on_gauge

    def gauges(self):
        return [line for line in self.lines if line.startswith("gauge ")]

    def write(self, data):
        self.lines.append(data.decode("utf-8"))

    async def drain(self):
        gauges = self.gauges()
        if self.lines[-1].startswith("gauge "):
            if self.fail_on_gauge is not None and len(gauges) >= self.fail_on_gauge:
                raise ConnectionResetError("peer went away")
            if self.on_gauge is not None:
                self.on_gauge(self)

    def close(self):
        self.closed = True

    async def wait_closed(self):
        pass


class FakeReader:
    def __init__(self, responses, writer, diagnostics=b""):
        self.responses = list(responses)
        self.writer = writer
        self.seen_at_readline = []
        self.diagnostics = diagnostics

    async def readline(self):
        self.seen_at_readline.append(list(self.writer.lines))
        if not self.responses:
            return b""
        return self.responses.pop(0)

    async def read(self, n):
        if self.diagnostics:
            data, self.diagnostics = self.diagnostics, b""
            return data
        await asyncio.Event().wait()


class FakeCollector:
    """dial 호출마다 새 FakeReader/FakeWriter 쌍을 돌려준다"""

    def __init__(self, stop, responses=(b"ok\n", b"ok\n"), max_dials=1, **writer_kwargs):
        self.stop = stop
        self.responses = responses
        self.max_dials = max_dials
        self.writer_kwargs = writer_kwargs
        self.connections = []
        self.dials = 0

    async def dial(self, host, port):
        self.dials += 1
        if self.dials > self.max_dials:
            self.stop.set()
            raise ConnectionRefusedError("no more connections")
        writer = FakeWriter(**self.writer_kwargs)
        reader = FakeReader(self.responses, writer)
        self.connections.append((reader, writer))
        return reader, writer


def _manager(registry, dial, **config):
    config.setdefault("retry_delay", 0)
    cfg = Config(addr="collector.test:8000", token="secret", prefix="p", **config)
    return ConnectionManager(registry, 0.01, cfg, GREETING, dial=dial, diagnostics=io.StringIO())


def _counter_registry():
    r = MemoryRegistry()
    r.register("c", Fixed(CounterSnapshot(7)))
    return r


def test_handshake_then_streaming():
    async def run():
        stop = asyncio.Event()
        collector = FakeCollector(stop, on_gauge=lambda w: stop.set())
        manager = _manager(_counter_registry(), collector.dial)
        await manager.run(stop)
        return manager, collector

    manager, collector = asyncio.run(run())
    reader, writer = collector.connections[0]
    assert writer.lines[0] == GREETING.to_line()
    assert writer.lines[1] == "authenticate secret\n"
    assert writer.lines[2].startswith("gauge p.c 7.000000 ")
    # 각 응답을 읽는 시점까지 metric 라인은 하나도 없어야 한다
    assert reader.seen_at_readline == [[GREETING.to_line()], [GREETING.to_line(), "authenticate secret\n"]]
    assert writer.closed
    assert manager.status.connections == 1
    assert manager.status.lines_sent == 1
    assert manager.status.state is ConnectionState.STOPPED


def test_rejected_hello_never_authenticates():
    async def run():
        stop = asyncio.Event()
        collector = FakeCollector(stop, responses=(b"no\n",), max_dials=1)
        manager = _manager(_counter_registry(), collector.dial)
        await manager.run(stop)
        return manager, collector

    manager, collector = asyncio.run(run())
    _, writer = collector.connections[0]
    assert writer.lines == [GREETING.to_line()]
    assert writer.closed
    assert manager.status.failures == 2  # 거부된 hello + 이후 dial 실패
    assert manager.status.connections == 0


def test_handshake_error_details():
    async def run(responses):
        writer = FakeWriter()
        reader = FakeReader(responses, writer)
        manager = _manager(_counter_registry(), None)
        await manager.handshake(reader, writer)

    with pytest.raises(HandshakeError) as info:
        asyncio.run(run([b"no\n"]))
    assert info.value.stage == "hello"
    assert info.value.response == "no"
    assert str(info.value) == "unsuccessful HELLO: no"

    with pytest.raises(HandshakeError) as info:
        asyncio.run(run([b"ok\n"]))
    assert info.value.stage == "authenticate"
    assert info.value.response is None
    assert str(info.value).startswith("no response for AUTHENTICATE")

    # CRLF 응답도 ok로 본다
    asyncio.run(run([b"ok\r\n", b"ok\r\n"]))


def test_write_failure_aborts_tick_and_reconnects():
    registry = MemoryRegistry()
    registry.register("h", Fixed(HistogramSnapshot.from_values([1.0, 2.0, 3.0])))

    async def run():
        stop = asyncio.Event()
        collector = FakeCollector(stop, max_dials=2, fail_on_gauge=3)
        manager = _manager(registry, collector.dial)
        await manager.run(stop)
        return manager, collector

    manager, collector = asyncio.run(run())
    assert collector.dials == 3
    assert len(collector.connections) == 2
    for _, writer in collector.connections:
        # 세 번째 라인에서 실패하면 나머지 다섯 라인은 보내지 않는다
        assert len(writer.gauges()) == 3
        assert writer.lines[0] == GREETING.to_line()
        assert writer.lines[1] == "authenticate secret\n"
        assert writer.closed
    assert manager.status.connections == 2
    assert manager.status.lines_sent == 4


def test_send_tick_raises_write_error():
    registry = MemoryRegistry()
    registry.register("h", Fixed(HistogramSnapshot.from_values([1.0])))
    writer = FakeWriter(fail_on_gauge=1)
    manager = _manager(registry, None)

    with pytest.raises(WriteError):
        asyncio.run(manager.send_tick(writer))
    assert len(writer.gauges()) == 1


def test_greeting_identical_across_reconnects():
    async def run():
        stop = asyncio.Event()
        collector = FakeCollector(stop, responses=(b"ok\n", b"denied\n"), max_dials=5)
        manager = _manager(_counter_registry(), collector.dial)
        await manager.run(stop)
        return collector

    collector = asyncio.run(run())
    hellos = [writer.lines[0] for _, writer in collector.connections]
    assert len(hellos) == 5
    assert len(set(hellos)) == 1


def test_dial_failure_backs_off_and_retries():
    attempts = []

    async def run():
        stop = asyncio.Event()

        async def dial(host, port):
            attempts.append((host, port))
            if len(attempts) >= 3:
                stop.set()
            raise OSError("connection refused")

        manager = _manager(_counter_registry(), dial)
        await manager.run(stop)
        return manager

    manager = asyncio.run(run())
    assert attempts == [("collector.test", 8000)] * 3
    assert manager.status.connect_attempts == 3
    assert manager.status.failures == 3
    assert "connection refused" in manager.status.last_error


def test_connect_wraps_dial_errors():
    async def dial(host, port):
        raise ConnectionRefusedError("refused")

    manager = _manager(_counter_registry(), dial)
    with pytest.raises(DialError):
        asyncio.run(manager.connect())


def test_bad_address_is_dial_error():
    manager = ConnectionManager(
        _counter_registry(), 1, Config(addr="no-port"), GREETING, dial=None
    )
    with pytest.raises(DialError):
        asyncio.run(manager.connect())


def test_rejected_token_stops_with_policy():
    stop = asyncio.Event()
    collector = FakeCollector(stop, responses=(b"ok\n", b"fail\n"), max_dials=5)
    manager = _manager(_counter_registry(), collector.dial, retry_policy=retry_unless_rejected)

    with pytest.raises(HandshakeError) as info:
        asyncio.run(manager.run(stop))
    assert info.value.stage == "authenticate"
    assert info.value.response == "fail"
    assert collector.dials == 1
    assert manager.status.state is ConnectionState.STOPPED


def test_diagnostics_are_forwarded():
    sink = io.StringIO()

    async def run():
        stop = asyncio.Event()
        writer = FakeWriter()
        reader = FakeReader([b"ok\n", b"ok\n"], writer, diagnostics=b"warning: slow down\n")
        dials = []

        async def dial(host, port):
            dials.append(1)
            if len(dials) > 1:
                stop.set()
                raise OSError("done")
            return reader, writer

        cfg = Config(addr="collector.test:8000", token="t", prefix="p", retry_delay=0)
        manager = ConnectionManager(
            MemoryRegistry(), 0.05, cfg, GREETING, dial=dial, diagnostics=sink
        )
        task = asyncio.create_task(manager.run(stop))
        for _ in range(100):
            if sink.getvalue():
                break
            await asyncio.sleep(0.01)
        stop.set()
        await task

    asyncio.run(run())
    assert sink.getvalue() == "warning: slow down\n"


def test_interval_must_be_positive():
    with pytest.raises(ValueError):
        ConnectionManager(MemoryRegistry(), 0, Config(), GREETING)


def test_end_to_end_with_loopback_collector():
    received = []

    async def handle(reader, writer):
        received.append((await reader.readline()).decode())
        writer.write(b"ok\n")
        await writer.drain()
        received.append((await reader.readline()).decode())
        writer.write(b"ok\n")
        await writer.drain()
        received.append((await reader.readline()).decode())
        writer.close()

    async def run():
        server = await asyncio.start_server(handle, "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        stop = asyncio.Event()
        cfg = Config(addr=f"127.0.0.1:{port}", token="tok", prefix="app", retry_delay=0.01)
        manager = ConnectionManager(
            _counter_registry(), 0.01, cfg, GREETING, diagnostics=io.StringIO()
        )
        task = asyncio.create_task(manager.run(stop))
        for _ in range(200):
            if len(received) >= 3:
                break
            await asyncio.sleep(0.01)
        stop.set()
        await task
        server.close()
        await server.wait_closed()

    asyncio.run(run())
    assert received[0] == GREETING.to_line()
    assert received[1] == "authenticate tok\n"
    assert received[2].startswith("gauge app.c 7.000000 ")


class Broken(BaseMetric):
    def snapshot(self):
        raise RuntimeError("bad handle")


def test_failing_handle_keeps_reporting():
    registry = _counter_registry()
    registry.register("broken", Broken())

    async def run():
        stop = asyncio.Event()
        collector = FakeCollector(stop, on_gauge=lambda w: stop.set())
        manager = _manager(registry, collector.dial)
        await manager.run(stop)
        return manager, collector

    manager, collector = asyncio.run(run())
    _, writer = collector.connections[0]
    assert [line.split()[1] for line in writer.gauges()] == ["p.c"]
    assert manager.status.failures == 0


class HangingReader(FakeReader):
    async def readline(self):
        self.seen_at_readline.append(list(self.writer.lines))
        await asyncio.Event().wait()


class HangingWriter(FakeWriter):
    async def drain(self):
        if self.lines[-1].startswith("gauge "):
            await asyncio.Event().wait()


def test_handshake_timeout_backs_off():
    async def run():
        stop = asyncio.Event()
        connections = []

        async def dial(host, port):
            if len(connections) >= 2:
                stop.set()
                raise ConnectionRefusedError("done")
            writer = FakeWriter()
            connections.append(writer)
            return HangingReader([], writer), writer

        manager = _manager(_counter_registry(), dial, handshake_timeout=0.05)
        await manager.run(stop)
        return manager, connections

    manager, connections = asyncio.run(run())
    assert len(connections) == 2
    for writer in connections:
        assert writer.lines == [GREETING.to_line()]
        assert writer.closed
    assert manager.status.failures == 3
    assert manager.status.connections == 0


def test_handshake_timeout_error():
    async def run():
        writer = FakeWriter()
        manager = _manager(_counter_registry(), None, handshake_timeout=0.05)
        await manager.handshake(HangingReader([], writer), writer)

    with pytest.raises(HandshakeError) as info:
        asyncio.run(run())
    assert info.value.stage == "hello"
    assert info.value.response is None


def test_write_timeout_is_write_error():
    writer = HangingWriter()
    manager = _manager(_counter_registry(), None, write_timeout=0.05)
    with pytest.raises(WriteError):
        asyncio.run(manager.send_tick(writer))
    assert len(writer.gauges()) == 1
    assert manager.status.lines_sent == 0


def test_dial_timeout_is_dial_error():
    async def dial(host, port):
        await asyncio.Event().wait()

    manager = _manager(_counter_registry(), dial, dial_timeout=0.05)
    with pytest.raises(DialError):
        asyncio.run(manager.connect())
