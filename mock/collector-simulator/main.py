"""Mock Instrumental Collector for local testing.

Speaks the collector side of the line protocol:
hello → ok, authenticate → ok (or a rejection), then prints every
gauge line it receives.
"""

import asyncio
import os

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

BIND: str = os.environ.get("BIND", "127.0.0.1")
PORT: int = int(os.environ.get("PORT", "8000"))
# 비어 있으면 어떤 token이든 허용
EXPECTED_TOKEN: str = os.environ.get("EXPECTED_TOKEN", "")
# 연결마다 N개 라인을 받은 뒤 끊는다 (재연결 확인용, 0이면 끊지 않음)
DROP_AFTER: int = int(os.environ.get("DROP_AFTER", "0"))


# ---------------------------------------------------------------------------
# Connection handler
# ---------------------------------------------------------------------------


async def _reply(writer: asyncio.StreamWriter, text: str) -> None:
    writer.write(f"{text}\n".encode("utf-8"))
    await writer.drain()


async def handle_client(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
    peer = writer.get_extra_info("peername")
    print(f"[collector-simulator] connection from {peer}", flush=True)
    try:
        hello = (await reader.readline()).decode("utf-8").strip()
        if not hello.startswith("hello "):
            await _reply(writer, "error expected hello")
            return
        print(f"[collector-simulator] {hello}", flush=True)
        await _reply(writer, "ok")

        auth = (await reader.readline()).decode("utf-8").strip()
        _, _, token = auth.partition(" ")
        if EXPECTED_TOKEN and token != EXPECTED_TOKEN:
            print(f"[collector-simulator] rejected token from {peer}", flush=True)
            await _reply(writer, "fail")
            return
        await _reply(writer, "ok")

        received = 0
        while True:
            line = await reader.readline()
            if not line:
                break
            print(f"[collector-simulator] {line.decode('utf-8').rstrip()}", flush=True)
            received += 1
            if DROP_AFTER and received >= DROP_AFTER:
                print(f"[collector-simulator] dropping {peer} after {received} lines", flush=True)
                break
    except (ConnectionError, UnicodeDecodeError) as exc:
        print(f"[collector-simulator] {peer}: {exc}", flush=True)
    finally:
        writer.close()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


async def main() -> None:
    server = await asyncio.start_server(handle_client, BIND, PORT)
    print(f"[collector-simulator] listening on {BIND}:{PORT}", flush=True)
    async with server:
        await server.serve_forever()


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nShutting down.", flush=True)
