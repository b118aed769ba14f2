"""Instrumental Reporter - Entrypoint

프로세스 런타임 메트릭을 컬렉터로 보내고, HEALTH_PORT에서 상태를 노출한다.
라이브러리로 쓸 때는 호스트가 직접 ConnectionManager를 만들어 task로 돌리면 된다.
"""

import asyncio
import logging
import signal

from aiohttp import web

from reporter.config import HEALTH_PORT, LOG_LEVEL, REPORT_INTERVAL, Config
from reporter.connection import ConnectionManager
from reporter.health import build_app
from reporter.models.greeting import Greeting
from reporter.registry.memory import MemoryRegistry
from reporter.registry.runtime import register_runtime_metrics

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL),
    format="%(asctime)s [%(levelname)s] %(message)s",
)
logger = logging.getLogger(__name__)


async def main() -> None:
    config = Config.from_env()
    greeting = Greeting.current()

    registry = MemoryRegistry()
    register_runtime_metrics(registry)

    manager = ConnectionManager(registry, REPORT_INTERVAL, config, greeting)

    runner = web.AppRunner(build_app(manager))
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", HEALTH_PORT)
    await site.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info(
        "Instrumental reporter started: collector=%s interval=%ss health port=%d",
        config.addr,
        REPORT_INTERVAL,
        HEALTH_PORT,
    )
    try:
        await manager.run(stop)
    finally:
        await runner.cleanup()
        logger.info("Instrumental reporter stopped")


if __name__ == "__main__":
    asyncio.run(main())
