"""리포터 상태 엔드포인트 (/healthz, /metrics)"""

from aiohttp import web

from reporter.connection import ConnectionManager

MANAGER_KEY = web.AppKey("manager", ConnectionManager)


async def handle_healthz(request: web.Request) -> web.Response:
    # 프로세스가 살아있으면 200. 연결 상태는 본문으로만 알려준다.
    manager = request.app[MANAGER_KEY]
    return web.Response(text=f"ok {manager.status.state.value}\n")


async def handle_metrics(request: web.Request) -> web.Response:
    manager = request.app[MANAGER_KEY]
    lines = manager.status.to_prometheus_lines()
    return web.Response(text="\n".join(lines) + "\n", content_type="text/plain")


def build_app(manager: ConnectionManager) -> web.Application:
    app = web.Application()
    app[MANAGER_KEY] = manager
    app.router.add_get("/healthz", handle_healthz)
    app.router.add_get("/metrics", handle_metrics)
    return app
