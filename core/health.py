import logging
from typing import Iterable, Optional

from aiohttp import web

from core.metrics import BridgeMetrics
from dahua.connection import ConnectionManager


class HealthServer:
    """Minimal health/metrics HTTP endpoint."""

    def __init__(
        self,
        managers: Iterable[ConnectionManager],
        metrics: BridgeMetrics,
        host: str = "0.0.0.0",
        port: int = 8081,
        logger: Optional[logging.Logger] = None,
    ):
        self.managers = list(managers)
        self.metrics = metrics
        self.host = host
        self.port = port
        self.log = logger or logging.getLogger("health")
        self.runner: Optional[web.AppRunner] = None

    def create_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self.health)
        app.router.add_get("/metrics", self.metrics_view)
        return app

    def _states(self):
        return {m.host: m.state.value for m in self.managers}

    async def health(self, _request: web.Request) -> web.Response:
        return web.json_response({"status": "ok", "targets": self._states()})

    async def metrics_view(self, _request: web.Request) -> web.Response:
        data = self.metrics.to_dict()
        data["targets"] = self._states()
        return web.json_response(data)

    async def start(self):
        self.runner = web.AppRunner(self.create_app())
        await self.runner.setup()
        site = web.TCPSite(self.runner, self.host, self.port)
        await site.start()
        self.log.info("Health endpoint started on %s:%s", self.host, self.port)

    async def stop(self):
        if self.runner:
            await self.runner.cleanup()
            self.runner = None
