import random
from datetime import datetime

from aiohttp import web
from loguru import logger


class ContentServer:
    """Serves /status, which only shows ready_text once ready_after seconds
    have passed since the first request"""

    def __init__(
        self,
        ready_after: float = 10.0,
        ready_text: str = "Application ready",
        error_rate: float = 0.1,
    ):
        self.start_time = None
        self.ready_after = ready_after
        self.ready_text = ready_text
        self.error_rate = error_rate
        self.requests = 0
        self.runner = None
        self.app = web.Application()
        self.app.router.add_get("/status", self.handle_status)
        self.logger = logger

    async def handle_status(self, request):
        self.requests += 1
        if self.start_time is None:
            self.start_time = datetime.now()

        if random.random() < self.error_rate:
            self.logger.info("Returning server error")
            return web.Response(status=503, text="Service Unavailable")

        elapsed = (datetime.now() - self.start_time).total_seconds()

        if elapsed >= self.ready_after:
            self.logger.info("Returning ready page")
            return web.Response(text=f"<html><body>{self.ready_text}</body></html>")
        else:
            self.logger.info(f"Returning warm-up page (elapsed: {elapsed:.1f}s)")
            return web.Response(text="<html><body>Starting up</body></html>")

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self):
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
