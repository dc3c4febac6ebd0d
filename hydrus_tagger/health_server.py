"""
Health server for monitoring the Hydrus Auto-Tagger daemon.
"""

import asyncio
from datetime import datetime, timezone
import psutil
from aiohttp import web
from . import __version__
from .config import settings
from .logging import get_logger


class HealthServer:
    """Small HTTP server for health checks, metrics and one-off lookups."""

    def __init__(self, daemon):
        self.daemon = daemon
        self.logger = get_logger("health_server")
        self.app = web.Application()
        self.setup_routes()

    def setup_routes(self):
        """Setup HTTP routes."""
        self.app.router.add_get("/health", self.health_handler)
        self.app.router.add_get("/metrics", self.metrics_handler)
        self.app.router.add_get("/lookup", self.lookup_handler)
        self.app.router.add_get("/", self.root_handler)

    async def health_handler(self, request):
        """Health check endpoint: is Hydrus reachable?"""
        client = self.daemon.tagger.client
        try:
            version = await asyncio.to_thread(client.api_version)
        except Exception as e:
            self.logger.error(f"Health check failed: {e}")
            return web.json_response(
                {"status": "unhealthy", "error": str(e)},
                status=503
            )

        return web.json_response({
            "status": "healthy",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": __version__,
            "hydrus": version,
            "running": self.daemon.running,
            "service_key": self.daemon.service_key,
        })

    async def metrics_handler(self, request):
        """Metrics endpoint."""
        metrics = self.daemon.metrics.get_metrics()
        metrics.update({
            "cpu_percent": psutil.cpu_percent(),
            "memory_percent": psutil.virtual_memory().percent,
        })
        return web.json_response(metrics)

    async def lookup_handler(self, request):
        """Dry-run tag a single hash and return the tags."""
        file_hash = request.query.get("hash")
        if not file_hash:
            return web.json_response({"error": "missing 'hash' query parameter"}, status=400)
        if self.daemon.service_key is None:
            return web.json_response({"error": "tag service not resolved yet"}, status=503)

        try:
            tags = await asyncio.to_thread(
                self.daemon.tagger.tag_image, self.daemon.service_key, file_hash, True
            )
        except Exception as e:
            self.logger.warning(f"Lookup failed: {file_hash} | Error: {e}")
            return web.json_response({"hash": file_hash, "error": str(e)}, status=502)

        return web.json_response({"hash": file_hash, "tags": tags})

    async def root_handler(self, request):
        """Root endpoint with service information."""
        info = {
            "service": "Hydrus Auto-Tagger",
            "version": __version__,
            "endpoints": {
                "/health": "Health check endpoint",
                "/metrics": "Processing metrics",
                "/lookup?hash=<sha256>": "Dry-run tags for one file",
                "/": "Service information"
            },
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

        return web.json_response(info)

    async def start(self, port: int = None):
        """Start the health server."""
        port = port or settings.health_port
        runner = web.AppRunner(self.app)
        await runner.setup()

        site = web.TCPSite(runner, "0.0.0.0", port)
        await site.start()

        self.logger.info(f"Health server started on 0.0.0.0:{port}")
        return runner

    async def stop(self, runner):
        """Stop the health server."""
        await runner.cleanup()
        self.logger.info("Health server stopped")
