"""
HTTP server exposing the gallery catalog and annotation endpoints.
"""

import asyncio
from datetime import datetime, timezone
import psutil
from aiohttp import web
from .catalog import API_PREFIX, InvalidImageNameError
from .models import HealthStatus
from .processor import GalleryProcessor
from .logging import get_logger
from . import __version__


def _error_response(error: Exception, status: int = 500) -> web.Response:
    return web.Response(text=str(error), status=status, content_type="text/plain", charset="utf-8")


class GalleryServer:
    """HTTP server for the image catalog."""

    def __init__(self, processor: GalleryProcessor):
        self.processor = processor
        self.settings = processor.settings
        self.logger = get_logger("server")
        self.app = web.Application()
        self.setup_routes()

    def setup_routes(self):
        """Setup HTTP routes."""
        self.app.router.add_get(API_PREFIX, self.list_images_handler)
        self.app.router.add_get(API_PREFIX + "/{name}", self.image_handler)
        self.app.router.add_patch(API_PREFIX + "/{name}/meta", self.update_meta_handler)
        self.app.router.add_get("/health", self.health_handler)
        self.app.router.add_get("/metrics", self.metrics_handler)
        self.app.router.add_get("/", self.root_handler)

    async def list_images_handler(self, request):
        """List all images with their metadata."""
        try:
            entries = await asyncio.to_thread(self.processor.list_images)
        except Exception as e:
            self.logger.error(f"❌ HTTP error: {e}")
            return _error_response(e)

        return web.json_response({"images": [entry.to_response() for entry in entries]})

    async def image_handler(self, request):
        """Serve the raw bytes of an image."""
        name = request.match_info["name"]
        try:
            path, content_type = await asyncio.to_thread(self.processor.open_image, name)
        except InvalidImageNameError as e:
            return _error_response(e, status=400)
        except FileNotFoundError as e:
            return _error_response(e, status=404)
        except OSError as e:
            self.logger.error(f"❌ HTTP error: {e}")
            return _error_response(e)

        return web.FileResponse(path, headers={"Content-Type": content_type})

    async def update_meta_handler(self, request):
        """Annotate an image with the vision model and store the result."""
        name = request.match_info["name"]
        try:
            result = await asyncio.to_thread(self.processor.annotate_image, name)
        except Exception as e:
            self.logger.error(f"❌ HTTP error: {e}")
            return _error_response(e)

        return web.json_response(result.model_dump())

    async def health_handler(self, request):
        """Health check endpoint."""
        try:
            connection_ok = await asyncio.to_thread(self.processor.test_connection)
            record_count = await asyncio.to_thread(self.processor.repository.count)

            health_status = HealthStatus(
                status="healthy" if connection_ok else "unhealthy",
                version=__version__,
                metrics={
                    "model_server": "reachable" if connection_ok else "unreachable",
                    "annotated_images": record_count,
                    "global": self.processor.get_metrics(),
                },
            )

            return web.json_response(
                health_status.model_dump(mode="json"),
                status=200 if connection_ok else 503
            )

        except Exception as e:
            self.logger.error(f"Health check failed: {e}")
            return web.json_response(
                {"status": "unhealthy", "error": str(e)},
                status=503
            )

    async def metrics_handler(self, request):
        """Metrics endpoint."""
        metrics = self.processor.get_metrics()
        metrics.update({
            "cpu_percent": psutil.cpu_percent(),
            "memory_percent": psutil.virtual_memory().percent,
        })
        return web.json_response(metrics)

    async def root_handler(self, request):
        """Root endpoint with service information."""
        info = {
            "service": "AI Gallery",
            "version": __version__,
            "endpoints": {
                API_PREFIX: "List images with metadata",
                API_PREFIX + "/{name}": "Raw image",
                API_PREFIX + "/{name}/meta": "PATCH: annotate image with the vision model",
                "/health": "Health check endpoint",
                "/metrics": "Processing metrics",
                "/": "Service information"
            },
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

        return web.json_response(info)

    async def start(self):
        """Start the HTTP server."""
        runner = web.AppRunner(self.app)
        await runner.setup()

        site = web.TCPSite(
            runner,
            self.settings.host,
            self.settings.port
        )

        await site.start()

        self.logger.info(f"🌐 Server started on {self.settings.host}:{self.settings.port}")

        return runner

    async def stop(self, runner):
        """Stop the HTTP server."""
        await runner.cleanup()
        self.logger.info("Server stopped")


async def run_server(processor: GalleryProcessor):
    """Run the HTTP server until cancelled."""
    server = GalleryServer(processor)
    runner = await server.start()

    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await server.stop(runner)
