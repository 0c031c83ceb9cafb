"""
Logging configuration for the AI Gallery service.
"""

import logging
import threading
from typing import Any, Dict
from rich.console import Console
from rich.logging import RichHandler
from .config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure clean, simple logging output."""

    # Configure standard library logging with Rich handler
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level),
        handlers=[RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_time=True,
            show_path=False,
            show_level=False,
            markup=False  # error texts may contain square brackets
        )],
        force=True  # Override any existing configuration
    )

    # Silence noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)


def get_logger(name: str):
    """Get a standard logger instance."""
    return logging.getLogger(name)


class MetricsLogger:
    """Logger for tracking annotation and listing metrics."""

    def __init__(self):
        self.logger = get_logger("metrics")
        self._lock = threading.Lock()
        self.metrics: Dict[str, Any] = {
            "images_annotated": 0,
            "tags_stored": 0,
            "failures": 0,
            "listings": 0,
            "annotation_time": 0.0,
        }

    def log_image_annotated(self, name: str, tags_count: int, processing_time: float) -> None:
        """Log a successfully annotated image."""
        with self._lock:
            self.metrics["images_annotated"] += 1
            self.metrics["tags_stored"] += tags_count
            self.metrics["annotation_time"] += processing_time
            total = self.metrics["images_annotated"]

        # Only log individual images at DEBUG level to avoid spam
        self.logger.debug(
            f"Image annotated: {name} | Tags: {tags_count} | Time: {processing_time:.3f}s | "
            f"Total: {total} images"
        )

    def log_annotation_failure(self, name: str, error: str) -> None:
        """Log a failed annotation."""
        with self._lock:
            self.metrics["failures"] += 1

        self.logger.warning(f"Annotation failed: {name} | Error: {error}")

    def log_listing(self, entries: int, skipped: int) -> None:
        """Log a completed catalog listing."""
        with self._lock:
            self.metrics["listings"] += 1

        self.logger.debug(f"Catalog listed: {entries} images | {skipped} skipped")

    def get_metrics(self) -> Dict[str, Any]:
        """Get current metrics."""
        with self._lock:
            return self.metrics.copy()
