"""
Main processor for the AI Gallery service.
"""

import time
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import httpx
from .annotator import ImageAnnotator
from .catalog import CatalogReconciler
from .config import Settings
from .models import AnnotationResult, BatchAnnotationResult, CatalogEntry, ImageAnnotationOutcome
from .ollama_client import OllamaClient
from .repository import MetadataRepository, StorageError
from .sniffer import detect_content_type
from .logging import get_logger, MetricsLogger


class ProcessorError(Exception):
    """Custom exception for processor errors."""
    pass


class GalleryProcessor:
    """Wires catalog, model client and repository together for one configuration."""

    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        self.settings = settings
        self.logger = get_logger("processor")
        self.metrics = MetricsLogger()
        self.start_time = time.time()

        self.repository = MetadataRepository(settings.database_path)
        self.catalog = CatalogReconciler(settings.images_dir, self.repository, self.metrics)
        self.client = OllamaClient(settings, transport=transport)
        self.annotator = ImageAnnotator(self.catalog, self.client, self.repository, self.metrics)

    def initialize(self):
        """Make sure the catalog root and the metadata table exist."""
        try:
            self.settings.images_dir.mkdir(parents=True, exist_ok=True)
            self.repository.initialize()
        except (OSError, StorageError) as e:
            self.logger.error(f"❌ Failed to initialize storage: {e}")
            raise ProcessorError(f"Failed to initialize storage: {e}") from e

        self.logger.info(f"🗂️  Catalog: {self.settings.images_dir} | Database: {self.repository.database_path}")

    def list_images(self) -> List[CatalogEntry]:
        """Get the catalog listing."""
        return self.catalog.list_images()

    def annotate_image(self, name: str) -> AnnotationResult:
        """Annotate one image of the catalog."""
        return self.annotator.annotate(name)

    def open_image(self, name: str) -> Tuple[Path, str]:
        """Locate an image for serving and sniff its content type."""
        path = self.catalog.resolve_image_path(name)
        with open(path, "rb") as f:
            content_type = detect_content_type(f)
        return path, content_type

    def annotate_pending(self, limit: Optional[int] = None) -> BatchAnnotationResult:
        """Annotate every image that has no metadata yet.

        Each image is annotated on its own; a failure is recorded and the
        remaining images are still processed.
        """
        start_time = time.time()
        pending = [entry.name for entry in self.list_images() if entry.info is None]
        if limit is not None:
            pending = pending[:limit]

        if not pending:
            self.logger.info("✅ All images are annotated!")
        else:
            self.logger.info(f"🎯 Found {len(pending)} images without metadata")

        results = []
        for name in pending:
            image_start = time.time()
            outcome = ImageAnnotationOutcome(name=name, success=False)
            try:
                annotation = self.annotate_image(name)
                outcome.success = True
                outcome.tags_stored = annotation.image_information.tags
            except Exception as e:
                outcome.error = str(e)
            outcome.processing_time = time.time() - image_start
            results.append(outcome)

        batch_time = time.time() - start_time
        successful = sum(1 for r in results if r.success)
        batch_result = BatchAnnotationResult(
            batch_size=len(results),
            successful=successful,
            failed=len(results) - successful,
            total_tags_stored=sum(len(r.tags_stored) for r in results),
            processing_time=batch_time,
            results=results,
        )

        if results:
            self.logger.info(
                f"📊 Batch: {batch_result.successful} annotated, {batch_result.failed} failed | "
                f"{batch_result.total_tags_stored} tags stored | {batch_time:.1f}s"
            )

        return batch_result

    def get_metrics(self) -> Dict[str, Any]:
        """Get current processing metrics."""
        return {
            "basic_metrics": self.metrics.get_metrics(),
            "runtime_seconds": round(time.time() - self.start_time, 2),
            "model": self.settings.image_model,
        }

    def test_connection(self) -> bool:
        """Test the connection to the model server."""
        return self.client.test_connection()

    def close(self):
        """Clean up resources."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
