"""
Annotation of single images: file facts + vision model answer -> stored metadata.
"""

import os
import time
from datetime import datetime, timezone
from typing import Optional
from .catalog import CatalogReconciler
from .models import AnnotationResult, ImageRecord
from .ollama_client import OllamaClient, SchemaViolationError
from .repository import MetadataRepository, format_timestamp
from .sniffer import detect_content_type, is_image_type
from .tags import normalize_tags
from .logging import get_logger, MetricsLogger


class NotAnImageError(ValueError):
    """The annotation target is not an image file."""
    pass


class ImageAnnotator:
    """Describes one image with the vision model and upserts the result.

    Every step runs once; the first failure aborts the annotation and nothing
    is written in that case.
    """

    def __init__(
        self,
        catalog: CatalogReconciler,
        client: OllamaClient,
        repository: MetadataRepository,
        metrics: Optional[MetricsLogger] = None,
    ):
        self.catalog = catalog
        self.client = client
        self.repository = repository
        self.metrics = metrics
        self.logger = get_logger("annotator")

    def annotate(self, name: str) -> AnnotationResult:
        """Annotate the image ``name`` of the catalog root and return the cleaned answer."""
        start_time = time.time()
        full_path = self.catalog.resolve_image_path(name)

        self.logger.info(f"🖼️  Annotating '{name}'")

        try:
            # File facts are captured before the model is asked
            stat_result = os.stat(full_path)
            last_modified = datetime.fromtimestamp(stat_result.st_mtime, tz=timezone.utc).replace(microsecond=0)
            filesize = stat_result.st_size

            with open(full_path, "rb") as f:
                image_data = f.read()

            content_type = detect_content_type(image_data)
            if not is_image_type(content_type):
                raise NotAnImageError(f"'{name}' is not an image ({content_type})")

            self.logger.debug(f"'{name}': {filesize} bytes, modified {format_timestamp(last_modified)}, {content_type}")

            answer = self.client.generate(image_data)

            information = answer.image_information
            tags = normalize_tags(information.tags)
            if not tags:
                raise SchemaViolationError(f"No usable tags for '{name}': {information.tags!r}")

            record = ImageRecord(
                file_path=name,
                title=information.title.strip(),
                description=information.detailed_description.strip(),
                tags=tags,
                last_filesize=filesize,
                last_modified=last_modified,
            )
            self.repository.upsert(record)

        except Exception as e:
            if self.metrics:
                self.metrics.log_annotation_failure(name, str(e))
            raise

        processing_time = time.time() - start_time
        if self.metrics:
            self.metrics.log_image_annotated(name, len(tags), processing_time)

        self.logger.info(f"✅ Annotated '{name}': '{record.title}' | {len(tags)} tags | {processing_time:.1f}s")

        return AnnotationResult(
            filename=name,
            filesize=filesize,
            file_modification_time=format_timestamp(last_modified),
            # Comma-split tags may outnumber the answer's list; not re-validated
            image_information=information.model_copy(update={
                "title": record.title,
                "detailed_description": record.description,
                "tags": tags,
            }),
        )
