"""
Catalog reconciliation: the image folder joined with stored metadata.
"""

import os
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote
from .models import CatalogEntry, ImageInfo
from .repository import MetadataRepository
from .sniffer import detect_file_content_type, is_image_type
from .tags import normalize_tags
from .logging import get_logger, MetricsLogger


API_PREFIX = "/api/images"


class InvalidImageNameError(ValueError):
    """The requested name does not denote a file directly inside the catalog root."""
    pass


def image_url(name: str) -> str:
    """URL under which the raw image is served."""
    return f"{API_PREFIX}/{quote(name, safe='')}"


def _render_info(info: ImageInfo) -> ImageInfo:
    # Stored tags are canonical already; normalize again in case the table was edited by hand.
    return ImageInfo(
        title=info.title.strip(),
        description=info.description.strip(),
        tags=normalize_tags(info.tags),
    )


class CatalogReconciler:
    """Lists the images of the catalog root together with their metadata."""

    def __init__(
        self,
        images_dir: Path,
        repository: MetadataRepository,
        metrics: Optional[MetricsLogger] = None,
    ):
        self.images_dir = Path(images_dir)
        self.repository = repository
        self.metrics = metrics
        self.logger = get_logger("catalog")

    def resolve_image_path(self, name: str) -> Path:
        """Map an image name to its path below the catalog root."""
        if (
            not name
            or name in (".", "..")
            or "/" in name
            or "\\" in name
            or "\x00" in name
        ):
            raise InvalidImageNameError(f"Invalid image name: '{name}'")
        return self.images_dir / name

    def list_images(self) -> List[CatalogEntry]:
        """List all image files in directory order.

        Files that are not images are left out even when metadata exists for
        them. A file that cannot be opened or read is skipped.
        """
        entries: List[CatalogEntry] = []
        skipped = 0

        with os.scandir(self.images_dir) as it:
            dir_entries = list(it)

        for dir_entry in dir_entries:
            name = dir_entry.name

            try:
                if not dir_entry.is_file():
                    continue
                content_type = detect_file_content_type(dir_entry.path)
                if not is_image_type(content_type):
                    self.logger.debug(f"Skipping '{name}': {content_type}")
                    continue

                entry = CatalogEntry(name=name, url=image_url(name))
                info = self.repository.lookup(name)
            except (OSError, UnicodeError) as e:
                # Undecodable names come back from scandir with surrogates
                skipped += 1
                self.logger.warning(f"⚠️  Skipping {name!r}: {e}")
                continue

            if info is not None:
                entry.info = _render_info(info)

            entries.append(entry)

        if self.metrics:
            self.metrics.log_listing(len(entries), skipped)

        return entries
