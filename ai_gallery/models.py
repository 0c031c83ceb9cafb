"""
Data models for the AI Gallery service.
"""

from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
from pydantic import BaseModel, Field


class ImageInformation(BaseModel):
    """What the vision model tells us about one image."""
    title: str
    detailed_description: str
    tags: List[str] = Field(min_length=1, max_length=10)


class AnnotationResult(BaseModel):
    """Structured answer of the vision model."""
    filename: Optional[str] = None
    filesize: Optional[int] = None
    file_modification_time: Optional[str] = None
    image_information: ImageInformation


class ImageInfo(BaseModel):
    """Stored metadata as rendered in the catalog."""
    title: str
    description: str
    tags: List[str] = []


class ImageRecord(BaseModel):
    """Persisted metadata of one image file."""
    file_path: str
    title: str
    description: str
    tags: List[str] = []
    last_filesize: int
    last_modified: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_info(self) -> ImageInfo:
        return ImageInfo(title=self.title, description=self.description, tags=list(self.tags))


class CatalogEntry(BaseModel):
    """One image of the catalog listing."""
    name: str
    url: str
    info: Optional[ImageInfo] = None

    def to_response(self) -> Dict[str, Any]:
        """Serialize without an ``info`` key for images not yet annotated."""
        return self.model_dump(exclude_none=True)


class ImageAnnotationOutcome(BaseModel):
    """Result of annotating a single image inside a batch."""
    name: str
    success: bool
    tags_stored: List[str] = []
    processing_time: float = 0.0
    error: Optional[str] = None


class BatchAnnotationResult(BaseModel):
    """Result of annotating every pending image of the catalog."""
    batch_size: int
    successful: int
    failed: int
    total_tags_stored: int
    processing_time: float
    results: List[ImageAnnotationOutcome]


class HealthStatus(BaseModel):
    """Health check response."""
    status: str = "healthy"
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = "1.0.0"
    metrics: Dict[str, Any] = {}
