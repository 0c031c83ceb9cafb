"""
Configuration management for the AI Gallery service.
"""

from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit
from pydantic import AliasChoices, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_IMAGE_MODEL = "llama3.2-vision"
DEFAULT_OLLAMA_URL = "http://localhost:11434/api/generate"


class Settings(BaseSettings):
    """Application settings with validation.

    Built once at startup and handed to every component; nothing else in the
    package reads the environment.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # Catalog Configuration
    images_dir: Path = Field(
        default=Path("./images"),
        validation_alias=AliasChoices("MAIG_IMAGES", "images_dir"),
    )
    database_path: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("MAIG_DATABASE", "database_path"),
    )

    # Model Configuration
    image_model: str = Field(
        default=DEFAULT_IMAGE_MODEL,
        validation_alias=AliasChoices("MAIG_IMAGE_MODEL", "image_model"),
    )
    ollama_url: str = Field(default=DEFAULT_OLLAMA_URL)
    temperature: float = Field(default=0.3, ge=0.0, le=2.0)
    request_timeout: float = Field(default=120.0, gt=0.0)

    # Logging Configuration
    log_level: str = Field(default="INFO")

    # HTTP server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080, gt=0, lt=65536)

    @field_validator("images_dir", mode="before")
    @classmethod
    def validate_images_dir(cls, v):
        """Blank values fall back to the default folder."""
        if v is None or not str(v).strip():
            return Path("./images")
        return Path(str(v).strip())

    @field_validator("database_path", mode="before")
    @classmethod
    def validate_database_path(cls, v):
        if v is None or not str(v).strip():
            return None
        return Path(str(v).strip())

    @field_validator("image_model", mode="before")
    @classmethod
    def validate_image_model(cls, v):
        """Blank model names fall back to the default vision model."""
        if v is None or not str(v).strip():
            return DEFAULT_IMAGE_MODEL
        return str(v).strip()

    @field_validator("ollama_url")
    @classmethod
    def validate_ollama_url(cls, v):
        """Ensure the model endpoint URL is properly formatted."""
        v = v.strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("OLLAMA_URL must start with http:// or https://")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure the log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of: {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def resolve_paths(self):
        """Anchor relative paths at the working directory."""
        self.images_dir = self.images_dir.expanduser().resolve()
        if self.database_path is None:
            self.database_path = self.images_dir / "images.db"
        else:
            self.database_path = self.database_path.expanduser().resolve()
        return self

    def get_ollama_base_url(self) -> str:
        """Get the server root of the model endpoint (scheme and host)."""
        parts = urlsplit(self.ollama_url)
        return f"{parts.scheme}://{parts.netloc}"
