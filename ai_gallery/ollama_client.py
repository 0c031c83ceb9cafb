"""
Ollama API client for describing images with a vision-language model.
"""

import base64
import json
import time
from typing import Any, Dict, Optional
import httpx
from pydantic import ValidationError
from .config import Settings
from .models import AnnotationResult
from .logging import get_logger


PROMPT = "What is in this image?"

# Structured output the model has to follow.
RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "required": ["image_information"],
    "properties": {
        "image_information": {
            "type": "object",
            "description": "Information about the image.",
            "required": ["detailed_description", "tags", "title"],
            "properties": {
                "detailed_description": {
                    "description": "A detailed description what is in the image.",
                    "type": "string",
                },
                "tags": {
                    "type": "array",
                    "minItems": 1,
                    "maxItems": 10,
                    "items": {
                        "type": "string",
                        "description": "Word or small text that categorized the image.",
                    },
                },
                "title": {
                    "description": "A short and descriptive title for the image.",
                    "type": "string",
                },
            },
        },
    },
}


class ModelClientError(Exception):
    """Base exception for errors talking to the vision model."""
    pass


class TransportError(ModelClientError):
    """The model endpoint could not be reached."""
    pass


class UpstreamStatusError(ModelClientError):
    """The model endpoint answered with a non-success status."""

    def __init__(self, status_code: int, body: Optional[str] = None):
        self.status_code = status_code
        self.body = body
        if body is None:
            message = f"request failed with status {status_code} and error reading response body"
        else:
            message = f"request failed with status {status_code}: {body}"
        super().__init__(message)


class SchemaViolationError(ModelClientError):
    """The model answer does not have the expected structure."""
    pass


class OllamaClient:
    """Client for the Ollama generate API."""

    def __init__(self, settings: Settings, transport: Optional[httpx.BaseTransport] = None):
        self.url = settings.ollama_url
        self.base_url = settings.get_ollama_base_url()
        self.model = settings.image_model
        self.temperature = settings.temperature
        self.timeout = settings.request_timeout
        self.logger = get_logger("ollama_client")

        self.client = httpx.Client(
            timeout=self.timeout,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    def build_request_body(self, image_b64: str) -> Dict[str, Any]:
        """Build the generate request for a single base64 encoded image."""
        return {
            "model": self.model,
            "prompt": PROMPT,
            "stream": False,
            "temperature": self.temperature,
            "images": [image_b64],
            "format": RESPONSE_SCHEMA,
        }

    def generate(self, image_data: bytes) -> AnnotationResult:
        """Describe an image. Makes exactly one request; there are no retries."""
        image_b64 = base64.b64encode(image_data).decode("ascii")
        body = self.build_request_body(image_b64)

        self.logger.debug(
            f"POST {self.url} | model: {self.model} | temperature: {self.temperature} | "
            f"payload: {len(image_data)} bytes"
        )

        request_start = time.time()
        try:
            response = self.client.post(self.url, json=body)
        except httpx.RequestError as e:
            self.logger.error(f"❌ Request to {self.url} failed: {e}")
            raise TransportError(f"Request to {self.url} failed: {e}") from e

        if response.status_code != 200:
            try:
                error_body = response.text
            except (httpx.HTTPError, UnicodeDecodeError):
                error_body = None
            raise UpstreamStatusError(response.status_code, error_body)

        self.logger.debug(f"Model answered in {time.time() - request_start:.2f}s")
        return self.parse_answer(response.content)

    def parse_answer(self, envelope_data: bytes) -> AnnotationResult:
        """Parse the response envelope and the JSON answer embedded in it."""
        try:
            envelope = json.loads(envelope_data)
        except ValueError as e:
            raise SchemaViolationError(f"Invalid response envelope: {e}") from e

        if not isinstance(envelope, dict) or not isinstance(envelope.get("response"), str):
            raise SchemaViolationError("Response envelope has no 'response' text")

        try:
            return AnnotationResult.model_validate_json(envelope["response"])
        except ValidationError as e:
            raise SchemaViolationError(f"Invalid image description: {e}") from e

    def test_connection(self) -> bool:
        """Test the connection to the model server."""
        try:
            response = self.client.get(f"{self.base_url}/api/tags")
            response.raise_for_status()
            self.logger.info(f"✅ Connected to model server at {self.base_url}")
            return True
        except httpx.HTTPError as e:
            self.logger.error(f"❌ Model server connection failed: {e}")
            return False

    def close(self):
        """Close the HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
