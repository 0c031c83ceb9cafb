"""
Shared fixtures for the AI Gallery tests.
"""

import json
import os
from pathlib import Path

import httpx
import pytest

from ai_gallery.config import Settings
from ai_gallery.processor import GalleryProcessor


JPEG_BYTES = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00" + b"\x00" * 600 + b"\xff\xd9"
PNG_BYTES = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR" + b"\x00" * 64
TEXT_BYTES = b"This folder contains my cat pictures.\n"

FILE_MTIME = 1700000000  # 2023-11-14T22:13:20Z

CAT_ANSWER = {
    "image_information": {
        "title": "Cat",
        "detailed_description": "A cat on a rug.",
        "tags": ["Cat", "Pet", "Pet"],
    }
}


def write_file(folder: Path, name: str, data: bytes) -> Path:
    path = folder / name
    path.write_bytes(data)
    os.utime(path, (FILE_MTIME, FILE_MTIME))
    return path


class FakeOllama:
    """Stands in for the Ollama generate endpoint and records every request."""

    def __init__(self, answer=CAT_ANSWER, status_code=200, error_body="model not found"):
        self.answer = answer
        self.status_code = status_code
        self.error_body = error_body
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            return httpx.Response(200, json={"models": []})
        if self.status_code != 200:
            return httpx.Response(self.status_code, text=self.error_body)

        answer = self.answer if isinstance(self.answer, str) else json.dumps(self.answer)
        return httpx.Response(200, json={"model": "llama3.2-vision", "response": answer, "done": True})

    @property
    def bodies(self):
        return [json.loads(r.content) for r in self.requests if r.method == "POST"]

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def images_dir(tmp_path) -> Path:
    folder = tmp_path / "images"
    folder.mkdir()
    return folder


@pytest.fixture
def settings(tmp_path, images_dir) -> Settings:
    return Settings(
        images_dir=images_dir,
        database_path=tmp_path / "db" / "images.db",
        _env_file=None,
    )


@pytest.fixture
def fake_ollama() -> FakeOllama:
    return FakeOllama()


@pytest.fixture
def processor(settings, fake_ollama):
    gallery = GalleryProcessor(settings, transport=fake_ollama.transport())
    gallery.initialize()
    yield gallery
    gallery.close()
