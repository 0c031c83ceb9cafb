"""
Tests for annotating single images through the vision model.
"""

import base64

import httpx
import pytest

from ai_gallery.annotator import NotAnImageError
from ai_gallery.catalog import InvalidImageNameError
from ai_gallery.config import Settings
from ai_gallery.ollama_client import (
    PROMPT,
    SchemaViolationError,
    TransportError,
    UpstreamStatusError,
)
from ai_gallery.processor import GalleryProcessor
from conftest import CAT_ANSWER, JPEG_BYTES, TEXT_BYTES, FakeOllama, write_file


def test_annotate_stores_and_returns_cleaned_result(processor, images_dir):
    write_file(images_dir, "cat.jpg", JPEG_BYTES)

    result = processor.annotate_image("cat.jpg")

    assert result.model_dump() == {
        "filename": "cat.jpg",
        "filesize": len(JPEG_BYTES),
        "file_modification_time": "2023-11-14T22:13:20Z",
        "image_information": {
            "title": "Cat",
            "detailed_description": "A cat on a rug.",
            "tags": ["cat", "pet"],
        },
    }

    record = processor.repository.get_record("cat.jpg")
    assert record.title == "Cat"
    assert record.description == "A cat on a rug."
    assert record.tags == ["cat", "pet"]
    assert record.last_filesize == len(JPEG_BYTES)
    assert record.last_modified.isoformat() == "2023-11-14T22:13:20+00:00"


def test_request_body(processor, images_dir, fake_ollama):
    write_file(images_dir, "cat.jpg", JPEG_BYTES)

    processor.annotate_image("cat.jpg")

    assert len(fake_ollama.bodies) == 1
    body = fake_ollama.bodies[0]
    assert body["model"] == "llama3.2-vision"
    assert body["prompt"] == PROMPT == "What is in this image?"
    assert body["stream"] is False
    assert body["temperature"] == 0.3
    assert body["images"] == [base64.b64encode(JPEG_BYTES).decode("ascii")]

    schema = body["format"]
    assert schema["required"] == ["image_information"]
    information = schema["properties"]["image_information"]
    assert sorted(information["required"]) == ["detailed_description", "tags", "title"]
    assert information["properties"]["tags"]["minItems"] == 1
    assert information["properties"]["tags"]["maxItems"] == 10

    assert str(fake_ollama.requests[0].url) == "http://localhost:11434/api/generate"


def test_model_can_be_overridden(tmp_path, images_dir, fake_ollama):
    settings = Settings(
        images_dir=images_dir,
        database_path=tmp_path / "images.db",
        image_model="llava:13b",
        _env_file=None,
    )
    write_file(images_dir, "cat.jpg", JPEG_BYTES)

    with GalleryProcessor(settings, transport=fake_ollama.transport()) as gallery:
        gallery.annotate_image("cat.jpg")

    assert fake_ollama.bodies[0]["model"] == "llava:13b"


def test_model_call_has_timeout(processor):
    assert processor.client.client.timeout.read == 120.0


def test_annotating_twice_is_idempotent(processor, images_dir):
    write_file(images_dir, "cat.jpg", JPEG_BYTES)

    processor.annotate_image("cat.jpg")
    first = processor.repository.get_record("cat.jpg")
    processor.annotate_image("cat.jpg")
    second = processor.repository.get_record("cat.jpg")

    assert processor.repository.count() == 1
    assert second.model_dump(exclude={"updated_at"}) == first.model_dump(exclude={"updated_at"})
    assert second.updated_at >= first.updated_at


def test_comma_joined_tags_are_split_past_the_answer_limit(settings, images_dir):
    tags = [f"tag{i}a, tag{i}b" for i in range(10)]
    fake = FakeOllama(answer={"image_information": {"title": "Cat", "detailed_description": "A cat.", "tags": tags}})
    write_file(images_dir, "cat.jpg", JPEG_BYTES)

    with GalleryProcessor(settings, transport=fake.transport()) as gallery:
        result = gallery.annotate_image("cat.jpg")

        assert len(result.image_information.tags) == 20
        assert len(gallery.repository.get_record("cat.jpg").tags) == 20


@pytest.mark.parametrize("answer", [
    "this is not json",
    '{"image_information": {"detailed_description": "A cat.", "tags": ["cat"]}}',
    '{"image_information": {"title": "Cat", "tags": ["cat"]}}',
    '{"image_information": {"title": "Cat", "detailed_description": "A cat."}}',
    '{"title": "Cat"}',
    '["Cat"]',
    '{"image_information": {"title": "Cat", "detailed_description": "A cat.", "tags": []}}',
    '{"image_information": {"title": "Cat", "detailed_description": "A cat.", "tags": '
    '["a", "b", "c", "d", "e", "f", "g", "h", "i", "j", "k"]}}',
    '{"image_information": {"title": "Cat", "detailed_description": "A cat.", "tags": [" ", ", ,"]}}',
])
def test_schema_violations_are_rejected_without_writing(settings, images_dir, answer):
    fake = FakeOllama(answer=answer)
    write_file(images_dir, "cat.jpg", JPEG_BYTES)

    with GalleryProcessor(settings, transport=fake.transport()) as gallery:
        with pytest.raises(SchemaViolationError):
            gallery.annotate_image("cat.jpg")

        assert gallery.repository.count() == 0
        assert gallery.metrics.get_metrics()["failures"] == 1


def test_invalid_envelope_is_a_schema_violation(settings, images_dir):
    def handler(request):
        return httpx.Response(200, text="<html>proxy error</html>")

    write_file(images_dir, "cat.jpg", JPEG_BYTES)

    with GalleryProcessor(settings, transport=httpx.MockTransport(handler)) as gallery:
        with pytest.raises(SchemaViolationError):
            gallery.annotate_image("cat.jpg")
        with pytest.raises(SchemaViolationError):
            gallery.client.parse_answer(b'{"done": true}')

        assert gallery.repository.count() == 0


def test_upstream_status_error(settings, images_dir):
    fake = FakeOllama(status_code=404, error_body='{"error":"model \'llama3.2-vision\' not found"}')
    write_file(images_dir, "cat.jpg", JPEG_BYTES)

    with GalleryProcessor(settings, transport=fake.transport()) as gallery:
        with pytest.raises(UpstreamStatusError) as exc_info:
            gallery.annotate_image("cat.jpg")

        assert exc_info.value.status_code == 404
        assert str(exc_info.value) == (
            "request failed with status 404: {\"error\":\"model 'llama3.2-vision' not found\"}"
        )
        assert gallery.repository.count() == 0


def test_upstream_status_error_without_body():
    error = UpstreamStatusError(502)
    assert str(error) == "request failed with status 502 and error reading response body"


def test_transport_error(settings, images_dir):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    write_file(images_dir, "cat.jpg", JPEG_BYTES)

    with GalleryProcessor(settings, transport=httpx.MockTransport(handler)) as gallery:
        with pytest.raises(TransportError):
            gallery.annotate_image("cat.jpg")

        assert gallery.repository.count() == 0


def test_non_image_is_rejected_before_calling_model(processor, images_dir, fake_ollama):
    write_file(images_dir, "readme.txt", TEXT_BYTES)

    with pytest.raises(NotAnImageError):
        processor.annotate_image("readme.txt")

    assert fake_ollama.requests == []
    assert processor.repository.count() == 0


def test_missing_file(processor):
    with pytest.raises(FileNotFoundError):
        processor.annotate_image("missing.jpg")


@pytest.mark.parametrize("name", ["../cat.jpg", "sub/cat.jpg", "..", ""])
def test_names_outside_catalog_are_rejected(processor, name):
    with pytest.raises(InvalidImageNameError):
        processor.annotate_image(name)


def test_annotate_pending_continues_after_failures(settings, images_dir):
    write_file(images_dir, "cat.jpg", JPEG_BYTES)
    write_file(images_dir, "dog.jpg", JPEG_BYTES)

    fake = FakeOllama(answer=CAT_ANSWER)
    state = {"failed": False}

    def handler(request):
        if not state["failed"]:
            state["failed"] = True
            return httpx.Response(500, text="out of memory")
        return fake.handler(request)

    with GalleryProcessor(settings, transport=httpx.MockTransport(handler)) as gallery:
        batch = gallery.annotate_pending()

        assert batch.batch_size == 2
        assert batch.successful == 1
        assert batch.failed == 1
        assert batch.total_tags_stored == 2
        failed = [r for r in batch.results if not r.success]
        assert "out of memory" in failed[0].error
        assert gallery.repository.count() == 1

        # Only the image still without metadata is annotated again
        batch = gallery.annotate_pending()
        assert batch.batch_size == 1
        assert gallery.repository.count() == 2
