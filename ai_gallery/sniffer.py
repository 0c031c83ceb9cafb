"""
Content type detection from the leading bytes of a file.

Follows the MIME sniffing rules browsers use (and Go's
``http.DetectContentType``): only the first 512 bytes are examined and the
file name is never consulted.
"""

from pathlib import Path
from typing import BinaryIO, Callable, List, Tuple, Union


SNIFF_LENGTH = 512

TEXT_PLAIN = "text/plain; charset=utf-8"
OCTET_STREAM = "application/octet-stream"

# Bytes that may precede an HTML/XML signature.
_WHITESPACE = b"\t\n\x0c\r "

# Bytes that mark data as binary (WHATWG "binary data byte").
_BINARY_BYTES = frozenset(
    list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20))
)

_HTML_MARKERS = [
    b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1",
    b"<DIV", b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B",
    b"<BODY", b"<BR", b"<P", b"<!--",
]

# (mask, pattern, content type); zero mask bytes are wildcards.
_MASKED_SIGNATURES: List[Tuple[bytes, bytes, str]] = [
    (b"\xff\xff\xff\xff\xff", b"%PDF-", "application/pdf"),
    (b"\xff" * 11, b"%!PS-Adobe-", "application/postscript"),
    (b"\xff\xff", b"\xfe\xff", "text/plain; charset=utf-16be"),
    (b"\xff\xff", b"\xff\xfe", "text/plain; charset=utf-16le"),
    (b"\xff\xff\xff", b"\xef\xbb\xbf", TEXT_PLAIN),
    (b"\xff\xff\xff\xff", b"\x00\x00\x01\x00", "image/x-icon"),
    (b"\xff\xff\xff\xff", b"\x00\x00\x02\x00", "image/x-icon"),
    (b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff\xff\xff",
     b"RIFF\x00\x00\x00\x00WEBPVP", "image/webp"),
    (b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff",
     b"FORM\x00\x00\x00\x00AIFF", "audio/aiff"),
    (b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff",
     b"RIFF\x00\x00\x00\x00WAVE", "audio/wave"),
    (b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff",
     b"RIFF\x00\x00\x00\x00AVI ", "video/avi"),
    (b"\xff\xff\xff\xff\xff", b"OggS\x00", "application/ogg"),
    (b"\xff\xff\xff", b"ID3", "audio/mpeg"),
]

_PREFIX_SIGNATURES: List[Tuple[bytes, str]] = [
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"BM", "image/bmp"),
    (b".snd", "audio/basic"),
    (b"MThd\x00\x00\x00\x06", "audio/midi"),
    (b"\x1a\x45\xdf\xa3", "video/webm"),
    (b"\x00\x01\x00\x00", "font/ttf"),
    (b"OTTO", "font/otf"),
    (b"ttcf", "font/collection"),
    (b"wOFF", "font/woff"),
    (b"wOF2", "font/woff2"),
    (b"\x1f\x8b\x08", "application/x-gzip"),
    (b"PK\x03\x04", "application/zip"),
    (b"Rar!\x1a\x07\x00", "application/x-rar-compressed"),
    (b"Rar!\x1a\x07\x01\x00", "application/x-rar-compressed"),
    (b"\x00\x61\x73\x6d", "application/wasm"),
]


def _masked_match(data: bytes, mask: bytes, pattern: bytes) -> bool:
    if len(pattern) != len(mask) or len(data) < len(pattern):
        return False
    return all((d & m) == p for d, m, p in zip(data, mask, pattern))


def _match_html(data: bytes) -> bool:
    data = data.lstrip(_WHITESPACE)
    upper = data.upper()
    for marker in _HTML_MARKERS:
        if upper.startswith(marker):
            # The marker must be followed by a tag-terminating byte.
            if len(data) > len(marker) and data[len(marker)] in b" >":
                return True
    return False


def _match_mp4(data: bytes) -> bool:
    if len(data) < 12:
        return False
    box_size = int.from_bytes(data[:4], "big")
    if len(data) < box_size or box_size % 4 != 0 or data[4:8] != b"ftyp":
        return False
    for start in range(8, box_size, 4):
        if start == 12:
            # Skip the minor version field.
            continue
        if data[start:start + 3] == b"mp4":
            return True
    return False


def _match_avif(data: bytes) -> bool:
    return len(data) >= 12 and data[4:8] == b"ftyp" and data[8:12] in (b"avif", b"avis")


_SPECIAL_MATCHERS: List[Tuple[Callable[[bytes], bool], str]] = [
    (_match_avif, "image/avif"),
    (_match_mp4, "video/mp4"),
]


def sniff_bytes(data: bytes) -> str:
    """Classify a byte prefix; only the first 512 bytes are considered."""
    data = data[:SNIFF_LENGTH]

    if _match_html(data):
        return "text/html; charset=utf-8"
    stripped = data.lstrip(_WHITESPACE)
    if stripped.startswith(b"<?xml"):
        return "text/xml; charset=utf-8"

    for mask, pattern, content_type in _MASKED_SIGNATURES:
        if _masked_match(data, mask, pattern):
            return content_type

    for prefix, content_type in _PREFIX_SIGNATURES:
        if data.startswith(prefix):
            return content_type

    for matcher, content_type in _SPECIAL_MATCHERS:
        if matcher(data):
            return content_type

    if any(byte in _BINARY_BYTES for byte in data):
        return OCTET_STREAM
    return TEXT_PLAIN


def detect_content_type(source: Union[BinaryIO, bytes]) -> str:
    """Detect the media type of a byte source without consuming it.

    Reads at most 512 bytes from a seekable stream and seeks back to the
    original position. A stream shorter than that is fine.
    """
    if isinstance(source, (bytes, bytearray, memoryview)):
        return sniff_bytes(bytes(source[:SNIFF_LENGTH]))

    position = source.tell()
    try:
        prefix = source.read(SNIFF_LENGTH)
    finally:
        source.seek(position)
    return sniff_bytes(prefix or b"")


def detect_file_content_type(path: Union[str, Path]) -> str:
    """Open a file and sniff its content type. Raises OSError on open/read failures."""
    with open(path, "rb") as f:
        return detect_content_type(f)


def is_image_type(content_type: str) -> bool:
    """Check whether a sniffed content type denotes an image."""
    return content_type.startswith("image/")
