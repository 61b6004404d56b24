"""Turn decrypted bytes into something the HTTP layer can serve.

Content types are sniffed from the payload itself, never taken from the
display name or the client: the first 512 bytes are matched against a table
of magic numbers, then classified as text or binary.
"""

import io
from typing import Callable, List, Optional, Tuple
from urllib.parse import quote

from .models import StreamDescriptor

SNIFF_LEN = 512
DEFAULT_CONTENT_TYPE = "application/octet-stream"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
FALLBACK_NAME = "download"

_WHITESPACE = b"\t\n\x0c\r "
_TAG_TERMINATORS = b" >"
_BINARY_BYTES = frozenset(
    list(range(0x00, 0x09)) + [0x0B] + list(range(0x0E, 0x1B)) + list(range(0x1C, 0x20))
)

_HTML_TAGS = (
    b"<!DOCTYPE HTML", b"<HTML", b"<HEAD", b"<SCRIPT", b"<IFRAME", b"<H1",
    b"<DIV", b"<FONT", b"<TABLE", b"<A", b"<STYLE", b"<TITLE", b"<B",
    b"<BODY", b"<BR", b"<P", b"<!--",
)

# (prefix, content type); checked in order after the HTML/XML rules
_EXACT_PREFIXES: List[Tuple[bytes, str]] = [
    (b"%PDF-", "application/pdf"),
    (b"%!PS-Adobe-", "application/postscript"),
    (b"\xfe\xff", "text/plain; charset=utf-16be"),
    (b"\xff\xfe", "text/plain; charset=utf-16le"),
    (b"\xef\xbb\xbf", TEXT_CONTENT_TYPE),
    (b"\x00\x00\x01\x00", "image/x-icon"),
    (b"\x00\x00\x02\x00", "image/x-icon"),
    (b"BM", "image/bmp"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"ID3", "audio/mpeg"),
    (b"OggS\x00", "application/ogg"),
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
    (b"\x00asm", "application/wasm"),
]

# container formats: (prefix, tag, tag offset, content type)
_CONTAINERS = [
    (b"RIFF", b"WEBPVP", 8, "image/webp"),
    (b"RIFF", b"AVI ", 8, "video/avi"),
    (b"RIFF", b"WAVE", 8, "audio/wave"),
    (b"FORM", b"AIFF", 8, "audio/aiff"),
]


def _skip_whitespace(data: bytes) -> bytes:
    return data.lstrip(_WHITESPACE)


def _sniff_html(data: bytes) -> Optional[str]:
    data = _skip_whitespace(data)
    for tag in _HTML_TAGS:
        if len(data) <= len(tag):
            continue
        if data[: len(tag)].upper() != tag:
            continue
        if data[len(tag)] in _TAG_TERMINATORS:
            return "text/html; charset=utf-8"
    return None


def _sniff_xml(data: bytes) -> Optional[str]:
    if _skip_whitespace(data).startswith(b"<?xml"):
        return "text/xml; charset=utf-8"
    return None


def _sniff_prefix(data: bytes) -> Optional[str]:
    for prefix, content_type in _EXACT_PREFIXES:
        if data.startswith(prefix):
            return content_type
    for prefix, tag, offset, content_type in _CONTAINERS:
        if data.startswith(prefix) and data[offset: offset + len(tag)] == tag:
            return content_type
    return None


def _sniff_mp4(data: bytes) -> Optional[str]:
    # ISO base media: a leading "ftyp" box listing an "mp4*" brand
    if len(data) < 12:
        return None
    box_size = int.from_bytes(data[:4], "big")
    if len(data) < box_size or box_size % 4 != 0:
        return None
    if data[4:8] != b"ftyp":
        return None
    for start in range(8, box_size, 4):
        if start == 12:
            # minor version number, not a brand
            continue
        if data[start: start + 3] == b"mp4":
            return "video/mp4"
    return None


def _sniff_text(data: bytes) -> Optional[str]:
    if any(b in _BINARY_BYTES for b in data):
        return None
    return TEXT_CONTENT_TYPE


_SNIFFERS: List[Callable[[bytes], Optional[str]]] = [
    _sniff_html,
    _sniff_xml,
    _sniff_prefix,
    _sniff_mp4,
    _sniff_text,
]


def detect_content_type(data: bytes) -> str:
    """Best-effort MIME type of ``data``; never raises."""
    head = bytes(data[:SNIFF_LEN])
    for sniffer in _SNIFFERS:
        content_type = sniffer(head)
        if content_type:
            return content_type
    return DEFAULT_CONTENT_TYPE


def sanitize_filename(name: str) -> str:
    """Strip directories and characters that would break a quoted header value."""
    name = (name or "").replace("\\", "/").rsplit("/", 1)[-1]
    name = "".join(ch for ch in name if ord(ch) >= 32 and ord(ch) != 127)
    name = name.replace('"', "_").strip()
    if name in ("", ".", ".."):
        return FALLBACK_NAME
    return name


class FileStreamAdapter:
    """Build a StreamDescriptor for a decrypted payload."""

    def __init__(self, sanitize_names: bool = True):
        self.sanitize_names = sanitize_names

    def content_disposition(self, file_name: str) -> str:
        if not self.sanitize_names:
            return f'attachment; filename="{file_name}"'

        name = sanitize_filename(file_name)
        try:
            name.encode("ascii")
        except UnicodeEncodeError:
            # RFC 6266: ASCII fallback plus the exact UTF-8 name
            fallback = name.encode("ascii", "replace").decode("ascii").replace("?", "_")
            return (
                f'attachment; filename="{fallback}"; '
                f"filename*=UTF-8''{quote(name, safe='')}"
            )
        return f'attachment; filename="{name}"'

    def describe(self, data: bytes, file_name: str) -> StreamDescriptor:
        return StreamDescriptor(
            length=len(data),
            content_type=detect_content_type(data),
            stream=io.BytesIO(data),
            headers={"Content-Disposition": self.content_disposition(file_name)},
        )
