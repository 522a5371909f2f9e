"""Content sniffing — a MIME type from the leading bytes of a payload.

Follows the WHATWG MIME Sniffing Standard (https://mimesniff.spec.whatwg.org/)
for the signatures a server sees in uploads: markup, documents, byte order
marks, images, audio/video, fonts, and archives. Anything else is
``text/plain; charset=utf-8`` if it contains no binary control bytes and
``application/octet-stream`` otherwise.

Client-supplied Content-Type headers are never consulted.
"""

from collections.abc import Callable
from typing import IO

from perch.config import SNIFF_LENGTH
from perch.errors import DecodeError

TEXT_PLAIN = "text/plain; charset=utf-8"
OCTET_STREAM = "application/octet-stream"

# Bytes that never appear in text (WHATWG "binary data byte").
_BINARY_BYTES = frozenset([*range(0x00, 0x09), 0x0B, *range(0x0E, 0x1B), *range(0x1C, 0x20)])

# Whitespace skipped before markup signatures.
_WHITESPACE = b"\t\n\x0c\r "

# Markup that is followed by a tag-terminating byte (space or '>').
_HTML_TAGS = (
    b"<!DOCTYPE HTML",
    b"<HTML",
    b"<HEAD",
    b"<SCRIPT",
    b"<IFRAME",
    b"<H1",
    b"<DIV",
    b"<FONT",
    b"<TABLE",
    b"<A",
    b"<STYLE",
    b"<TITLE",
    b"<B",
    b"<BODY",
    b"<BR",
    b"<P",
    b"<!--",
)


def _html(data: bytes) -> str | None:
    data = data.lstrip(_WHITESPACE)
    for tag in _HTML_TAGS:
        if len(data) <= len(tag):
            continue
        if data[: len(tag)].upper() == tag and data[len(tag)] in b" >":
            return "text/html; charset=utf-8"
    return None


def _xml(data: bytes) -> str | None:
    if data.lstrip(_WHITESPACE).startswith(b"<?xml"):
        return "text/xml; charset=utf-8"
    return None


def _exact(signature: bytes, mime: str) -> Callable[[bytes], str | None]:
    def check(data: bytes) -> str | None:
        return mime if data.startswith(signature) else None

    return check


def _masked(pattern: bytes, mask: bytes, mime: str) -> Callable[[bytes], str | None]:
    def check(data: bytes) -> str | None:
        if len(data) < len(pattern):
            return None
        for byte, want, bits in zip(data, pattern, mask, strict=False):
            if byte & bits != want:
                return None
        return mime

    return check


def _mp4(data: bytes) -> str | None:
    if len(data) < 12:
        return None
    box_size = int.from_bytes(data[:4], "big")
    if box_size % 4 != 0 or len(data) < box_size or data[4:8] != b"ftyp":
        return None
    for start in range(8, box_size, 4):
        if start == 12:
            # Bytes 12-15 hold the minor version, not a brand.
            continue
        if data[start : start + 3] == b"mp4":
            return "video/mp4"
    return None


def _text(data: bytes) -> str | None:
    if any(byte in _BINARY_BYTES for byte in data):
        return None
    return TEXT_PLAIN


# Checked in order; the first match wins.
_SIGNATURES: tuple[Callable[[bytes], str | None], ...] = (
    _html,
    _xml,
    _exact(b"%PDF-", "application/pdf"),
    _exact(b"%!PS-Adobe-", "application/postscript"),
    # Byte order marks
    _exact(b"\xfe\xff", "text/plain; charset=utf-16be"),
    _exact(b"\xff\xfe", "text/plain; charset=utf-16le"),
    _exact(b"\xef\xbb\xbf", TEXT_PLAIN),
    # Images
    _exact(b"\x00\x00\x01\x00", "image/x-icon"),
    _exact(b"\x00\x00\x02\x00", "image/x-icon"),
    _exact(b"BM", "image/bmp"),
    _exact(b"GIF87a", "image/gif"),
    _exact(b"GIF89a", "image/gif"),
    _masked(b"RIFF\x00\x00\x00\x00WEBPVP", b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff\xff\xff", "image/webp"),
    _exact(b"\x89PNG\r\n\x1a\n", "image/png"),
    _exact(b"\xff\xd8\xff", "image/jpeg"),
    # Audio and video
    _masked(b"FORM\x00\x00\x00\x00AIFF", b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff", "audio/aiff"),
    _exact(b"ID3", "audio/mpeg"),
    _exact(b"OggS\x00", "application/ogg"),
    _exact(b"MThd\x00\x00\x00\x06", "audio/midi"),
    _masked(b"RIFF\x00\x00\x00\x00AVI ", b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff", "video/avi"),
    _masked(b"RIFF\x00\x00\x00\x00WAVE", b"\xff\xff\xff\xff\x00\x00\x00\x00\xff\xff\xff\xff", "audio/wave"),
    _mp4,
    _exact(b"\x1a\x45\xdf\xa3", "video/webm"),
    # Fonts
    _exact(b"wOFF", "font/woff"),
    _exact(b"wOF2", "font/woff2"),
    _exact(b"OTTO", "font/otf"),
    _exact(b"\x00\x01\x00\x00", "font/ttf"),
    _exact(b"ttcf", "font/collection"),
    # Archives
    _exact(b"\x1f\x8b\x08", "application/x-gzip"),
    _exact(b"PK\x03\x04", "application/zip"),
    _exact(b"Rar!\x1a\x07\x00", "application/x-rar-compressed"),
    _exact(b"Rar!\x1a\x07\x01\x00", "application/x-rar-compressed"),
    _exact(b"\x00asm", "application/wasm"),
    _text,
)


def sniff_content_type(data: bytes) -> str:
    """Return the MIME type of *data*, judged from its first 512 bytes.

    Always returns a valid MIME type; ``application/octet-stream`` when
    nothing more specific matches.
    """
    head = data[:SNIFF_LENGTH]
    for signature in _SIGNATURES:
        mime = signature(head)
        if mime is not None:
            return mime
    return OCTET_STREAM


def sniff_stream(stream: IO[bytes], length: int = SNIFF_LENGTH) -> str:
    """Sniff the MIME type of *stream* and rewind it to the start.

    Reads up to *length* leading bytes (fewer if the stream is shorter),
    then seeks back to offset 0 so the caller can read the full content.

    Raises:
        DecodeError: If the stream cannot seek.
    """
    if not stream.seekable():
        msg = "Cannot sniff the content type of a non-seekable stream"
        raise DecodeError(msg)
    head = stream.read(length)
    stream.seek(0)
    return sniff_content_type(head)
