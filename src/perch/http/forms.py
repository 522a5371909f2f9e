"""Form body parsing — URL-encoded and multipart.

``FormData`` implements ``MultiValueMapping`` for consistent access across
``Headers``, ``QueryParams``, and form bodies.

Multipart bodies are fed to ``python-multipart`` chunk by chunk as they
arrive from the ASGI receive channel. File parts are written to a
``SpooledTemporaryFile``: held in memory up to ``UploadConfig.max_memory``
and rolled over to disk beyond it, so every part is a seekable stream.
URL-encoded forms use stdlib ``urllib.parse``.
"""

import logging
from collections.abc import AsyncIterable, Iterator, Mapping
from dataclasses import dataclass
from tempfile import SpooledTemporaryFile
from typing import IO, Any
from urllib.parse import parse_qs

from python_multipart.exceptions import MultipartParseError
from python_multipart.multipart import MultipartParser, parse_options_header

from perch.config import DEFAULT_CONFIG, UploadConfig
from perch.errors import DecodeError

logger = logging.getLogger("perch.forms")

FORM_URLENCODED = "application/x-www-form-urlencoded"
MULTIPART_FORM_DATA = "multipart/form-data"


def media_type(content_type: str | None) -> str:
    """Return the lowercased media type of a Content-Type value, sans parameters."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def is_multipart(content_type: str | None) -> bool:
    """True if *content_type* declares ``multipart/form-data``."""
    return media_type(content_type) == MULTIPART_FORM_DATA


@dataclass(frozen=True, slots=True)
class FilePart:
    """One file part of a multipart body.

    ``file`` is positioned at the start of the part's content. Its
    lifetime is tied to the request: close it (or the owning
    ``FormData``) once the upload has been handled.
    """

    name: str
    filename: str
    content_type: str
    size: int
    file: IO[bytes]

    def close(self) -> None:
        self.file.close()

    def __repr__(self) -> str:
        return f"FilePart({self.name!r}, {self.filename!r}, {self.size} bytes)"


class FormData(Mapping[str, str]):
    """Immutable parsed form data.

    Implements ``Mapping[str, str]`` and the ``MultiValueMapping`` protocol.
    Text fields are the mapping; uploaded parts are kept apart in
    ``files``, keyed by field name, in the order they were sent.

    Usage::

        form = await request.form()
        title = form["title"]
        avatars = form.files.get("avatar", [])
    """

    __slots__ = ("_data", "_files")

    def __init__(
        self,
        data: dict[str, list[str]],
        files: dict[str, list[FilePart]] | None = None,
    ) -> None:
        object.__setattr__(self, "_data", data)
        object.__setattr__(self, "_files", files or {})

    @property
    def files(self) -> Mapping[str, list[FilePart]]:
        """Uploaded file parts by field name."""
        return self._files

    def __getitem__(self, key: str) -> str:
        return self._data[key][0]

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        items = ", ".join(f"{k!r}: {self[k]!r}" for k in self)
        return f"FormData({{{items}}})"

    def get(self, key: str, default: str | None = None) -> str | None:  # type: ignore[override]
        """Return the first value for *key*, or *default* if missing."""
        values = self._data.get(key)
        if values:
            return values[0]
        return default

    def get_list(self, key: str) -> list[str]:
        """Return all values for *key* (checkboxes, multi-selects)."""
        return list(self._data.get(key, []))

    def close(self) -> None:
        """Close every uploaded part's stream."""
        for parts in self._files.values():
            for part in parts:
                part.close()


async def parse_form_data(
    chunks: AsyncIterable[bytes],
    content_type: str,
    *,
    config: UploadConfig = DEFAULT_CONFIG,
) -> FormData:
    """Parse a form body into FormData.

    Supports ``application/x-www-form-urlencoded`` and
    ``multipart/form-data``.

    Raises:
        DecodeError: If the content type is not a form encoding, or the
            multipart stream is malformed.
    """
    kind = media_type(content_type)

    if kind == FORM_URLENCODED:
        body = b"".join([chunk async for chunk in chunks])
        return _parse_urlencoded(body)

    if kind == MULTIPART_FORM_DATA:
        return await _parse_multipart(chunks, content_type, config)

    msg = f"Unsupported form content type: {content_type!r}"
    raise DecodeError(msg)


def _parse_urlencoded(body: bytes) -> FormData:
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        msg = "Form body is not valid UTF-8"
        raise DecodeError(msg) from e
    return FormData(parse_qs(text, keep_blank_values=True))


async def _parse_multipart(
    chunks: AsyncIterable[bytes],
    content_type: str,
    config: UploadConfig,
) -> FormData:
    _, options = parse_options_header(content_type)
    boundary = options.get(b"boundary")
    if not boundary:
        msg = "Multipart form data missing boundary parameter"
        raise DecodeError(msg)

    data: dict[str, list[str]] = {}
    files: dict[str, list[FilePart]] = {}

    # Header names and values may arrive split across several writes.
    header_field = bytearray()
    header_value = bytearray()
    headers: dict[str, str] = {}
    field_name: str | None = None
    filename: str | None = None
    text = bytearray()
    spool: Any = None

    def on_part_begin() -> None:
        nonlocal field_name, filename, spool
        headers.clear()
        text.clear()
        field_name = None
        filename = None
        spool = None

    def on_header_field(chunk: bytes, start: int, end: int) -> None:
        header_field.extend(chunk[start:end])

    def on_header_value(chunk: bytes, start: int, end: int) -> None:
        header_value.extend(chunk[start:end])

    def on_header_end() -> None:
        headers[header_field.decode("latin-1").lower()] = header_value.decode("latin-1")
        header_field.clear()
        header_value.clear()

    def on_headers_finished() -> None:
        nonlocal field_name, filename, spool
        _, params = parse_options_header(headers.get("content-disposition", ""))
        name = params.get(b"name")
        if name is not None:
            field_name = name.decode("utf-8")
        fname = params.get(b"filename")
        # An empty filename is an unfilled file input; keep it as a text value.
        if fname:
            filename = fname.decode("utf-8")
            spool = SpooledTemporaryFile(max_size=config.max_memory, dir=config.temp_dir)

    def on_part_data(chunk: bytes, start: int, end: int) -> None:
        if spool is not None:
            spool.write(chunk[start:end])
        else:
            text.extend(chunk[start:end])

    def on_part_end() -> None:
        if field_name is None:
            if spool is not None:
                spool.close()
            return

        if spool is None:
            data.setdefault(field_name, []).append(text.decode("utf-8", errors="replace"))
            return

        size = spool.tell()
        spool.seek(0)
        part = FilePart(
            name=field_name,
            filename=filename or "",
            content_type=headers.get("content-type", "application/octet-stream"),
            size=size,
            file=spool,
        )
        files.setdefault(field_name, []).append(part)

    callbacks: dict[str, Any] = {
        "on_part_begin": on_part_begin,
        "on_part_data": on_part_data,
        "on_part_end": on_part_end,
        "on_header_field": on_header_field,
        "on_header_value": on_header_value,
        "on_header_end": on_header_end,
        "on_headers_finished": on_headers_finished,
    }

    parser = MultipartParser(boundary, callbacks)  # type: ignore[arg-type]
    try:
        async for chunk in chunks:
            parser.write(chunk)
        parser.finalize()
    except (MultipartParseError, UnicodeDecodeError) as e:
        if spool is not None:
            spool.close()
        FormData(data, files).close()
        msg = f"Malformed multipart body: {e}"
        raise DecodeError(msg) from e

    logger.debug(
        "parsed multipart body: %d field(s), %d file part(s)",
        len(data),
        sum(len(parts) for parts in files.values()),
    )
    return FormData(data, files)
