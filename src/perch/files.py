"""File uploads — extraction from requests and policy checks.

A file arrives either as a part of a ``multipart/form-data`` body, or as
the entire request body (``PUT /avatar`` with ``Content-Type: image/png``).
Both come back as an ``UploadedFile`` with its MIME type sniffed from the
leading bytes::

    file = await unmarshal_file("avatar", request)
    if file is None:
        ...  # nothing was sent

    with file:
        errs = FilePolicy.allowing("image/png", "image/jpeg", max_size=1 << 20).check("avatar", file)
        if errs is not None:
            raise errs
        store(file.read())

A raw body is buffered in memory up to ``UploadConfig.max_memory``;
anything larger is written to a named temporary file, which is removed
when the ``UploadedFile`` is closed as a context manager or ``remove()``
is called. Multipart parts are spooled the same way by the form parser.
"""

from __future__ import annotations

import dataclasses
import io
import logging
import os
from dataclasses import dataclass
from tempfile import NamedTemporaryFile
from typing import IO, Any

from perch.binding import decode_values
from perch.config import DEFAULT_CONFIG, UploadConfig
from perch.errors import DecodeError
from perch.http.forms import is_multipart, media_type
from perch.http.request import Request
from perch.http.sniff import sniff_stream
from perch.unmarshal import merge_values, outcome_errors, unmarshal_form
from perch.validation.errors import FieldRequired, ValidationErrors

logger = logging.getLogger("perch.files")

_UNITS = ("B", "KB", "MB", "GB", "TB", "PB")


def human_size(n: int) -> str:
    """Render a byte count with the largest whole binary unit.

    The value is truncated, not rounded: ``human_size(1536) == "1 KB"``.
    """
    i = 0
    while n >= 1024 and i < len(_UNITS) - 1:
        n //= 1024
        i += 1
    return f"{n} {_UNITS[i]}"


@dataclass(slots=True)
class UploadedFile:
    """A file taken from a request.

    ``type`` is sniffed from the content; ``content_type`` and
    ``filename`` are whatever the client declared, and may be empty.
    ``path`` is set only when the content was spilled to disk.
    """

    field: str
    file: IO[bytes]
    size: int
    type: str
    filename: str = ""
    content_type: str = ""
    path: str | None = None
    _removed: bool = dataclasses.field(default=False, repr=False)

    def read(self, size: int = -1) -> bytes:
        return self.file.read(size)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        return self.file.seek(offset, whence)

    def tell(self) -> int:
        return self.file.tell()

    @property
    def closed(self) -> bool:
        return self.file.closed

    @property
    def on_disk(self) -> bool:
        """True if the content was spilled to a temporary file."""
        return self.path is not None

    def close(self) -> None:
        self.file.close()

    def remove(self) -> None:
        """Close the stream and delete the spilled file, if there is one.

        Safe to call more than once.
        """
        self.file.close()
        if self.path is None or self._removed:
            return
        self._removed = True
        try:
            os.remove(self.path)
        except FileNotFoundError:
            return
        logger.debug("removed spilled upload %s", self.path)

    def __enter__(self) -> UploadedFile:
        return self

    def __exit__(self, *exc: object) -> None:
        self.remove()


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


async def unmarshal_files(
    field: str,
    request: Request,
    *,
    config: UploadConfig = DEFAULT_CONFIG,
) -> list[UploadedFile]:
    """Every file sent under *field* in a multipart request.

    Returns an empty list when no file was sent under that name.

    Raises:
        DecodeError: The request is not ``multipart/form-data``, or the
            body is malformed.
    """
    if not is_multipart(request.content_type):
        msg = "invalid request type"
        raise DecodeError(msg)

    form = await request.form(config=config)
    files: list[UploadedFile] = []
    for part in form.files.get(field, []):
        files.append(
            UploadedFile(
                field=field,
                file=part.file,
                size=part.size,
                type=sniff_stream(part.file, config.sniff_length),
                filename=part.filename,
                content_type=part.content_type,
            )
        )
    return files


async def _read_body_file(field: str, request: Request, config: UploadConfig) -> UploadedFile | None:
    buf = bytearray()
    chunks = request.stream()

    async for chunk in chunks:
        buf.extend(chunk)
        if len(buf) > config.max_memory:
            break
    else:
        if not buf:
            return None
        file = io.BytesIO(bytes(buf))
        return UploadedFile(
            field=field,
            file=file,
            size=len(buf),
            type=sniff_stream(file, config.sniff_length),
            content_type=request.content_type or "",
        )

    tmp = NamedTemporaryFile(delete=False, prefix=config.temp_prefix, dir=config.temp_dir)  # noqa: SIM115
    try:
        tmp.write(buf)
        size = len(buf)
        async for chunk in chunks:
            tmp.write(chunk)
            size += len(chunk)
        tmp.seek(0)
    except BaseException:
        tmp.close()
        os.remove(tmp.name)
        raise

    logger.debug("spilled %d byte upload for %r to %s", size, field, tmp.name)
    return UploadedFile(
        field=field,
        file=tmp,
        size=size,
        type=sniff_stream(tmp, config.sniff_length),
        content_type=request.content_type or "",
        path=tmp.name,
    )


async def unmarshal_file(
    field: str,
    request: Request,
    *,
    config: UploadConfig = DEFAULT_CONFIG,
) -> UploadedFile | None:
    """The file sent under *field*, or the request body as a file.

    For ``multipart/form-data`` the first part named *field* is taken.
    For anything else the whole body is the file. Returns ``None`` when
    no part has that name or the body is empty.
    """
    if is_multipart(request.content_type):
        files = await unmarshal_files(field, request, config=config)
        if not files:
            return None
        return files[0]
    return await _read_body_file(field, request, config)


async def unmarshal_form_with_file(
    form: Any,
    field: str,
    request: Request,
    *,
    config: UploadConfig = DEFAULT_CONFIG,
) -> UploadedFile | None:
    """Extract the file under *field*, then decode the remaining values into *form*.

    When the body was the file itself, only the URL query values are
    decoded. The file is removed again if decoding fails.
    """
    file = await unmarshal_file(field, request, config=config)
    try:
        if is_multipart(request.content_type):
            await unmarshal_form(form, request, config=config)
        elif (errs := outcome_errors(decode_values(form, merge_values(request.query)))) is not None:
            raise errs
    except BaseException:
        if file is not None:
            file.remove()
        raise
    return file


async def unmarshal_form_with_files(
    form: Any,
    field: str,
    request: Request,
    *,
    config: UploadConfig = DEFAULT_CONFIG,
) -> list[UploadedFile]:
    """Extract every file under *field*, then decode the form values into *form*."""
    files = await unmarshal_files(field, request, config=config)
    try:
        await unmarshal_form(form, request, config=config)
    except BaseException:
        for file in files:
            file.remove()
        raise
    return files


# ---------------------------------------------------------------------------
# Policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class FilePolicy:
    """Size and MIME type limits for an uploaded file.

    ``max_size`` of 0 means unlimited. ``mimes`` are allowed when
    ``allow`` is true and denied otherwise; an entry matches either
    the full sniffed type (``text/plain; charset=utf-8``) or its media
    type (``text/plain``).

    An allowing policy reports a disallowed type once, with a single
    "must be one of" message naming every entry, rather than once per
    entry it failed to match. A denying policy reports one "cannot be
    one of" message for each entry the type matches.
    """

    max_size: int = 0
    mimes: tuple[str, ...] = ()
    allow: bool = True
    required: bool = False

    @classmethod
    def allowing(cls, *mimes: str, max_size: int = 0, required: bool = False) -> FilePolicy:
        return cls(max_size=max_size, mimes=mimes, allow=True, required=required)

    @classmethod
    def denying(cls, *mimes: str, max_size: int = 0, required: bool = False) -> FilePolicy:
        return cls(max_size=max_size, mimes=mimes, allow=False, required=required)

    def check(self, field: str, file: UploadedFile | None) -> ValidationErrors | None:
        """Check *file* against this policy, reporting under *field*."""
        errs = ValidationErrors()

        if file is None or file.size == 0:
            if self.required:
                errs.add(field, FieldRequired())
            return errs.err()

        if self.max_size > 0 and file.size > self.max_size:
            errs.add(field, f"{field} cannot be bigger than {human_size(self.max_size)}")

        if self.mimes:
            listed = ", ".join(self.mimes)
            base = media_type(file.type)
            matched = [m for m in self.mimes if m in (file.type, base)]

            if self.allow and not matched:
                errs.add(field, f"{field} must be one of {listed}")
            elif not self.allow:
                for _ in matched:
                    errs.add(field, f"{field} cannot be one of {listed}")

        return errs.err()
