"""Test helpers — build ASGI requests and capture ASGI responses.

Uses the same Request and Response types as production::

    body, ct = encode_multipart({"title": "Hello"}, {"avatar": ("me.png", png, "image/png")})
    request = make_request("POST", "/profile", body=body, headers={"content-type": ct})

    sent = SentResponse()
    await send_response(json({"ok": True}), sent)
    assert sent.status == 200
"""

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, TypeAlias
from urllib.parse import urlencode

from perch._internal.asgi import Receive
from perch.http.headers import Headers
from perch.http.request import Request

FileSpec: TypeAlias = tuple[str, bytes, str]


def make_scope(**overrides: Any) -> dict[str, Any]:
    """Build a minimal valid ASGI HTTP scope."""
    base: dict[str, Any] = {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": "/",
        "raw_path": b"/",
        "query_string": b"",
        "root_path": "",
        "headers": [],
        "server": ("localhost", 8000),
        "client": ("127.0.0.1", 54321),
    }
    base.update(overrides)
    return base


def make_receive(*bodies: bytes) -> Receive:
    """Create an ASGI receive callable that yields *bodies* as separate messages."""
    messages = [
        {"type": "http.request", "body": body, "more_body": i < len(bodies) - 1}
        for i, body in enumerate(bodies)
    ]
    if not messages:
        messages.append({"type": "http.request", "body": b"", "more_body": False})
    it = iter(messages)

    async def receive() -> dict[str, Any]:
        return next(it, {"type": "http.disconnect"})

    return receive


def make_request(
    method: str = "GET",
    path: str = "/",
    *,
    headers: Mapping[str, str] | None = None,
    body: bytes = b"",
    chunks: Iterable[bytes] | None = None,
    query: str | Mapping[str, Any] = "",
    scheme: str = "http",
    server: tuple[str, int] | None = ("localhost", 8000),
) -> Request:
    """Build a Request as an ASGI server would hand it over.

    *chunks* delivers the body as several receive messages instead of
    one; *query* is a raw query string or a mapping to encode.
    """
    query_string = query if isinstance(query, str) else urlencode(query, doseq=True)
    raw_headers = Headers.from_mapping(dict(headers or {})).raw
    scope = make_scope(
        method=method,
        path=path,
        raw_path=path.encode("latin-1"),
        scheme=scheme,
        query_string=query_string.encode("latin-1"),
        headers=[list(pair) for pair in raw_headers],
        server=server,
    )
    parts = tuple(chunks) if chunks is not None else (body,)
    return Request.from_asgi(scope, make_receive(*parts))


def encode_multipart(
    fields: Mapping[str, str | Sequence[str]] | None = None,
    files: Mapping[str, FileSpec | Sequence[FileSpec]] | None = None,
    *,
    boundary: str = "perch-test-boundary",
) -> tuple[bytes, str]:
    """Encode a ``multipart/form-data`` body.

    *files* maps a field name to ``(filename, content, content_type)``
    or a list of them. Returns the body and its Content-Type value.
    """
    out = bytearray()
    delimiter = f"--{boundary}\r\n".encode("latin-1")

    for name, value in (fields or {}).items():
        values = [value] if isinstance(value, str) else list(value)
        for v in values:
            out += delimiter
            out += f'Content-Disposition: form-data; name="{name}"\r\n\r\n'.encode()
            out += v.encode("utf-8") + b"\r\n"

    for name, spec in (files or {}).items():
        specs = [spec] if isinstance(spec, tuple) else list(spec)
        for filename, content, content_type in specs:
            out += delimiter
            out += (
                f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
                f"Content-Type: {content_type}\r\n\r\n"
            ).encode()
            out += content + b"\r\n"

    out += f"--{boundary}--\r\n".encode("latin-1")
    return bytes(out), f"multipart/form-data; boundary={boundary}"


class SentResponse:
    """An ASGI ``send`` callable that records what was sent."""

    def __init__(self) -> None:
        self.messages: list[dict[str, Any]] = []

    async def __call__(self, message: Mapping[str, Any]) -> None:
        self.messages.append(dict(message))

    @property
    def status(self) -> int:
        return self.messages[0]["status"]

    @property
    def headers(self) -> dict[str, str]:
        return {
            name.decode("latin-1"): value.decode("latin-1")
            for name, value in self.messages[0]["headers"]
        }

    @property
    def body(self) -> bytes:
        return b"".join(m.get("body", b"") for m in self.messages[1:])
