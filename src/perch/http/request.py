"""Immutable HTTP request.

Frozen metadata with async body access. The body is a single-read
stream: it can be buffered with ``body()`` and re-read from the cache,
or streamed once with ``stream()``, but not streamed twice.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from perch._internal.asgi import Receive
from perch.config import DEFAULT_CONFIG, UploadConfig
from perch.errors import BodyConsumedError
from perch.http.headers import Headers
from perch.http.query import QueryParams

if TYPE_CHECKING:
    from perch.http.forms import FormData


@dataclass(frozen=True, slots=True)
class Request:
    """An immutable HTTP request.

    Metadata (method, path, headers, etc.) is frozen at creation.
    Body is accessed asynchronously via ``.body()``, ``.stream()``,
    ``.json()``, ``.form()``.
    """

    method: str
    path: str
    scheme: str
    headers: Headers
    query: QueryParams
    server: tuple[str, int] | None
    client: tuple[str, int] | None

    # Private: ASGI receive callable for body streaming
    _receive: Receive

    # Private: mutable cache for the body, parsed form, and stream state
    _cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @property
    def content_type(self) -> str | None:
        """The Content-Type header value."""
        return self.headers.get("content-type")

    @property
    def content_length(self) -> int | None:
        """The Content-Length header as int."""
        value = self.headers.get("content-length")
        if value is None:
            return None
        try:
            return int(value)
        except ValueError:
            return None

    @property
    def host(self) -> str:
        """The ``Host`` header, falling back to the ASGI server address."""
        host = self.headers.get("host")
        if host:
            return host
        if self.server is None:
            return ""
        name, port = self.server
        default_port = 443 if self.scheme == "https" else 80
        return name if port == default_port else f"{name}:{port}"

    @property
    def is_secure(self) -> bool:
        """True if the connection to this server is over TLS."""
        return self.scheme == "https"

    # -- Async body access --

    async def body(self) -> bytes:
        """Read the full request body.

        Result is cached — the ASGI receive is consumed once, then
        the same bytes are returned on subsequent calls.
        """
        if "_body" in self._cache:
            return self._cache["_body"]
        chunks = [chunk async for chunk in self.stream()]
        result = b"".join(chunks)
        self._cache["_body"] = result
        return result

    async def stream(self) -> AsyncGenerator[bytes]:
        """Stream the request body in chunks.

        Yields the cached body if ``body()`` already buffered it.

        Raises:
            BodyConsumedError: If the body was already streamed.
        """
        if "_body" in self._cache:
            if self._cache["_body"]:
                yield self._cache["_body"]
            return

        if self._cache.get("_streamed"):
            msg = "Request body has already been consumed"
            raise BodyConsumedError(msg)
        self._cache["_streamed"] = True

        while True:
            message = await self._receive()
            chunk = message.get("body", b"")
            if chunk:
                yield chunk
            if not message.get("more_body", False):
                break

    async def json(self) -> Any:
        """Parse the body as JSON."""
        import json as json_module

        raw = await self.body()
        return json_module.loads(raw)

    async def text(self) -> str:
        """Read the body as text (UTF-8)."""
        raw = await self.body()
        return raw.decode("utf-8")

    async def form(self, *, config: UploadConfig = DEFAULT_CONFIG) -> FormData:
        """Parse the body as form data (URL-encoded or multipart).

        Result is cached — the body is streamed and parsed once, then
        the same ``FormData`` is returned on subsequent calls. A request
        without a Content-Type is parsed as URL-encoded.

        Raises:
            DecodeError: If Content-Type is not a form encoding or the
                body is malformed.
        """
        if "_form" in self._cache:
            return self._cache["_form"]

        from perch.http.forms import parse_form_data

        ct = self.content_type or "application/x-www-form-urlencoded"
        result = await parse_form_data(self.stream(), ct, config=config)
        self._cache["_form"] = result
        return result

    # -- Factory --

    @classmethod
    def from_asgi(cls, scope: dict[str, Any], receive: Receive) -> Request:
        """Create a Request from an ASGI scope and receive callable."""
        server = scope.get("server")
        client = scope.get("client")
        return cls(
            method=scope["method"],
            path=scope["path"],
            scheme=scope.get("scheme", "http"),
            headers=Headers(tuple(tuple(pair) for pair in scope.get("headers", ()))),
            query=QueryParams(scope.get("query_string", b"")),
            server=tuple(server) if server else None,
            client=tuple(client) if client else None,
            _receive=receive,
        )
