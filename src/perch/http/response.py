"""HTTP responses — an immutable value plus HTML, text and JSON writers.

Each ``.with_*()`` transformation returns a new Response::

    return json({"id": post.id}, status=201).with_header("Location", url)

``send_response`` in ``perch.http.sender`` turns one into ASGI messages.
"""

from __future__ import annotations

import json as json_module
import logging
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

logger = logging.getLogger("perch.response")

HTML_CONTENT_TYPE = "text/html; charset=utf-8"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"
JSON_CONTENT_TYPE = "application/json; charset=utf-8"


@dataclass(frozen=True, slots=True)
class Response:
    """An HTTP response built through immutable transformations."""

    body: str | bytes = ""
    status: int = 200
    content_type: str = HTML_CONTENT_TYPE
    headers: tuple[tuple[str, str], ...] = ()

    # -- Chainable transformations --

    def with_status(self, status: int) -> Response:
        """Return a new Response with a different status code."""
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> Response:
        """Return a new Response with an additional header."""
        return replace(self, headers=(*self.headers, (name, value)))

    def with_headers(self, headers: Mapping[str, str]) -> Response:
        """Return a new Response with additional headers."""
        return replace(self, headers=(*self.headers, *headers.items()))

    def with_content_type(self, content_type: str) -> Response:
        """Return a new Response with a different content type."""
        return replace(self, content_type=content_type)

    # -- Body helpers --

    @property
    def body_bytes(self) -> bytes:
        """Body as bytes."""
        if isinstance(self.body, str):
            return self.body.encode("utf-8")
        return self.body

    @property
    def text(self) -> str:
        """Body as string."""
        if isinstance(self.body, bytes):
            return self.body.decode("utf-8")
        return self.body

    @property
    def content_length(self) -> int:
        """Length of the encoded body in bytes."""
        return len(self.body_bytes)


def html(content: str | bytes, status: int = 200) -> Response:
    """An HTML response."""
    return Response(body=content, status=status, content_type=HTML_CONTENT_TYPE)


def text(content: str | bytes, status: int = 200) -> Response:
    """A plain text response."""
    return Response(body=content, status=status, content_type=TEXT_CONTENT_TYPE)


def _json_default(value: Any) -> Any:
    # ValidationErrors and other read-only mappings serialize as objects.
    if isinstance(value, Mapping):
        return dict(value)
    if isinstance(value, set | frozenset | tuple):
        return list(value)
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def json(data: Any, status: int = 200) -> Response:
    """A JSON response, newline terminated.

    If *data* cannot be serialized the failure is logged and the
    response is sent with an empty body and the requested status.
    """
    try:
        body = json_module.dumps(data, default=_json_default) + "\n"
    except (TypeError, ValueError) as e:
        logger.warning("failed to encode JSON response: %s", e)
        body = ""
    return Response(body=body, status=status, content_type=JSON_CONTENT_TYPE)
