"""Tests for send_response."""

import pytest

from perch.http.response import Response, json
from perch.http.sender import send_response
from perch.testing import SentResponse


class TestSendResponse:
    @pytest.mark.asyncio
    async def test_200_preserves_body(self) -> None:
        sent = SentResponse()
        await send_response(Response("ok"), sent)

        assert sent.messages[0]["type"] == "http.response.start"
        assert sent.status == 200
        assert sent.headers["content-length"] == "2"
        assert sent.headers["content-type"] == "text/html; charset=utf-8"
        assert sent.messages[1]["type"] == "http.response.body"
        assert sent.body == b"ok"

    @pytest.mark.asyncio
    async def test_custom_headers_lowercased(self) -> None:
        sent = SentResponse()
        await send_response(Response("ok").with_header("X-Request-Id", "abc"), sent)
        assert sent.headers["x-request-id"] == "abc"

    @pytest.mark.asyncio
    async def test_content_length_counts_bytes(self) -> None:
        sent = SentResponse()
        await send_response(json({"name": "é"}), sent)
        assert sent.headers["content-length"] == str(len(sent.body))

    @pytest.mark.asyncio
    async def test_content_length_header_not_duplicated(self) -> None:
        sent = SentResponse()
        await send_response(Response("ok").with_header("Content-Length", "99"), sent)
        names = [name for name, _ in sent.messages[0]["headers"]]
        assert names.count(b"content-length") == 1
        assert sent.headers["content-length"] == "2"

    @pytest.mark.asyncio
    async def test_204_drops_body(self) -> None:
        sent = SentResponse()
        await send_response(Response("unexpected-body").with_status(204), sent)
        assert sent.headers["content-length"] == "0"
        assert sent.body == b""

    @pytest.mark.asyncio
    async def test_304_drops_body(self) -> None:
        sent = SentResponse()
        await send_response(Response("unexpected-body").with_status(304), sent)
        assert sent.body == b""
