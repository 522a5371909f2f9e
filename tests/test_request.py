"""Tests for the Request type and its body access."""

import pytest

from perch.errors import BodyConsumedError
from perch.http.request import Request
from perch.testing import make_receive, make_request, make_scope


class TestRequestFromASGI:
    def test_basic_fields(self) -> None:
        scope = make_scope(method="POST", path="/users")
        req = Request.from_asgi(scope, make_receive())

        assert req.method == "POST"
        assert req.path == "/users"
        assert req.scheme == "http"
        assert req.server == ("localhost", 8000)
        assert req.client == ("127.0.0.1", 54321)

    def test_headers_and_query(self) -> None:
        scope = make_scope(
            headers=[(b"content-type", b"application/json")],
            query_string=b"page=3",
        )
        req = Request.from_asgi(scope, make_receive())
        assert req.content_type == "application/json"
        assert req.query["page"] == "3"

    def test_scheme_defaults_to_http(self) -> None:
        scope = make_scope()
        del scope["scheme"]
        req = Request.from_asgi(scope, make_receive())
        assert req.scheme == "http"
        assert not req.is_secure

    def test_is_secure(self) -> None:
        req = make_request(scheme="https")
        assert req.is_secure


class TestRequestProperties:
    def test_content_length(self) -> None:
        req = make_request(headers={"content-length": "42"})
        assert req.content_length == 42

    def test_content_length_invalid(self) -> None:
        req = make_request(headers={"content-length": "lots"})
        assert req.content_length is None

    def test_host_header(self) -> None:
        req = make_request(headers={"host": "example.com"})
        assert req.host == "example.com"

    def test_host_falls_back_to_server(self) -> None:
        req = make_request()
        assert req.host == "localhost:8000"

    def test_host_omits_default_port(self) -> None:
        req = make_request(scheme="https", server=("example.com", 443))
        assert req.host == "example.com"

    def test_host_without_server(self) -> None:
        req = make_request(server=None)
        assert req.host == ""


class TestRequestBody:
    @pytest.mark.asyncio
    async def test_body(self) -> None:
        req = make_request("POST", chunks=[b"hello ", b"world"])
        assert await req.body() == b"hello world"

    @pytest.mark.asyncio
    async def test_body_cached(self) -> None:
        req = make_request("POST", body=b"data")
        assert await req.body() == b"data"
        assert await req.body() == b"data"

    @pytest.mark.asyncio
    async def test_stream_after_body_uses_cache(self) -> None:
        req = make_request("POST", body=b"data")
        await req.body()
        assert [chunk async for chunk in req.stream()] == [b"data"]

    @pytest.mark.asyncio
    async def test_second_stream_raises(self) -> None:
        req = make_request("POST", chunks=[b"a", b"b"])
        assert [chunk async for chunk in req.stream()] == [b"a", b"b"]
        with pytest.raises(BodyConsumedError):
            async for _ in req.stream():
                pass

    @pytest.mark.asyncio
    async def test_json(self) -> None:
        req = make_request("POST", body=b'{"a": 1}')
        assert await req.json() == {"a": 1}

    @pytest.mark.asyncio
    async def test_text(self) -> None:
        req = make_request("POST", body="héllo".encode())
        assert await req.text() == "héllo"

    @pytest.mark.asyncio
    async def test_form_cached(self) -> None:
        req = make_request(
            "POST",
            body=b"name=alice",
            headers={"content-type": "application/x-www-form-urlencoded"},
        )
        first = await req.form()
        assert first["name"] == "alice"
        assert await req.form() is first

    @pytest.mark.asyncio
    async def test_form_without_content_type_is_urlencoded(self) -> None:
        req = make_request("POST", body=b"name=bob")
        form = await req.form()
        assert form["name"] == "bob"
