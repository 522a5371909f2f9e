"""Tests for Response and the HTML, text and JSON writers."""

import logging

import pytest

from perch.http.response import (
    HTML_CONTENT_TYPE,
    JSON_CONTENT_TYPE,
    TEXT_CONTENT_TYPE,
    Response,
    html,
    json,
    text,
)
from perch.validation import ValidationErrors


class TestResponse:
    def test_defaults(self) -> None:
        r = Response()
        assert r.status == 200
        assert r.content_type == HTML_CONTENT_TYPE
        assert r.headers == ()

    def test_with_status_returns_new(self) -> None:
        r = Response("ok")
        r2 = r.with_status(201)
        assert r.status == 200
        assert r2.status == 201
        assert r2.body == "ok"

    def test_with_header_appends(self) -> None:
        r = Response().with_header("X-A", "1").with_header("X-A", "2")
        assert r.headers == (("X-A", "1"), ("X-A", "2"))

    def test_with_headers(self) -> None:
        r = Response().with_headers({"X-A": "1", "X-B": "2"})
        assert dict(r.headers) == {"X-A": "1", "X-B": "2"}

    def test_body_bytes_and_text(self) -> None:
        r = Response("héllo")
        assert r.body_bytes == "héllo".encode()
        assert r.text == "héllo"
        assert r.content_length == 6

    def test_frozen(self) -> None:
        with pytest.raises(AttributeError):
            Response().status = 500  # type: ignore[misc]


class TestWriters:
    def test_html(self) -> None:
        r = html("<p>hi</p>", status=201)
        assert r.status == 201
        assert r.content_type == HTML_CONTENT_TYPE
        assert r.text == "<p>hi</p>"

    def test_text(self) -> None:
        r = text("plain")
        assert r.status == 200
        assert r.content_type == TEXT_CONTENT_TYPE
        assert r.content_length == 5

    def test_json_trailing_newline(self) -> None:
        r = json({"ok": True})
        assert r.content_type == JSON_CONTENT_TYPE
        assert r.text == '{"ok": true}\n'

    def test_json_validation_errors(self) -> None:
        errs = ValidationErrors({"title": ["field is required"]})
        r = json(errs, status=422)
        assert r.status == 422
        assert r.text == '{"title": ["field is required"]}\n'

    def test_json_unserialisable_sends_empty_body(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="perch.response"):
            r = json({"when": object()}, status=500)
        assert r.status == 500
        assert r.body == ""
        assert r.content_length == 0
        assert "failed to encode JSON response" in caplog.text
