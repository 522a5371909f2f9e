"""Tests for base_address and base_path."""

import pytest

from perch.testing import make_request
from perch.web import base_address, base_path


class TestBaseAddress:
    def test_plain_http(self) -> None:
        req = make_request(headers={"host": "example.com"})
        assert base_address(req) == "http://example.com"

    def test_tls(self) -> None:
        req = make_request(headers={"host": "example.com"}, scheme="https")
        assert base_address(req) == "https://example.com"

    def test_forwarded_headers(self) -> None:
        req = make_request(
            headers={
                "host": "10.0.0.5:8080",
                "x-forwarded-proto": "https",
                "x-forwarded-host": "example.com",
            }
        )
        assert base_address(req) == "https://example.com"

    def test_forwarded_proto_only(self) -> None:
        req = make_request(headers={"host": "example.com", "x-forwarded-proto": "https"})
        assert base_address(req) == "https://example.com"

    def test_falls_back_to_server(self) -> None:
        assert base_address(make_request()) == "http://localhost:8000"


class TestBasePath:
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("", "/"),
            ("/", "/"),
            ("/////", "/"),
            ("\\\\///", "/"),
            ("/api/files/1/download", "download"),
            ("/api/files/", "/"),
            ("download", "download"),
        ],
    )
    def test_base_path(self, path: str, expected: str) -> None:
        assert base_path(path) == expected
