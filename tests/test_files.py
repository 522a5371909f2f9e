"""Tests for file extraction, UploadedFile lifetime, and FilePolicy."""

import hashlib
import io
import os
from dataclasses import dataclass
from pathlib import Path

import pytest

from perch.config import UploadConfig
from perch.errors import DecodeError
from perch.files import (
    FilePolicy,
    UploadedFile,
    human_size,
    unmarshal_file,
    unmarshal_files,
    unmarshal_form_with_file,
    unmarshal_form_with_files,
)
from perch.testing import encode_multipart, make_request
from perch.validation import ValidationErrors

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
PDF = b"%PDF-1.7\n" + b"x" * 64


@dataclass
class Caption:
    caption: str = ""
    album: int = 0


def _multipart_request(fields=None, files=None, *, query: str = ""):
    body, ct = encode_multipart(fields, files)
    return make_request("POST", "/upload", headers={"content-type": ct}, body=body, query=query)


class TestHumanSize:
    @pytest.mark.parametrize(
        ("n", "expected"),
        [
            (0, "0 B"),
            (1023, "1023 B"),
            (1024, "1 KB"),
            (1536, "1 KB"),
            (1048576, "1 MB"),
            (5 * 1024**3, "5 GB"),
            (1024**5, "1 PB"),
            (2048 * 1024**5, "2048 PB"),
        ],
    )
    def test_sizes(self, n: int, expected: str) -> None:
        assert human_size(n) == expected


class TestUnmarshalFileMultipart:
    @pytest.mark.asyncio
    async def test_extracts_part(self) -> None:
        req = _multipart_request(files={"avatar": ("me.png", PNG, "image/png")})
        file = await unmarshal_file("avatar", req)

        assert file is not None
        assert file.field == "avatar"
        assert file.filename == "me.png"
        assert file.content_type == "image/png"
        assert file.type == "image/png"
        assert file.size == len(PNG)
        assert file.path is None
        assert file.read() == PNG

    @pytest.mark.asyncio
    async def test_absent_field(self) -> None:
        req = _multipart_request({"title": "no file here"})
        assert await unmarshal_file("avatar", req) is None

    @pytest.mark.asyncio
    async def test_unfilled_file_input(self) -> None:
        body = (
            b'--B\r\nContent-Disposition: form-data; name="avatar"; filename=""\r\n'
            b"Content-Type: application/octet-stream\r\n\r\n\r\n--B--\r\n"
        )
        req = make_request("POST", headers={"content-type": "multipart/form-data; boundary=B"}, body=body)
        assert await unmarshal_file("avatar", req) is None

    @pytest.mark.asyncio
    async def test_first_of_many(self) -> None:
        req = _multipart_request(files={"doc": [("a.pdf", PDF, "application/pdf"), ("b.png", PNG, "image/png")]})
        file = await unmarshal_file("doc", req)
        assert file is not None
        assert file.filename == "a.pdf"

    @pytest.mark.asyncio
    async def test_sniffed_type_ignores_declared(self) -> None:
        req = _multipart_request(files={"avatar": ("me.png", PDF, "image/png")})
        file = await unmarshal_file("avatar", req)
        assert file is not None
        assert file.type == "application/pdf"
        assert file.content_type == "image/png"


class TestUnmarshalFileBody:
    @pytest.mark.asyncio
    async def test_body_is_file(self) -> None:
        req = make_request("PUT", headers={"content-type": "image/png"}, chunks=[PNG[:10], PNG[10:]])
        file = await unmarshal_file("avatar", req)

        assert file is not None
        assert file.type == "image/png"
        assert file.content_type == "image/png"
        assert file.size == len(PNG)
        assert file.path is None
        assert file.read() == PNG

    @pytest.mark.asyncio
    async def test_empty_body(self) -> None:
        assert await unmarshal_file("avatar", make_request("PUT")) is None

    @pytest.mark.asyncio
    async def test_spills_to_disk(self, tmp_path: Path) -> None:
        config = UploadConfig(max_memory=1024, temp_dir=tmp_path)
        data = PDF + b"y" * 4000
        req = make_request("PUT", chunks=[data[i : i + 500] for i in range(0, len(data), 500)])

        file = await unmarshal_file("doc", req, config=config)

        assert file is not None
        assert file.on_disk
        assert file.path is not None
        assert Path(file.path).parent == tmp_path
        assert Path(file.path).name.startswith("perch-file-")
        assert file.size == len(data)
        assert file.type == "application/pdf"
        assert file.read() == data

        with file:
            pass
        assert file.closed
        assert not os.path.exists(file.path)

    @pytest.mark.asyncio
    async def test_exactly_max_memory_stays_in_memory(self) -> None:
        config = UploadConfig(max_memory=128)
        file = await unmarshal_file("doc", make_request("PUT", body=b"a" * 128), config=config)
        assert file is not None
        assert file.path is None
        assert file.size == 128

    @pytest.mark.asyncio
    async def test_large_upload_round_trips(self, tmp_path: Path) -> None:
        chunk = os.urandom(1 << 20)
        chunks = [chunk] * 33
        expected = hashlib.sha256(b"".join(chunks)).hexdigest()
        req = make_request("PUT", chunks=chunks)

        file = await unmarshal_file("blob", req, config=UploadConfig(temp_dir=tmp_path))

        assert file is not None
        with file:
            assert file.on_disk
            assert file.size == 33 << 20
            digest = hashlib.sha256()
            while block := file.read(1 << 16):
                digest.update(block)
            assert digest.hexdigest() == expected
        assert list(tmp_path.iterdir()) == []


class TestUnmarshalFiles:
    @pytest.mark.asyncio
    async def test_all_parts(self) -> None:
        req = _multipart_request(files={"docs": [("a.pdf", PDF, "application/pdf"), ("b.png", PNG, "image/png")]})
        files = await unmarshal_files("docs", req)
        assert [f.type for f in files] == ["application/pdf", "image/png"]
        assert [f.filename for f in files] == ["a.pdf", "b.png"]

    @pytest.mark.asyncio
    async def test_absent(self) -> None:
        assert await unmarshal_files("docs", _multipart_request({"a": "b"})) == []

    @pytest.mark.asyncio
    async def test_requires_multipart(self) -> None:
        with pytest.raises(DecodeError, match="invalid request type"):
            await unmarshal_files("docs", make_request("PUT", body=PDF))


class TestUnmarshalFormWithFile:
    @pytest.mark.asyncio
    async def test_multipart(self) -> None:
        req = _multipart_request({"caption": "Me", "album": "4"}, {"photo": ("me.png", PNG, "image/png")})
        form = Caption()
        file = await unmarshal_form_with_file(form, "photo", req)
        assert file is not None
        assert file.type == "image/png"
        assert form == Caption(caption="Me", album=4)

    @pytest.mark.asyncio
    async def test_body_file_uses_query(self) -> None:
        req = make_request("PUT", body=PNG, query="caption=Me&album=2")
        form = Caption()
        file = await unmarshal_form_with_file(form, "photo", req)
        assert file is not None
        assert file.size == len(PNG)
        assert form == Caption(caption="Me", album=2)

    @pytest.mark.asyncio
    async def test_decode_failure_removes_file(self, tmp_path: Path) -> None:
        config = UploadConfig(max_memory=16, temp_dir=tmp_path)
        req = make_request("PUT", body=PDF, query="album=many")
        with pytest.raises(ValidationErrors) as exc_info:
            await unmarshal_form_with_file(Caption(), "photo", req, config=config)
        assert exc_info.value == {"album": ["cannot convert 'many' to int"]}
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_with_files(self) -> None:
        req = _multipart_request(
            {"caption": "Trip"},
            {"photos": [("1.png", PNG, "image/png"), ("2.png", PNG, "image/png")]},
        )
        form = Caption()
        files = await unmarshal_form_with_files(form, "photos", req)
        assert len(files) == 2
        assert form.caption == "Trip"


class TestUploadedFile:
    def test_remove_in_memory_is_noop(self) -> None:
        file = UploadedFile(field="f", file=io.BytesIO(b"x"), size=1, type="text/plain")
        file.remove()
        file.remove()
        assert file.closed

    def test_remove_idempotent(self, tmp_path: Path) -> None:
        path = tmp_path / "upload"
        path.write_bytes(b"data")
        file = UploadedFile(field="f", file=path.open("rb"), size=4, type="text/plain", path=str(path))
        file.remove()
        assert not path.exists()
        file.remove()

    def test_seek_and_tell(self) -> None:
        file = UploadedFile(field="f", file=io.BytesIO(b"abc"), size=3, type="text/plain")
        assert file.read(2) == b"ab"
        assert file.tell() == 2
        file.seek(0)
        assert file.read() == b"abc"


class TestFilePolicy:
    def _file(self, data: bytes, size: int | None = None) -> UploadedFile:
        from perch.http.sniff import sniff_content_type

        return UploadedFile(
            field="avatar",
            file=io.BytesIO(data),
            size=len(data) if size is None else size,
            type=sniff_content_type(data),
        )

    def test_too_big(self) -> None:
        errs = FilePolicy(max_size=1024).check("avatar", self._file(PNG, size=2048))
        assert errs == {"avatar": ["avatar cannot be bigger than 1 KB"]}

    def test_within_size(self) -> None:
        assert FilePolicy(max_size=1024).check("avatar", self._file(PNG)) is None

    def test_unlimited(self) -> None:
        assert FilePolicy().check("avatar", self._file(PNG, size=1 << 40)) is None

    def test_allowed_type(self) -> None:
        policy = FilePolicy.allowing("image/png", "image/jpeg")
        assert policy.check("avatar", self._file(PNG)) is None

    def test_type_not_allowed(self) -> None:
        policy = FilePolicy.allowing("image/png", "image/jpeg")
        errs = policy.check("avatar", self._file(PDF))
        assert errs == {"avatar": ["avatar must be one of image/png, image/jpeg"]}

    def test_denied_type(self) -> None:
        policy = FilePolicy.denying("application/pdf")
        errs = policy.check("avatar", self._file(PDF))
        assert errs == {"avatar": ["avatar cannot be one of application/pdf"]}

    def test_not_denied(self) -> None:
        assert FilePolicy.denying("application/pdf").check("avatar", self._file(PNG)) is None

    def test_media_type_matches_parameterised(self) -> None:
        text = self._file(b"plain words")
        assert text.type == "text/plain; charset=utf-8"
        assert FilePolicy.allowing("text/plain").check("notes", text) is None

    def test_size_and_type_both_reported(self) -> None:
        policy = FilePolicy.allowing("image/png", max_size=10)
        errs = policy.check("avatar", self._file(PDF))
        assert errs is not None
        assert len(errs["avatar"]) == 2

    def test_required_missing(self) -> None:
        errs = FilePolicy(required=True).check("avatar", None)
        assert errs == {"avatar": ["field is required"]}

    def test_optional_missing(self) -> None:
        assert FilePolicy.allowing("image/png").check("avatar", None) is None
