"""
Upload helper tests: checksums, type detection, names, URLs and id parsing.
"""
from __future__ import annotations

import hashlib
import uuid

import pytest

from blogfiles.core.exceptions import InvalidIdentifierException
from blogfiles.models.uploaded_file import FileType
from blogfiles.services.file_utils import (
    build_file_url,
    compute_checksum,
    file_type_from_mime,
    generate_storage_filename,
    parse_identifier,
    storage_location,
)


class TestChecksum:
    def test_md5_hex_digest(self) -> None:
        assert compute_checksum(b"hello") == hashlib.md5(b"hello").hexdigest()

    def test_same_content_same_checksum(self) -> None:
        assert compute_checksum(b"x" * 100) == compute_checksum(b"x" * 100)


class TestFileTypeFromMime:
    @pytest.mark.parametrize(
        ("mime", "expected"),
        [
            ("image/png", FileType.IMAGE),
            ("IMAGE/JPEG", FileType.IMAGE),
            ("video/mp4", FileType.VIDEO),
            ("audio/mpeg", FileType.AUDIO),
            ("application/pdf", FileType.PDF),
            ("application/pdf; charset=binary", FileType.PDF),
            ("text/plain", FileType.DOCUMENT),
            ("application/octet-stream", FileType.DOCUMENT),
        ],
    )
    def test_mapping(self, mime: str, expected: FileType) -> None:
        assert file_type_from_mime(mime) == expected


class TestNamesAndUrls:
    def test_storage_filename_keeps_lowercased_extension(self) -> None:
        name = generate_storage_filename("Holiday Photo.JPG")
        assert name.endswith(".jpg")
        assert " " not in name

    def test_storage_filenames_are_unique(self) -> None:
        assert generate_storage_filename("a.png") != generate_storage_filename("a.png")

    def test_storage_filename_without_extension(self) -> None:
        assert "." not in generate_storage_filename("README")

    def test_storage_location(self) -> None:
        file_id = uuid.uuid4()
        assert storage_location(file_id, "x.png") == f"{file_id}/x.png"

    def test_api_url_by_default(self) -> None:
        file_id = uuid.uuid4()
        assert build_file_url(file_id) == f"/api/v1/files/{file_id}/content"

    def test_absolute_url_is_kept(self) -> None:
        url = "https://cdn.example.com/a.png"
        assert build_file_url(uuid.uuid4(), url) == url


class TestParseIdentifier:
    def test_uuid_passthrough(self) -> None:
        value = uuid.uuid4()
        assert parse_identifier(value) is value

    def test_string_uuid(self) -> None:
        value = uuid.uuid4()
        assert parse_identifier(str(value)) == value

    @pytest.mark.parametrize("value", ["not-a-valid-id", "", "123"])
    def test_malformed_rejected(self, value: str) -> None:
        with pytest.raises(InvalidIdentifierException) as exc_info:
            parse_identifier(value)
        assert exc_info.value.value == value
        assert exc_info.value.status_code == 400
