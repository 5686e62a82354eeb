"""Tests for cover validation and storage key derivation."""

import base64
import re

import pytest

from bookcatalog.core.errors import InvalidType, TooLarge
from bookcatalog.core.uploads import (
    KEY_PREFIX,
    MAX_UPLOAD_BYTES,
    LocalFile,
    next_timestamp_ms,
    preview_url,
    sanitize_filename,
    storage_key,
    validate_image,
)

KEY_PATTERN = re.compile(r"^book-covers/\d{13,}-[A-Za-z0-9._-]+$")


class TestValidateImage:
    def test_accepts_image_at_exact_limit(self):
        validate_image("image/png", MAX_UPLOAD_BYTES)

    def test_rejects_one_byte_over_limit(self):
        with pytest.raises(TooLarge) as exc:
            validate_image("image/png", MAX_UPLOAD_BYTES + 1)
        assert exc.value.reason == "TooLarge"

    def test_limit_is_five_mebibytes(self):
        assert MAX_UPLOAD_BYTES == 5 * 1024 * 1024

    @pytest.mark.parametrize("content_type", ["text/plain", "application/pdf", "", None])
    def test_rejects_non_image_types(self, content_type):
        with pytest.raises(InvalidType):
            validate_image(content_type, 10)

    def test_type_checked_before_size(self):
        with pytest.raises(InvalidType):
            validate_image("application/zip", MAX_UPLOAD_BYTES * 2)


class TestStorageKey:
    @pytest.mark.parametrize(
        "name",
        [
            "cover.jpg",
            "my cover (final).png",
            "ünïcødé.jpeg",
            "../../etc/passwd",
            "a/b\\c.gif",
            "emoji-📚.webp",
            "semi;colon&amp.jpg",
        ],
    )
    def test_keys_only_contain_safe_characters(self, name):
        key = storage_key(name)
        assert KEY_PATTERN.match(key), key
        assert key.count("/") == 1

    def test_sanitize_replaces_each_unsafe_character(self):
        assert sanitize_filename("my cover (1).jpg") == "my_cover__1_.jpg"
        assert sanitize_filename("keep-this_name.v2.png") == "keep-this_name.v2.png"

    def test_explicit_timestamp(self):
        assert storage_key("Dune cover.jpg", 1700000000123) == f"{KEY_PREFIX}/1700000000123-Dune_cover.jpg"

    def test_same_filename_in_a_burst_never_collides(self):
        keys = {storage_key("cover.jpg") for _ in range(500)}
        assert len(keys) == 500

    def test_timestamps_strictly_increase(self):
        stamps = [next_timestamp_ms() for _ in range(200)]
        assert all(b > a for a, b in zip(stamps, stamps[1:]))


class TestLocalFile:
    def test_from_path_guesses_type(self, tmp_path):
        path = tmp_path / "cover.png"
        path.write_bytes(b"\x89PNG....")
        file = LocalFile.from_path(path)
        assert file.content_type == "image/png"
        assert file.size == 8
        assert file.name == "cover.png"

    def test_from_path_unknown_type(self, tmp_path):
        path = tmp_path / "notes"
        path.write_bytes(b"hello")
        assert LocalFile.from_path(path).content_type == "application/octet-stream"

    def test_preview_is_inline_data_url(self):
        file = LocalFile(name="c.jpg", content_type="image/jpeg", data=b"abc")
        url = preview_url(file)
        assert url == "data:image/jpeg;base64," + base64.b64encode(b"abc").decode()
