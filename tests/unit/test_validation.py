"""Tests for upload type and size validation."""

import pytest

from assetdrm.utils.media_io import MediaFile
from assetdrm.utils import validation


def _file(name, content_type="", size=10):
    return MediaFile(data=b"\x00" * size, filename=name, content_type=content_type)


class TestValidateFileType:
    """Match files against the rules for each media type."""

    def test_no_file(self):
        result = validation.validate_file_type(None, "audio")
        assert not result.is_valid
        assert result.error == "No file selected"

    def test_unknown_media_type(self):
        result = validation.validate_file_type(_file("a.mp3"), "podcast")
        assert not result.is_valid
        assert "Unknown media type" in result.error

    @pytest.mark.parametrize("name,content_type,tag", [
        ("song.mp3", "audio/mpeg", "audio"),
        ("song.MP3", "", "audio"),
        ("hit.wav", "audio/wav", "sfx"),
        ("photo.jpg", "image/jpeg", "visual"),
        ("clip.mov", "video/quicktime", "visual"),
        ("blast.mp4", "video/mp4", "vfx"),
        ("comp.aep", "", "vfx"),
        ("ship.glb", "", "3d"),
        ("ship.obj", "text/plain", "3d"),
    ])
    def test_accepted(self, name, content_type, tag):
        assert validation.validate_file_type(_file(name, content_type), tag).is_valid

    def test_mismatch_message(self):
        result = validation.validate_file_type(_file("photo.jpg", "image/jpeg"), "audio")
        assert not result.is_valid
        assert result.error.startswith("File type mismatch! Expected Audio files")
        assert "Got: .jpg" in result.error

    def test_3d_checks_extension_only(self):
        result = validation.validate_file_type(_file("ship.zip", "model/gltf-binary"), "3d")
        assert not result.is_valid
        assert result.error.startswith("Invalid 3D model format")

    def test_mime_family_match(self):
        """An audio MIME type is accepted for audio even with an odd extension."""
        assert validation.validate_file_type(_file("take1.bin", "audio/x-aiff"), "audio").is_valid


class TestValidateFileSize:
    def test_limits(self):
        media = _file("a.wav", size=2 * 1024 * 1024)
        assert validation.validate_file_size(media, 2).is_valid
        result = validation.validate_file_size(media, 1)
        assert not result.is_valid
        assert result.error == "File too large! Maximum size is 1MB. Your file is 2.00MB."

    def test_validate_file_checks_type_first(self):
        media = _file("a.txt", size=5 * 1024 * 1024)
        result = validation.validate_file(media, "audio", max_size_mb=1)
        assert "mismatch" in result.error


class TestAcceptAttributes:
    def test_accepted_file_types(self):
        accept = validation.accepted_file_types("3d")
        assert ".glb" in accept.split(",")
        assert validation.accepted_file_types("unknown") == "*/*"

    def test_supported_formats_description(self):
        assert validation.supported_formats_description("sfx").startswith("Supported: .MP3, .WAV")
        assert validation.supported_formats_description(None) == "All formats"
