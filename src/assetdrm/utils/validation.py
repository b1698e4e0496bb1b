"""Upload validation: does a file match the media type the creator declared?"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from .media_io import MediaFile, MediaTypeTag

_AUDIO_MIME = [
    "audio/mpeg",
    "audio/wav",
    "audio/wave",
    "audio/x-wav",
    "audio/ogg",
    "audio/aac",
    "audio/flac",
    "audio/x-flac",
    "audio/mp4",
    "audio/x-m4a",
]


@dataclass(frozen=True)
class MediaRule:
    mime_types: List[str]
    extensions: List[str]
    label: str


MEDIA_TYPE_RULES: Dict[MediaTypeTag, MediaRule] = {
    MediaTypeTag.AUDIO: MediaRule(
        mime_types=_AUDIO_MIME + ["audio/webm"],
        extensions=[".mp3", ".wav", ".ogg", ".aac", ".flac", ".m4a", ".webm"],
        label="Audio files",
    ),
    MediaTypeTag.VISUAL: MediaRule(
        mime_types=[
            "image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml",
            "image/bmp", "image/tiff",
            "video/mp4", "video/webm", "video/ogg", "video/quicktime", "video/x-msvideo",
        ],
        extensions=[".jpg", ".jpeg", ".png", ".gif", ".webp", ".svg", ".bmp", ".tiff",
                    ".mp4", ".webm", ".ogv", ".mov", ".avi"],
        label="Images and videos",
    ),
    MediaTypeTag.VFX: MediaRule(
        mime_types=["video/mp4", "video/webm", "video/quicktime", "video/x-msvideo",
                    "video/ogg", "application/x-aftereffects"],
        extensions=[".mp4", ".webm", ".mov", ".avi", ".ogv", ".aep"],
        label="VFX and video effects",
    ),
    MediaTypeTag.SFX: MediaRule(
        mime_types=list(_AUDIO_MIME),
        extensions=[".mp3", ".wav", ".ogg", ".aac", ".flac", ".m4a"],
        label="Sound effects",
    ),
    MediaTypeTag.THREE_D: MediaRule(
        mime_types=["model/gltf-binary", "model/gltf+json", "application/octet-stream", "text/plain"],
        extensions=[".glb", ".gltf", ".fbx", ".obj", ".stl", ".blend"],
        label="3D models",
    ),
}


@dataclass(frozen=True)
class ValidationResult:
    is_valid: bool
    error: Optional[str] = None


def validate_file_type(media: Optional[MediaFile], media_type: Union[MediaTypeTag, str, None]) -> ValidationResult:
    """Check a file against the accepted MIME types and extensions of its tag.

    3D models are checked by extension only since browsers rarely report a
    useful MIME type for them. Other tags accept a match on either.
    """
    if media is None:
        return ValidationResult(False, "No file selected")

    tag = MediaTypeTag.parse(media_type)
    if tag is None:
        return ValidationResult(False, f"Unknown media type: {media_type}")
    rule = MEDIA_TYPE_RULES[tag]

    name = media.filename.lower()
    extension = name[name.rfind("."):] if "." in name else ""
    extension_matches = any(name.endswith(ext) for ext in rule.extensions)

    if tag is MediaTypeTag.THREE_D:
        if extension_matches:
            return ValidationResult(True)
        return ValidationResult(
            False,
            f"Invalid 3D model format. Expected {', '.join(rule.extensions)}. Got: {extension or 'unknown'}",
        )

    content_type = (media.content_type or "").lower()
    mime_matches = bool(content_type) and any(
        content_type == mime or content_type.startswith(mime.split("/")[0] + "/")
        for mime in rule.mime_types
    )
    if extension_matches or mime_matches:
        return ValidationResult(True)

    expected = ", ".join(rule.extensions[:5])
    more = f" and {len(rule.extensions) - 5} more" if len(rule.extensions) > 5 else ""
    return ValidationResult(
        False,
        f"File type mismatch! Expected {rule.label} ({expected}{more}). "
        f"Got: {extension or content_type or 'unknown'}",
    )


def validate_file_size(media: MediaFile, max_size_mb: float = 500) -> ValidationResult:
    max_bytes = max_size_mb * 1024 * 1024
    if media.size > max_bytes:
        size_mb = media.size / 1024 / 1024
        return ValidationResult(
            False,
            f"File too large! Maximum size is {max_size_mb}MB. Your file is {size_mb:.2f}MB.",
        )
    return ValidationResult(True)


def validate_file(
    media: Optional[MediaFile],
    media_type: Union[MediaTypeTag, str, None],
    max_size_mb: Optional[float] = None,
) -> ValidationResult:
    """Type check first, then the size limit when one is given."""
    result = validate_file_type(media, media_type)
    if not result.is_valid:
        return result
    if max_size_mb is not None:
        return validate_file_size(media, max_size_mb)
    return result


def accepted_file_types(media_type: Union[MediaTypeTag, str, None]) -> str:
    """Value for an HTML file input's ``accept`` attribute."""
    tag = MediaTypeTag.parse(media_type)
    if tag is None:
        return "*/*"
    rule = MEDIA_TYPE_RULES[tag]
    return ",".join(rule.mime_types + rule.extensions)


def supported_formats_description(media_type: Union[MediaTypeTag, str, None]) -> str:
    tag = MediaTypeTag.parse(media_type)
    if tag is None:
        return "All formats"
    return f"Supported: {', '.join(MEDIA_TYPE_RULES[tag].extensions).upper()}"
