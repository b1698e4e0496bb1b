from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from ..utils.media_io import MediaFile, MediaTypeTag


@dataclass(frozen=True)
class FallbackReason:
    """Why a generator could not produce a degraded preview."""

    generator: str
    message: str
    error_type: str = ""

    def __str__(self) -> str:
        return f"{self.generator}: {self.message}"


@dataclass(frozen=True)
class PreviewArtifact:
    """A public, degraded derivative of a master file."""

    data: bytes
    mime_type: str
    filename: str
    media_type: MediaTypeTag
    width: Optional[int] = None
    height: Optional[int] = None
    duration: Optional[float] = None
    placeholder: bool = False
    fallback: Optional[FallbackReason] = None

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def is_passthrough(self) -> bool:
        """True when generation failed and the original file is used as preview."""
        return self.fallback is not None

    @classmethod
    def passthrough(cls, media: MediaFile, media_type: MediaTypeTag, reason: FallbackReason) -> "PreviewArtifact":
        return cls(
            data=media.data,
            mime_type=media.content_type or "application/octet-stream",
            filename=media.filename,
            media_type=media_type,
            fallback=reason,
        )


PreviewResult = Union[PreviewArtifact, FallbackReason]


def preview_filename(media: MediaFile, extension: str) -> str:
    return f"preview_{media.stem}{extension}"
