from __future__ import annotations

import logging
import mimetypes
import os
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Literal, Optional, Union

from ..errors import MediaReadError

LOGGER = logging.getLogger(__name__)

PreviewFamily = Literal["image", "audio", "video", "model"]

OCTET_STREAM = "application/octet-stream"


class MediaTypeTag(str, Enum):
    """Media type family chosen by the creator at upload time."""

    AUDIO = "audio"
    VISUAL = "visual"
    VFX = "vfx"
    SFX = "sfx"
    THREE_D = "3d"

    @classmethod
    def parse(cls, value: Union["MediaTypeTag", str, None]) -> Optional["MediaTypeTag"]:
        """Parse a user-supplied tag. Returns None for empty or unknown values."""
        if value is None:
            return None
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        return _TAG_ALIASES.get(text)


_TAG_ALIASES: Dict[str, MediaTypeTag] = {
    "audio": MediaTypeTag.AUDIO,
    "music": MediaTypeTag.AUDIO,
    "visual": MediaTypeTag.VISUAL,
    "image": MediaTypeTag.VISUAL,
    "vfx": MediaTypeTag.VFX,
    "video": MediaTypeTag.VFX,
    "sfx": MediaTypeTag.SFX,
    "3d": MediaTypeTag.THREE_D,
    "three_d": MediaTypeTag.THREE_D,
    "model": MediaTypeTag.THREE_D,
}

# Used when decrypting an asset whose stored metadata carries no MIME type.
MIME_FALLBACKS: Dict[MediaTypeTag, str] = {
    MediaTypeTag.AUDIO: "audio/mpeg",
    MediaTypeTag.VISUAL: "image/png",
    MediaTypeTag.VFX: "video/mp4",
    MediaTypeTag.SFX: "audio/wav",
}

MODEL_MIME_TYPES: Dict[str, str] = {
    ".glb": "model/gltf-binary",
    ".gltf": "model/gltf+json",
    ".obj": "model/obj",
    ".stl": "model/stl",
    ".fbx": "application/x-fbx",
    ".blend": "application/x-blender",
}


@dataclass(frozen=True)
class MediaFile:
    """An uploaded file: raw bytes plus the name and MIME type the browser declared."""

    data: bytes
    filename: str
    content_type: str = ""

    @property
    def size(self) -> int:
        return len(self.data)

    @property
    def stem(self) -> str:
        return Path(self.filename).stem or "asset"

    @property
    def suffix(self) -> str:
        return Path(self.filename).suffix.lower()

    @classmethod
    def from_path(cls, path: Union[str, Path], content_type: Optional[str] = None) -> "MediaFile":
        p = Path(path)
        try:
            data = p.read_bytes()
        except OSError as e:
            raise MediaReadError(f"Cannot read {p}: {e}") from e
        if content_type is None:
            content_type = mimetypes.guess_type(p.name)[0] or ""
        return cls(data=data, filename=p.name, content_type=content_type)


def _sniff_magic(data: bytes) -> Optional[str]:
    head = data[:64]
    if head.startswith(b"\xff\xd8\xff"):
        return "image/jpeg"
    if head.startswith(b"\x89PNG\r\n\x1a\n"):
        return "image/png"
    if head[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    if head.startswith(b"BM") and len(head) >= 14:
        return "image/bmp"
    if head[:4] in (b"II*\x00", b"MM\x00*"):
        return "image/tiff"
    if head.startswith(b"RIFF") and len(head) >= 12:
        form = head[8:12]
        if form == b"WEBP":
            return "image/webp"
        if form == b"WAVE":
            return "audio/wav"
        if form == b"AVI ":
            return "video/x-msvideo"
    if head.startswith(b"glTF"):
        return "model/gltf-binary"
    if head.startswith(b"ID3"):
        return "audio/mpeg"
    if head.startswith(b"OggS"):
        return "audio/ogg"
    if head.startswith(b"fLaC"):
        return "audio/flac"
    if head.startswith(b"\x1a\x45\xdf\xa3"):
        return "video/webm"
    if len(head) >= 12 and head[4:8] == b"ftyp":
        brand = head[8:12]
        if brand in (b"M4A ", b"M4B ", b"M4P "):
            return "audio/mp4"
        if brand == b"qt  ":
            return "video/quicktime"
        return "video/mp4"
    return None


def _mpeg_frame_sync(data: bytes) -> bool:
    # 11 sync bits plus a non-reserved layer
    return len(data) >= 2 and data[0] == 0xFF and (data[1] & 0xE0) == 0xE0 and bool(data[1] & 0x06)


def sniff_mime(
    data: bytes,
    filename: str = "",
    declared_tag: Union[MediaTypeTag, str, None] = None,
) -> Optional[str]:
    """Best-effort MIME type from content, then from the file extension.

    A file declared as 3D with a model extension stays a model unless its
    content is unmistakably an image or video. Audio signatures are too
    short to outrank that declaration, and a bare MPEG frame sync is only
    used when the extension says nothing.
    """
    sniffed = _sniff_magic(data)
    suffix = Path(filename).suffix.lower()
    model_mime = MODEL_MIME_TYPES.get(suffix)
    if sniffed and model_mime and sniffed.startswith("audio/"):
        if MediaTypeTag.parse(declared_tag) is MediaTypeTag.THREE_D:
            LOGGER.debug("Ignoring %s signature in %s declared as 3d", sniffed, filename)
            sniffed = None
    if sniffed:
        return sniffed
    if model_mime:
        return model_mime
    guessed = mimetypes.guess_type(filename)[0] if filename else None
    if guessed:
        return guessed
    if _mpeg_frame_sync(data):
        return "audio/mpeg"
    return None


def sniff_upload(media: "MediaFile", declared_tag: Union[MediaTypeTag, str, None]) -> Optional[str]:
    """MIME type of an upload: sniffed, else what the browser declared."""
    return sniff_mime(media.data, media.filename, declared_tag) or media.content_type or None


def _family_of(mime: Optional[str]) -> Optional[str]:
    if not mime:
        return None
    if mime in MODEL_MIME_TYPES.values() or mime.startswith("model/"):
        return "model"
    top = mime.split("/", 1)[0]
    if top in ("image", "audio", "video"):
        return top
    return None


def classify(sniffed_mime: Optional[str], declared_tag: Union[MediaTypeTag, str, None]) -> MediaTypeTag:
    """Pick the media type family, trusting sniffed content over the declared tag."""
    declared = MediaTypeTag.parse(declared_tag)
    family = _family_of(sniffed_mime)
    if family == "image":
        return MediaTypeTag.VISUAL
    if family == "audio":
        return MediaTypeTag.SFX if declared is MediaTypeTag.SFX else MediaTypeTag.AUDIO
    if family == "video":
        return MediaTypeTag.VISUAL if declared is MediaTypeTag.VISUAL else MediaTypeTag.VFX
    if family == "model":
        return MediaTypeTag.THREE_D
    if declared is not None:
        return declared
    return MediaTypeTag.VISUAL


def preview_family(mime: Optional[str], tag: MediaTypeTag) -> PreviewFamily:
    """Select which preview generator handles a file."""
    family = _family_of(mime)
    if family:
        return family  # type: ignore[return-value]
    if tag is MediaTypeTag.VISUAL:
        return "image"
    if tag in (MediaTypeTag.AUDIO, MediaTypeTag.SFX):
        return "audio"
    if tag is MediaTypeTag.VFX:
        return "video"
    return "model"


def resolve_mime_type(declared: Optional[str], media_type: Union[MediaTypeTag, str, None]) -> str:
    """MIME type for a decrypted asset: the recorded one, else by media type."""
    if declared and declared.strip() and declared.strip().lower() != OCTET_STREAM:
        return declared.strip()
    tag = MediaTypeTag.parse(media_type)
    if tag is not None and tag in MIME_FALLBACKS:
        return MIME_FALLBACKS[tag]
    return OCTET_STREAM


def read_bytes(path: str) -> bytes:
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise MediaReadError(f"Cannot read {path}: {e}") from e


def write_bytes(path: str, data: bytes) -> None:
    """Write `data` to `path` so readers never observe a half-written file."""
    out = Path(path)
    fd, tmp = tempfile.mkstemp(prefix=f".{out.name}.", suffix=".part", dir=out.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, out)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    LOGGER.debug("Wrote %d bytes to %s", len(data), out)
