"""Purchase-side path: find the released key, decrypt, package for download."""

from __future__ import annotations

import asyncio
import logging
import mimetypes
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Optional, Union

from ..encryption import cipher
from ..errors import KeyNotAvailable
from ..utils.media_io import OCTET_STREAM, MediaTypeTag, resolve_mime_type, write_bytes

LOGGER = logging.getLogger(__name__)

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._ -]+")

# mimetypes gives odd or missing answers for some common types (e.g. ".mpga" for audio/mpeg)
_PREFERRED_EXTENSIONS: Dict[str, str] = {
    "audio/mpeg": "mp3",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/flac": "flac",
    "audio/ogg": "ogg",
    "audio/aac": "aac",
    "audio/mp4": "m4a",
    "image/jpeg": "jpg",
    "video/mp4": "mp4",
    "video/quicktime": "mov",
    "model/gltf-binary": "glb",
    "model/gltf+json": "gltf",
}


@dataclass(frozen=True)
class KeyReleasedEvent:
    """Payload of the contract's ``DecryptionKeyReleased`` event."""

    token_id: int
    buyer: str
    decryption_key: str


def select_released_key(events: Iterable[KeyReleasedEvent], buyer: str, token_id: int) -> Optional[str]:
    """Key released to `buyer` for `token_id`; the latest matching event wins."""
    found = None
    for event in events:
        if event.token_id == token_id and event.buyer.lower() == buyer.lower() and event.decryption_key:
            found = event.decryption_key
    return found


def require_key(key: Optional[str]) -> str:
    """Return `key`, or raise KeyNotAvailable when nothing has been released yet."""
    if key is None or not str(key).strip():
        raise KeyNotAvailable("No decryption key available: purchase the asset to unlock it")
    return str(key).strip()


def download_filename(name: Optional[str], token_id: Optional[int], mime_type: str) -> str:
    base = _UNSAFE_NAME.sub("_", name or "").strip(" ._")
    if not base:
        base = f"asset-{token_id}" if token_id is not None else "asset"
    extension = _PREFERRED_EXTENSIONS.get(mime_type)
    if extension is None:
        guessed = mimetypes.guess_extension(mime_type) if mime_type else None
        extension = guessed.lstrip(".") if guessed else (mime_type.split("/", 1)[-1] if "/" in mime_type else "")
    if not extension or mime_type == OCTET_STREAM:
        extension = "bin"
    return f"{base}.{extension}"


@dataclass(frozen=True)
class DecryptedAsset:
    data: bytes
    mime_type: str
    filename: str
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.data)

    def save(self, directory: Union[str, Path]) -> Path:
        target = Path(directory) / self.filename
        write_bytes(str(target), self.data)
        return target


def decrypt_asset(
    encrypted: bytes,
    key: Optional[str],
    *,
    mime_type: Optional[str] = None,
    media_type: Union[MediaTypeTag, str, None] = None,
    name: Optional[str] = None,
    token_id: Optional[int] = None,
) -> DecryptedAsset:
    """Decrypt a fetched ciphertext and type it for download.

    MIME precedence: the caller's stored metadata, then the type recorded in
    the container at encryption time, then the media-type fallback table.

    Raises:
        KeyNotAvailable: No key was supplied (the asset has not been purchased).
        DecryptionError: Wrong key or corrupted ciphertext.
    """
    key = require_key(key)
    plaintext, header = cipher.decrypt_bytes(encrypted, key)

    recorded = header.get("content_type")
    declared = mime_type
    if not declared or declared.strip().lower() == OCTET_STREAM:
        declared = recorded if isinstance(recorded, str) else None
    resolved = resolve_mime_type(declared, media_type or header.get("media_type"))

    stored_name = header.get("filename") if isinstance(header.get("filename"), str) else None
    if name is None and stored_name:
        name = Path(stored_name).stem
    filename = download_filename(name, token_id, resolved)
    LOGGER.info("Decrypted %d bytes as %s (%s)", len(plaintext), filename, resolved)
    return DecryptedAsset(data=plaintext, mime_type=resolved, filename=filename, metadata=header)


async def unlock_asset(
    encrypted: bytes,
    key: Optional[str],
    *,
    mime_type: Optional[str] = None,
    media_type: Union[MediaTypeTag, str, None] = None,
    name: Optional[str] = None,
    token_id: Optional[int] = None,
) -> DecryptedAsset:
    return await asyncio.to_thread(
        decrypt_asset,
        encrypted,
        key,
        mime_type=mime_type,
        media_type=media_type,
        name=name,
        token_id=token_id,
    )
