"""Upload-side pipeline: protect a master file, then publish it for minting.

``protect_upload`` is pure local work (key, ciphertext, preview). Publishing
hands the artifacts to content-addressed storage and only then submits the
mint call, once every content identifier is known.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple, Union

from ..config import AppConfig
from ..encryption import cipher
from ..encryption.keys import generate_key, key_fingerprint
from ..errors import InvalidListing, InvalidUpload
from ..preview.artifacts import PreviewArtifact
from ..preview.dispatch import generate_preview
from ..preview.video_preview import FrameGrabber
from ..utils.media_io import MediaFile, MediaTypeTag, classify, sniff_mime, sniff_upload
from ..utils.validation import validate_file_size

LOGGER = logging.getLogger(__name__)

WALLET_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class ProtectedUpload:
    """Everything produced locally for one upload. Nothing here has been published yet."""

    key: str
    encrypted: bytes
    preview: PreviewArtifact
    media_type: MediaTypeTag
    filename: str
    content_type: str
    size: int
    sha256: str

    @property
    def encrypted_filename(self) -> str:
        return f"{self.filename}.encrypted"

    def manifest(self) -> Dict[str, Any]:
        """Description of the upload that is safe to store next to the artifacts (no key)."""
        return {
            "filename": self.filename,
            "content_type": self.content_type,
            "media_type": self.media_type.value,
            "size": self.size,
            "sha256": self.sha256,
            "key_fingerprint": key_fingerprint(self.key),
            "encrypted_filename": self.encrypted_filename,
            "encrypted_size": len(self.encrypted),
            "preview_filename": self.preview.filename,
            "preview_mime_type": self.preview.mime_type,
            "preview_size": self.preview.size,
            "preview_placeholder": self.preview.placeholder,
            "preview_fallback": str(self.preview.fallback) if self.preview.fallback else None,
        }


async def protect_upload(
    media: MediaFile,
    declared_tag: Union[MediaTypeTag, str, None],
    config: Optional[AppConfig] = None,
    *,
    frame_grabber: Optional[FrameGrabber] = None,
) -> ProtectedUpload:
    """Generate a key, encrypt the master and build its preview.

    Encryption and preview generation read the same immutable bytes and run
    concurrently. The result is only returned once both have finished, so a
    cancelled call publishes nothing.

    Raises:
        InvalidUpload: The file exceeds the configured size limit.
        EntropyUnavailable: No key could be generated.
    """
    config = config or AppConfig()
    size_check = validate_file_size(media, config.max_upload_mb)
    if not size_check.is_valid:
        raise InvalidUpload(size_check.error)

    content_type = media.content_type or sniff_mime(media.data, media.filename, declared_tag) or "application/octet-stream"
    media_type = classify(sniff_upload(media, declared_tag), declared_tag)
    key = generate_key()
    LOGGER.info("Protecting %s as %s (key %s)", media.filename, media_type.value, key_fingerprint(key))

    metadata = {
        "filename": media.filename,
        "content_type": content_type,
        "media_type": media_type.value,
        "size": media.size,
    }
    encrypted, preview = await asyncio.gather(
        asyncio.to_thread(cipher.encrypt_bytes, media.data, key, metadata, config.chunk_size),
        generate_preview(media, declared_tag, config.preview, frame_grabber=frame_grabber),
    )
    LOGGER.debug("Encrypted %d -> %d bytes; preview %s is %d bytes",
                 media.size, len(encrypted), preview.filename, preview.size)
    return ProtectedUpload(
        key=key,
        encrypted=encrypted,
        preview=preview,
        media_type=media_type,
        filename=media.filename,
        content_type=content_type,
        size=media.size,
        sha256=hashlib.sha256(media.data).hexdigest(),
    )


def protect_upload_sync(
    media: MediaFile,
    declared_tag: Union[MediaTypeTag, str, None],
    config: Optional[AppConfig] = None,
    *,
    frame_grabber: Optional[FrameGrabber] = None,
) -> ProtectedUpload:
    return asyncio.run(protect_upload(media, declared_tag, config, frame_grabber=frame_grabber))


# --------------------------------------------------------------------------
# Publishing
# --------------------------------------------------------------------------

@dataclass(frozen=True)
class Collaborator:
    wallet: str
    share_percentage: float


@dataclass(frozen=True)
class Listing:
    """Creator-entered listing fields for a mint."""

    title: str
    description: str = ""
    creator: str = ""
    royalty_percentage: float = 5
    collaborators: Sequence[Collaborator] = field(default_factory=tuple)


def _to_bps(percentage: float) -> int:
    return int(round(percentage * 100))


def validate_listing(listing: Listing) -> None:
    """Raises InvalidListing describing the first problem found."""
    if not listing.title.strip():
        raise InvalidListing("Please enter a title")
    if not 0 <= listing.royalty_percentage <= 100:
        raise InvalidListing(f"Royalty must be between 0 and 100%, got {listing.royalty_percentage}")
    if listing.collaborators:
        total = sum(_to_bps(c.share_percentage) for c in listing.collaborators)
        if total != 10000:
            raise InvalidListing("Collaborator shares must add up to 100%")
        for collab in listing.collaborators:
            if not WALLET_RE.match(collab.wallet or ""):
                raise InvalidListing(f"Invalid collaborator wallet address: {collab.wallet!r}")


@dataclass(frozen=True)
class MintRequest:
    """Arguments of the marketplace contract's ``mintMediaAsset`` call."""

    ipfs_hash: str
    preview_hash: str
    media_type: str
    token_uri: str
    royalty_bps: int
    encryption_key: str
    collaborators: Tuple[Tuple[str, int], ...] = ()

    def as_call_args(self) -> List[Any]:
        return [
            self.ipfs_hash,
            self.preview_hash,
            self.media_type,
            self.token_uri,
            self.royalty_bps,
            self.encryption_key,
            [{"wallet": wallet, "sharePercentage": share} for wallet, share in self.collaborators],
        ]


@dataclass(frozen=True)
class PublishReceipt:
    file_cid: str
    preview_cid: str
    metadata_cid: str
    token_uri: str
    transaction: str
    request: MintRequest


class ContentStore(Protocol):
    """Content-addressed storage (e.g. an IPFS pinning service)."""

    async def pin_bytes(self, data: bytes, filename: str, content_type: str) -> str:
        ...

    async def pin_json(self, document: Dict[str, Any], name: str) -> str:
        ...


class MintSubmitter(Protocol):
    """Submits the mint transaction from the creator's wallet."""

    async def submit_mint(self, request: MintRequest) -> str:
        ...


def build_metadata(
    upload: ProtectedUpload,
    listing: Listing,
    file_cid: str,
    preview_cid: str,
    timestamp: Optional[datetime] = None,
) -> Dict[str, Any]:
    timestamp = timestamp or datetime.now(UTC)
    return {
        "name": listing.title,
        "description": listing.description,
        "mediaType": upload.media_type.value,
        "creator": listing.creator,
        "timestamp": timestamp.isoformat(),
        "royaltyPercentage": listing.royalty_percentage,
        "collaborators": [
            {"wallet": c.wallet, "sharePercentage": c.share_percentage} for c in listing.collaborators
        ],
        "file": f"ipfs://{file_cid}",
        "preview": f"ipfs://{preview_cid}",
        "encrypted": True,
        "mimeType": upload.content_type,
        "previewMimeType": upload.preview.mime_type,
    }


async def publish_upload(
    upload: ProtectedUpload,
    listing: Listing,
    store: ContentStore,
    submitter: MintSubmitter,
) -> PublishReceipt:
    """Pin ciphertext, preview and metadata, then submit the mint call.

    Storage failures propagate and no mint is submitted.
    """
    validate_listing(listing)

    LOGGER.info("Pinning encrypted file and preview for %s", upload.filename)
    file_cid, preview_cid = await asyncio.gather(
        store.pin_bytes(upload.encrypted, upload.encrypted_filename, "application/octet-stream"),
        store.pin_bytes(upload.preview.data, upload.preview.filename, upload.preview.mime_type),
    )
    metadata = build_metadata(upload, listing, file_cid, preview_cid)
    metadata_cid = await store.pin_json(metadata, f"{upload.filename}.metadata.json")
    token_uri = f"ipfs://{metadata_cid}"

    request = MintRequest(
        ipfs_hash=file_cid,
        preview_hash=preview_cid,
        media_type=upload.media_type.value,
        token_uri=token_uri,
        royalty_bps=_to_bps(listing.royalty_percentage),
        encryption_key=upload.key,
        collaborators=tuple((c.wallet, _to_bps(c.share_percentage)) for c in listing.collaborators),
    )
    LOGGER.info("Submitting mint for %s (file %s, preview %s)", upload.filename, file_cid, preview_cid)
    transaction = await submitter.submit_mint(request)
    return PublishReceipt(
        file_cid=file_cid,
        preview_cid=preview_cid,
        metadata_cid=metadata_cid,
        token_uri=token_uri,
        transaction=transaction,
        request=request,
    )
