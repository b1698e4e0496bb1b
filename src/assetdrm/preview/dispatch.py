"""Select and run the preview generator for an upload.

Preview generation must never abort an otherwise valid upload. Generator
failures come back from :func:`attempt_preview` as a :class:`FallbackReason`
value, and :func:`generate_preview` turns that into a pass-through artifact
carrying the original bytes.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Union

from ..config import PreviewSettings
from ..utils.media_io import MediaFile, MediaTypeTag, classify, preview_family, sniff_upload
from .artifacts import FallbackReason, PreviewArtifact, PreviewResult
from .audio_preview import generate_audio_preview
from .image_preview import generate_image_preview
from .model_preview import generate_model_preview
from .video_preview import FrameGrabber, generate_video_preview

LOGGER = logging.getLogger(__name__)


def attempt_preview(
    media: MediaFile,
    media_type: Union[MediaTypeTag, str, None],
    settings: Optional[PreviewSettings] = None,
    frame_grabber: Optional[FrameGrabber] = None,
) -> PreviewResult:
    """Run the matching generator; report failure as a FallbackReason instead of raising."""
    settings = settings or PreviewSettings()
    sniffed = sniff_upload(media, media_type)
    tag = classify(sniffed, media_type)
    declared = MediaTypeTag.parse(media_type)
    if declared is not None and declared is not tag:
        LOGGER.warning(
            "%s declared as %s but content looks like %s (%s); using %s",
            media.filename, declared.value, tag.value, sniffed, tag.value,
        )
    family = preview_family(sniffed, tag)
    LOGGER.info("Generating %s preview for %s (%d bytes)", family, media.filename, media.size)

    try:
        if family == "image":
            return generate_image_preview(media, settings)
        if family == "audio":
            return generate_audio_preview(media, settings, media_type=tag)
        if family == "video":
            return generate_video_preview(media, settings, grabber=frame_grabber, media_type=tag)
        return generate_model_preview(media, settings, media_type=tag)
    except Exception as e:
        return FallbackReason(generator=family, message=str(e) or type(e).__name__, error_type=type(e).__name__)


def _resolve(media: MediaFile, media_type: Union[MediaTypeTag, str, None], result: PreviewResult) -> PreviewArtifact:
    if isinstance(result, PreviewArtifact):
        return result
    tag = classify(sniff_upload(media, media_type), media_type)
    LOGGER.warning("Preview generation failed for %s (%s); using original file as preview", media.filename, result)
    return PreviewArtifact.passthrough(media, tag, result)


def generate_preview_sync(
    media: MediaFile,
    media_type: Union[MediaTypeTag, str, None],
    settings: Optional[PreviewSettings] = None,
    frame_grabber: Optional[FrameGrabber] = None,
) -> PreviewArtifact:
    return _resolve(media, media_type, attempt_preview(media, media_type, settings, frame_grabber))


async def generate_preview(
    media: MediaFile,
    media_type: Union[MediaTypeTag, str, None],
    settings: Optional[PreviewSettings] = None,
    *,
    frame_grabber: Optional[FrameGrabber] = None,
) -> PreviewArtifact:
    """Generate a preview off the event loop; never raises for content problems."""
    result = await asyncio.to_thread(attempt_preview, media, media_type, settings, frame_grabber)
    return _resolve(media, media_type, result)
