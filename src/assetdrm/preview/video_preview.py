"""Video previews as a still contact sheet.

A handful of frames sampled across the clip are laid out in a labeled grid
with timestamp badges and a watermark, so buyers can judge content breadth
without receiving any playable footage.
"""

from __future__ import annotations

import io
import logging
import tempfile
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from PIL import Image, UnidentifiedImageError

from ..config import PreviewSettings
from ..errors import UnsupportedFormat
from ..utils import ffmpeg
from ..utils.media_io import MediaFile, MediaTypeTag
from . import overlay
from .artifacts import PreviewArtifact, preview_filename

LOGGER = logging.getLogger(__name__)

Frame = Tuple[float, Image.Image]


class FrameGrabber(Protocol):
    def grab(self, media: MediaFile, fractions: Sequence[float]) -> Tuple[float, List[Frame]]:
        """Return the clip duration and one (timestamp, frame) per fraction that could be read."""
        ...


class FfmpegFrameGrabber:
    """Pulls single frames out of a clip with ffmpeg, one seek per sample point."""

    def __init__(self, ffmpeg_binary: str = "ffmpeg", ffprobe_binary: str = "ffprobe"):
        self.ffmpeg_binary = ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary

    def grab(self, media: MediaFile, fractions: Sequence[float]) -> Tuple[float, List[Frame]]:
        ffmpeg.ensure_tools(self.ffmpeg_binary, self.ffprobe_binary)
        with tempfile.TemporaryDirectory(prefix="assetdrm-video-") as tmp:
            src = Path(tmp) / f"source{media.suffix or '.bin'}"
            src.write_bytes(media.data)
            info = ffmpeg.probe(src, self.ffprobe_binary)
            if not info.get("has_video"):
                raise UnsupportedFormat("No video stream found")
            duration = float(info.get("duration") or 0.0)
            if duration <= 0:
                raise UnsupportedFormat("Video has no measurable duration")

            frames: List[Frame] = []
            for fraction in fractions:
                timestamp = duration * fraction
                try:
                    png = ffmpeg.run([
                        self.ffmpeg_binary, "-v", "error",
                        "-ss", f"{timestamp:.3f}",
                        "-i", str(src),
                        "-frames:v", "1",
                        "-f", "image2pipe",
                        "-vcodec", "png",
                        "-",
                    ])
                    if not png:
                        continue
                    with Image.open(io.BytesIO(png)) as img:
                        frames.append((timestamp, img.convert("RGB")))
                except (UnsupportedFormat, UnidentifiedImageError) as e:
                    LOGGER.warning("Skipping frame at %.2fs of %s: %s", timestamp, media.filename, e)
        return duration, frames


def format_timestamp(seconds: float) -> str:
    total = int(seconds)
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def generate_video_preview(
    media: MediaFile,
    settings: PreviewSettings,
    grabber: Optional[FrameGrabber] = None,
    media_type: MediaTypeTag = MediaTypeTag.VFX,
) -> PreviewArtifact:
    """Watermarked still grid of frames sampled at fixed fractions of the clip.

    Raises:
        UnsupportedFormat: If no frame could be extracted.
    """
    grabber = grabber or FfmpegFrameGrabber(settings.ffmpeg_binary, settings.ffprobe_binary)
    duration, frames = grabber.grab(media, settings.video_sample_points)
    if not frames:
        raise UnsupportedFormat("No frames could be extracted")

    tile_size = (settings.video_tile_width, settings.video_tile_height)
    tiles = [overlay.letterbox(frame, tile_size) for _, frame in frames]
    labels = [format_timestamp(ts) for ts, _ in frames]
    banner = f"VIDEO PREVIEW - {len(frames)} FRAMES - PURCHASE TO UNLOCK"
    sheet = overlay.compose_grid(tiles, labels, settings.video_columns, banner)
    sheet = overlay.watermark_grid(
        sheet,
        settings.watermark_text,
        rows=settings.watermark_rows,
        cols=settings.watermark_cols,
        angle=settings.watermark_angle,
        opacity=0.6,
    )
    data = overlay.encode_jpeg(sheet, settings.image_quality, comment=f"{settings.watermark_text} - {banner}")

    LOGGER.info(
        "Video preview %s: %.2fs clip, %d frames -> %dx%d sheet, %d bytes",
        media.filename, duration, len(frames), sheet.width, sheet.height, len(data),
    )
    return PreviewArtifact(
        data=data,
        mime_type="image/jpeg",
        filename=preview_filename(media, ".jpg"),
        media_type=media_type,
        width=sheet.width,
        height=sheet.height,
        duration=duration,
    )
