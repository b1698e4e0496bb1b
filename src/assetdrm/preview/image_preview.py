from __future__ import annotations

import io
import logging

from PIL import Image, ImageOps, UnidentifiedImageError

from ..config import PreviewSettings
from ..errors import UnsupportedFormat
from ..utils.media_io import MediaFile, MediaTypeTag
from . import overlay
from .artifacts import PreviewArtifact, preview_filename

LOGGER = logging.getLogger(__name__)


def decode_image(data: bytes) -> Image.Image:
    """Decode the first frame of an image as RGB, honouring EXIF orientation."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.seek(0)
            img.load()
            frame = ImageOps.exif_transpose(img)
            if frame.mode in ("RGBA", "LA", "P"):
                rgba = frame.convert("RGBA")
                flat = Image.new("RGB", rgba.size, (255, 255, 255))
                flat.paste(rgba, mask=rgba.getchannel("A"))
                return flat
            return frame.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise UnsupportedFormat(f"Cannot decode image: {e}") from e


def fit_within(image: Image.Image, max_width: int, max_height: int) -> Image.Image:
    """Downscale to fit the bounding box, keeping aspect ratio. Never upscales."""
    width, height = image.size
    if width <= max_width and height <= max_height:
        return image.copy()
    ratio = min(max_width / width, max_height / height)
    size = (max(1, int(width * ratio)), max(1, int(height * ratio)))
    return image.resize(size, Image.Resampling.LANCZOS)


def generate_image_preview(media: MediaFile, settings: PreviewSettings) -> PreviewArtifact:
    """Downscaled, watermarked, low-quality JPEG of an image.

    Raises:
        UnsupportedFormat: If Pillow cannot decode the input.
    """
    original = decode_image(media.data)
    scaled = fit_within(original, settings.image_max_width, settings.image_max_height)
    marked = overlay.watermark_grid(
        scaled,
        settings.watermark_text,
        rows=settings.watermark_rows,
        cols=settings.watermark_cols,
        angle=settings.watermark_angle,
    )
    marked = overlay.warning_bars(marked, settings.banner_text, settings.bar_height)
    data = overlay.encode_jpeg(
        marked,
        settings.image_quality,
        comment=f"{settings.watermark_text} - {settings.banner_text}",
    )
    LOGGER.info(
        "Image preview %s: %dx%d -> %dx%d, %d -> %d bytes",
        media.filename, original.width, original.height, marked.width, marked.height,
        media.size, len(data),
    )
    return PreviewArtifact(
        data=data,
        mime_type="image/jpeg",
        filename=preview_filename(media, ".jpg"),
        media_type=MediaTypeTag.VISUAL,
        width=marked.width,
        height=marked.height,
    )
