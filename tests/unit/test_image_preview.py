"""Tests for image previews."""

import io

import pytest
from PIL import Image

from assetdrm.config import PreviewSettings
from assetdrm.errors import UnsupportedFormat
from assetdrm.preview.image_preview import decode_image, fit_within, generate_image_preview
from assetdrm.utils.media_io import MediaFile, MediaTypeTag

from conftest import make_jpeg, make_png


class TestImagePreview:
    """Downscaled, watermarked, low quality JPEG."""

    def test_large_image_is_bounded(self, jpeg_media):
        artifact = generate_image_preview(jpeg_media, PreviewSettings())
        assert artifact.mime_type == "image/jpeg"
        assert artifact.filename == "preview_photo.jpg"
        assert artifact.media_type is MediaTypeTag.VISUAL
        with Image.open(io.BytesIO(artifact.data)) as img:
            assert img.format == "JPEG"
            assert img.width <= 600 and img.height <= 450
            assert (img.width, img.height) == (artifact.width, artifact.height)
            assert b"PREVIEW" in img.info.get("comment", b"")

    def test_aspect_ratio_kept(self):
        media = MediaFile(make_jpeg(1200, 300), "wide.jpg", "image/jpeg")
        artifact = generate_image_preview(media, PreviewSettings())
        assert (artifact.width, artifact.height) == (600, 150)

    def test_small_image_not_upscaled(self):
        media = MediaFile(make_png(120, 80), "small.png", "image/png")
        artifact = generate_image_preview(media, PreviewSettings())
        assert (artifact.width, artifact.height) == (120, 80)

    def test_preview_differs_from_plain_downscale(self, jpeg_media):
        """The watermark actually changes pixels."""
        settings = PreviewSettings()
        artifact = generate_image_preview(jpeg_media, settings)
        plain = fit_within(decode_image(jpeg_media.data), settings.image_max_width, settings.image_max_height)
        with Image.open(io.BytesIO(artifact.data)) as img:
            marked = img.convert("RGB")
        # top warning bar is dark
        top = marked.crop((0, 0, marked.width, 10)).resize((1, 1)).getpixel((0, 0))
        plain_top = plain.crop((0, 0, plain.width, 10)).resize((1, 1)).getpixel((0, 0))
        assert sum(top) < sum(plain_top)

    def test_transparency_flattened(self):
        media = MediaFile(make_png(40, 40, mode="RGBA"), "alpha.png", "image/png")
        assert decode_image(media.data).mode == "RGB"

    def test_corrupt_image(self):
        with pytest.raises(UnsupportedFormat):
            generate_image_preview(MediaFile(b"\xff\xd8\xff garbage", "x.jpg"), PreviewSettings())
