"""Watermark and layout primitives shared by the preview generators.

Everything here works on fresh Pillow images created per call; nothing is
cached between previews.
"""

from __future__ import annotations

import io
from typing import Optional, Sequence, Tuple

from PIL import Image, ImageDraw, ImageFont

RGBA = Tuple[int, int, int, int]

SHADOW: RGBA = (0, 0, 0, 178)
TEXT: RGBA = (255, 255, 255, 204)
WARNING: RGBA = (255, 0, 0, 230)
BAR: RGBA = (0, 0, 0, 128)
BADGE: RGBA = (0, 0, 0, 170)
BACKGROUND = (24, 24, 24)


def load_font(size: int) -> ImageFont.ImageFont:
    return ImageFont.load_default(size=max(8, int(size)))


def text_size(text: str, font: ImageFont.ImageFont) -> Tuple[int, int]:
    left, top, right, bottom = ImageDraw.Draw(Image.new("L", (1, 1))).textbbox((0, 0), text, font=font)
    return right - left, bottom - top


def fit_font(text: str, max_width: int, size: int, min_size: int = 8) -> ImageFont.ImageFont:
    """Largest default font no bigger than `size` whose rendering of `text` fits `max_width`."""
    while size > min_size:
        font = load_font(size)
        if text_size(text, font)[0] <= max_width:
            return font
        size = int(size * 0.85)
    return load_font(min_size)


def watermark_grid(
    image: Image.Image,
    text: str,
    rows: int = 3,
    cols: int = 3,
    angle: float = 30.0,
    opacity: float = 1.0,
) -> Image.Image:
    """Composite a rows x cols grid of rotated, shadowed `text` over `image`."""
    base = image.convert("RGBA")
    width, height = base.size
    font = fit_font(text, max(8, width // 3), max(10, int(min(width, height) * 0.13)))
    tw, th = text_size(text, font)
    pad = max(2, th // 8)

    stamp = Image.new("RGBA", (tw + pad * 3, th + pad * 4), (0, 0, 0, 0))
    draw = ImageDraw.Draw(stamp)
    draw.text((pad * 2, pad * 2), text, font=font, fill=_scaled(SHADOW, opacity))
    draw.text((pad, pad), text, font=font, fill=_scaled(TEXT, opacity))
    stamp = stamp.rotate(angle, resample=Image.Resampling.BICUBIC, expand=True)

    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    for row in range(rows):
        for col in range(cols):
            cx = width * (col + 1) // (cols + 1)
            cy = height * (row + 1) // (rows + 1)
            _stamp(layer, stamp, cx - stamp.width // 2, cy - stamp.height // 2)
    return Image.alpha_composite(base, layer).convert("RGB")


def _stamp(layer: Image.Image, stamp: Image.Image, x: int, y: int) -> None:
    # alpha_composite rejects negative offsets; crop the stamp instead
    left, top = max(0, -x), max(0, -y)
    right = min(stamp.width, layer.width - x)
    bottom = min(stamp.height, layer.height - y)
    if right <= left or bottom <= top:
        return
    layer.alpha_composite(stamp, dest=(max(0, x), max(0, y)), source=(left, top, right, bottom))


def _scaled(color: RGBA, opacity: float) -> RGBA:
    r, g, b, a = color
    return r, g, b, int(a * max(0.0, min(1.0, opacity)))


def warning_bars(image: Image.Image, text: str, bar_height: int) -> Image.Image:
    """Translucent bars at top and bottom, warning text centered in the top one."""
    base = image.convert("RGBA")
    width, height = base.size
    bar_height = max(1, min(bar_height, height // 6 or 1))
    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    draw.rectangle((0, 0, width, bar_height - 1), fill=BAR)
    draw.rectangle((0, height - bar_height, width, height), fill=BAR)
    font = fit_font(text, int(width * 0.95), max(8, int(bar_height * 0.4)))
    draw.text((width // 2, bar_height // 2), text, font=font, fill=WARNING, anchor="mm")
    return Image.alpha_composite(base, layer).convert("RGB")


def draw_badge(draw: ImageDraw.ImageDraw, xy: Tuple[int, int], text: str, font: ImageFont.ImageFont) -> None:
    tw, th = text_size(text, font)
    pad = max(3, th // 3)
    x, y = xy
    draw.rounded_rectangle((x, y, x + tw + pad * 2, y + th + pad * 2), radius=pad, fill=BADGE)
    draw.text((x + pad, y + pad), text, font=font, fill=(255, 255, 255, 255))


def letterbox(image: Image.Image, size: Tuple[int, int]) -> Image.Image:
    """Fit `image` inside `size` preserving aspect ratio, padding with the background."""
    tile = Image.new("RGB", size, BACKGROUND)
    frame = image.convert("RGB")
    frame.thumbnail(size, Image.Resampling.LANCZOS)
    tile.paste(frame, ((size[0] - frame.width) // 2, (size[1] - frame.height) // 2))
    return tile


def compose_grid(
    tiles: Sequence[Image.Image],
    labels: Sequence[str],
    columns: int,
    banner: str,
    gap: int = 4,
    banner_height: Optional[int] = None,
) -> Image.Image:
    """Lay equally sized tiles out in a grid under a banner, badge each with its label."""
    if not tiles:
        raise ValueError("compose_grid needs at least one tile")
    tile_w, tile_h = tiles[0].size
    columns = max(1, min(columns, len(tiles)))
    rows = (len(tiles) + columns - 1) // columns
    banner_height = banner_height or max(24, tile_h // 5)

    width = columns * tile_w + (columns + 1) * gap
    height = banner_height + rows * tile_h + (rows + 1) * gap
    canvas = Image.new("RGB", (width, height), BACKGROUND)
    draw = ImageDraw.Draw(canvas, "RGBA")

    draw.rectangle((0, 0, width, banner_height), fill=(0, 0, 0, 255))
    banner_font = fit_font(banner, int(width * 0.95), int(banner_height * 0.5))
    draw.text((width // 2, banner_height // 2), banner, font=banner_font, fill=WARNING, anchor="mm")

    badge_font = load_font(max(10, tile_h // 12))
    for i, (tile, label) in enumerate(zip(tiles, labels)):
        row, col = divmod(i, columns)
        x = gap + col * (tile_w + gap)
        y = banner_height + gap + row * (tile_h + gap)
        canvas.paste(tile.convert("RGB").resize((tile_w, tile_h)), (x, y))
        if label:
            draw_badge(draw, (x + 6, y + 6), label, badge_font)
    return canvas


def encode_jpeg(image: Image.Image, quality: int, comment: str = "") -> bytes:
    buf = io.BytesIO()
    params = {"format": "JPEG", "quality": max(1, min(95, quality))}
    if comment:
        params["comment"] = comment.encode("utf-8")
    image.convert("RGB").save(buf, **params)
    return buf.getvalue()
