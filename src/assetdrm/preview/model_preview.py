"""3D model previews: a watermarked sheet of canonical orthographic views.

Rendering is a small software rasterizer: the normalized mesh is rotated
into each view, projected orthographically, and its triangles are painted
back to front with flat two-sided Lambert shading. Models that cannot be
loaded or rendered get a placeholder sheet with the same layout.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Tuple

import numpy as np
from PIL import Image, ImageDraw

from ..config import PreviewSettings
from ..utils.media_io import MediaFile, MediaTypeTag
from . import overlay
from .artifacts import PreviewArtifact, preview_filename
from .mesh_io import Mesh, load_mesh

LOGGER = logging.getLogger(__name__)

BASE_COLOR = (120, 170, 220)
AMBIENT = 0.25
FILL_RATIO = 0.85


def _rot_x(degrees: float) -> np.ndarray:
    a = math.radians(degrees)
    c, s = math.cos(a), math.sin(a)
    return np.array([[1, 0, 0], [0, c, -s], [0, s, c]], dtype=np.float64)


def _rot_y(degrees: float) -> np.ndarray:
    a = math.radians(degrees)
    c, s = math.cos(a), math.sin(a)
    return np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]], dtype=np.float64)


# World (Y up, front facing +Z) into camera space (camera on +Z looking down -Z).
VIEW_ROTATIONS: Dict[str, np.ndarray] = {
    "front": np.eye(3),
    "back": _rot_y(180),
    "left": _rot_y(90),
    "right": _rot_y(-90),
    "top": _rot_x(90),
    "bottom": _rot_x(-90),
}


def render_view(mesh: Mesh, rotation: np.ndarray, size: int, max_faces: int) -> Image.Image:
    """Render a normalized mesh from one camera orientation into a square tile."""
    tris = (mesh.vertices @ rotation.T)[mesh.faces]
    if max_faces > 0 and len(tris) > max_faces:
        tris = tris[:: math.ceil(len(tris) / max_faces)]

    normals = np.cross(tris[:, 1] - tris[:, 0], tris[:, 2] - tris[:, 0])
    lengths = np.linalg.norm(normals, axis=1)
    keep = lengths > 0
    tris, normals, lengths = tris[keep], normals[keep], lengths[keep]
    shade = AMBIENT + (1.0 - AMBIENT) * np.abs(normals[:, 2] / lengths)
    order = np.argsort(tris[:, :, 2].mean(axis=1))

    scale = size * FILL_RATIO
    px = size / 2.0 + tris[:, :, 0] * scale
    py = size / 2.0 - tris[:, :, 1] * scale

    tile = Image.new("RGB", (size, size), overlay.BACKGROUND)
    draw = ImageDraw.Draw(tile)
    for i in order:
        color = tuple(int(c * shade[i]) for c in BASE_COLOR)
        draw.polygon([(px[i, 0], py[i, 0]), (px[i, 1], py[i, 1]), (px[i, 2], py[i, 2])], fill=color)
    return tile


def placeholder_tile(size: int) -> Image.Image:
    """Generic wireframe cube icon standing in for a view that could not be rendered."""
    tile = Image.new("RGB", (size, size), (48, 48, 48))
    draw = ImageDraw.Draw(tile)
    cx, cy, r = size / 2.0, size / 2.0, size * 0.28
    hexagon: List[Tuple[float, float]] = [
        (cx + r * math.cos(math.radians(a)), cy + r * math.sin(math.radians(a)))
        for a in (-90, -30, 30, 90, 150, 210)
    ]
    line = max(1, size // 64)
    draw.polygon(hexagon, outline=(170, 170, 170), width=line)
    for corner in (hexagon[1], hexagon[3], hexagon[5]):
        draw.line([(cx, cy), corner], fill=(170, 170, 170), width=line)
    return tile


def generate_model_preview(
    media: MediaFile,
    settings: PreviewSettings,
    media_type: MediaTypeTag = MediaTypeTag.THREE_D,
) -> PreviewArtifact:
    """Grid of canonical views of a 3D model, or a placeholder grid.

    Never raises for unreadable models: those produce the placeholder layout.
    """
    unknown = [v for v in settings.model_views if v not in VIEW_ROTATIONS]
    if unknown:
        raise ValueError(f"Unknown model views: {', '.join(unknown)}")
    size = settings.model_tile_size

    placeholder = False
    try:
        mesh = load_mesh(media.data, media.filename).normalized()
        tiles = [render_view(mesh, VIEW_ROTATIONS[v], size, settings.model_max_faces) for v in settings.model_views]
        LOGGER.debug("Rendered %d views of %s (%d faces)", len(tiles), media.filename, mesh.face_count)
    except Exception as e:
        LOGGER.warning("3D preview for %s uses placeholder views: %s", media.filename, e)
        tiles = [placeholder_tile(size) for _ in settings.model_views]
        placeholder = True

    banner = f"3D MODEL PREVIEW - {len(tiles)} VIEWS - PURCHASE TO UNLOCK"
    sheet = overlay.compose_grid(tiles, [v.upper() for v in settings.model_views], settings.model_columns, banner)
    sheet = overlay.watermark_grid(
        sheet,
        settings.watermark_text,
        rows=settings.watermark_rows,
        cols=settings.watermark_cols,
        angle=settings.watermark_angle,
        opacity=0.6,
    )
    data = overlay.encode_jpeg(sheet, settings.image_quality, comment=f"{settings.watermark_text} - {banner}")
    return PreviewArtifact(
        data=data,
        mime_type="image/jpeg",
        filename=preview_filename(media, ".jpg"),
        media_type=media_type,
        width=sheet.width,
        height=sheet.height,
        placeholder=placeholder,
    )
