"""Tests for 3D model loading and multi-view previews."""

import io

import numpy as np
import pytest
from PIL import Image

from assetdrm.config import PreviewSettings
from assetdrm.errors import UnsupportedFormat
from assetdrm.preview import mesh_io, model_preview
from assetdrm.utils.media_io import MediaFile

from conftest import CUBE_OBJ, make_binary_stl, make_glb


class TestMeshLoading:
    """Parse the supported model formats into triangle meshes."""

    def test_obj_quads_are_triangulated(self):
        mesh = mesh_io.load_mesh(CUBE_OBJ, "cube.obj")
        assert mesh.vertices.shape == (8, 3)
        assert mesh.face_count == 12

    def test_obj_negative_indices(self):
        mesh = mesh_io.load_mesh(b"v 0 0 0\nv 1 0 0\nv 0 1 0\nf -3 -2 -1\n", "tri.obj")
        assert mesh.faces.tolist() == [[0, 1, 2]]

    def test_binary_stl(self):
        data = make_binary_stl([[(0, 0, 0), (1, 0, 0), (0, 1, 0)], [(0, 0, 1), (1, 0, 1), (0, 1, 1)]])
        mesh = mesh_io.load_mesh(data, "part.stl")
        assert mesh.face_count == 2

    def test_ascii_stl(self):
        data = b"""solid t
facet normal 0 0 1
 outer loop
  vertex 0 0 0
  vertex 1 0 0
  vertex 0 1 0
 endloop
endfacet
endsolid t
"""
        assert mesh_io.load_mesh(data, "part.stl").face_count == 1

    def test_glb(self):
        mesh = mesh_io.load_mesh(make_glb(), "tri.glb")
        assert mesh.face_count == 1
        np.testing.assert_allclose(mesh.bounds()[1], [1, 1, 0])

    def test_normalized_fits_unit_box(self):
        mesh = mesh_io.load_mesh(CUBE_OBJ, "cube.obj").normalized()
        lo, hi = mesh.bounds()
        np.testing.assert_allclose(lo, [-0.5, -0.5, -0.5])
        np.testing.assert_allclose(hi, [0.5, 0.5, 0.5])

    @pytest.mark.parametrize("data,name", [
        (b"Kaydara FBX Binary  \x00", "ship.fbx"),
        (b"BLENDER-v300", "ship.blend"),
        (b"v 0 0 0\nf 1 2 3\n", "bad.obj"),
        (b"glTF\x02\x00\x00\x00", "short.glb"),
        (b"\x00\x01\x02", "mystery.bin"),
    ])
    def test_unloadable(self, data, name):
        with pytest.raises(UnsupportedFormat):
            mesh_io.load_mesh(data, name)


class TestModelPreview:
    def test_rendered_views(self, obj_media):
        settings = PreviewSettings(model_tile_size=96)
        artifact = model_preview.generate_model_preview(obj_media, settings)
        assert not artifact.placeholder
        assert artifact.mime_type == "image/jpeg"
        with Image.open(io.BytesIO(artifact.data)) as img:
            assert img.width == 3 * 96 + 4 * 4
            assert b"6 VIEWS" in img.info.get("comment", b"")

    def test_views_differ(self):
        mesh = mesh_io.load_mesh(make_glb(), "tri.glb").normalized()
        front = model_preview.render_view(mesh, model_preview.VIEW_ROTATIONS["front"], 64, 1000)
        left = model_preview.render_view(mesh, model_preview.VIEW_ROTATIONS["left"], 64, 1000)
        assert front.tobytes() != left.tobytes()

    @pytest.mark.parametrize("data,name", [(b"not a model at all", "broken.obj"), (b"Kaydara FBX", "ship.fbx")])
    def test_placeholder_instead_of_error(self, data, name):
        artifact = model_preview.generate_model_preview(MediaFile(data, name), PreviewSettings(model_tile_size=64))
        assert artifact.placeholder
        assert artifact.fallback is None
        with Image.open(io.BytesIO(artifact.data)) as img:
            assert img.format == "JPEG"

    def test_unknown_view_name(self, obj_media):
        with pytest.raises(ValueError):
            model_preview.generate_model_preview(obj_media, PreviewSettings(model_views=("front", "isometric")))
