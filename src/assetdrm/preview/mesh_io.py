"""Minimal triangle-mesh loaders for 3D previews.

Supported: Wavefront OBJ, STL (ASCII and binary), glTF 2.0 as ``.glb`` or as
``.gltf`` with embedded (data URI) buffers. Only geometry is read; materials
and textures are ignored because previews are flat-shaded.
"""

from __future__ import annotations

import base64
import json
import struct
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from ..errors import UnsupportedFormat

GLB_MAGIC = b"glTF"
GLB_JSON_CHUNK = 0x4E4F534A
GLB_BIN_CHUNK = 0x004E4942
GLTF_TRIANGLES = 4
MAX_NODE_DEPTH = 64

COMPONENT_DTYPES = {
    5120: np.dtype("i1"),
    5121: np.dtype("u1"),
    5122: np.dtype("<i2"),
    5123: np.dtype("<u2"),
    5125: np.dtype("<u4"),
    5126: np.dtype("<f4"),
}
TYPE_SIZES = {"SCALAR": 1, "VEC2": 2, "VEC3": 3, "VEC4": 4, "MAT2": 4, "MAT3": 9, "MAT4": 16}

STL_RECORD = np.dtype([("normal", "<f4", (3,)), ("vertices", "<f4", (3, 3)), ("attr", "<u2")])


@dataclass(frozen=True)
class Mesh:
    vertices: np.ndarray
    faces: np.ndarray

    @property
    def face_count(self) -> int:
        return int(self.faces.shape[0])

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        return self.vertices.min(axis=0), self.vertices.max(axis=0)

    def normalized(self) -> "Mesh":
        """Center on the bounding box and scale the largest extent to 1."""
        lo, hi = self.bounds()
        center = (lo + hi) / 2.0
        extent = float((hi - lo).max())
        scale = 1.0 / extent if extent > 0 else 1.0
        return Mesh(vertices=(self.vertices - center) * scale, faces=self.faces)


def load_mesh(data: bytes, filename: str = "") -> Mesh:
    """Parse a model file into a triangle mesh.

    Raises:
        UnsupportedFormat: For unknown or unsupported formats and malformed files.
    """
    suffix = Path(filename).suffix.lower()
    if suffix in (".fbx", ".blend"):
        raise UnsupportedFormat(f"No loader for {suffix} models")
    try:
        if data[:4] == GLB_MAGIC or suffix == ".glb":
            mesh = _load_glb(data)
        elif suffix == ".gltf":
            mesh = _load_gltf(json.loads(data.decode("utf-8")), glb_bin=None)
        elif suffix == ".stl":
            mesh = _load_stl(data)
        elif suffix == ".obj":
            mesh = _load_obj(data)
        elif data.lstrip()[:5].lower() == b"solid":
            mesh = _load_stl(data)
        elif b"\nv " in data or data.startswith(b"v "):
            mesh = _load_obj(data)
        else:
            raise UnsupportedFormat(f"Unrecognised model format: {filename or 'unnamed'}")
    except UnsupportedFormat:
        raise
    except (ValueError, KeyError, IndexError, TypeError, struct.error, UnicodeDecodeError) as e:
        raise UnsupportedFormat(f"Malformed model {filename or 'data'}: {e}") from e
    return _validated(mesh)


def _validated(mesh: Mesh) -> Mesh:
    if mesh.vertices.ndim != 2 or mesh.vertices.shape[1] != 3 or len(mesh.vertices) == 0:
        raise UnsupportedFormat("Model has no vertices")
    if mesh.faces.ndim != 2 or mesh.faces.shape[1] != 3 or len(mesh.faces) == 0:
        raise UnsupportedFormat("Model has no triangle faces")
    if mesh.faces.min() < 0 or mesh.faces.max() >= len(mesh.vertices):
        raise UnsupportedFormat("Face index out of range")
    if not np.isfinite(mesh.vertices).all():
        raise UnsupportedFormat("Model contains non-finite coordinates")
    return mesh


def _load_obj(data: bytes) -> Mesh:
    vertices: List[List[float]] = []
    faces: List[Tuple[int, int, int]] = []
    for line in data.decode("utf-8", errors="replace").splitlines():
        parts = line.split("#", 1)[0].split()
        if not parts:
            continue
        if parts[0] == "v":
            if len(parts) < 4:
                raise ValueError(f"Vertex needs three coordinates: {line!r}")
            vertices.append([float(x) for x in parts[1:4]])
        elif parts[0] == "f":
            idx = []
            for token in parts[1:]:
                i = int(token.split("/", 1)[0])
                idx.append(len(vertices) + i if i < 0 else i - 1)
            for k in range(1, len(idx) - 1):
                faces.append((idx[0], idx[k], idx[k + 1]))
    return Mesh(
        vertices=np.asarray(vertices, dtype=np.float64).reshape(-1, 3),
        faces=np.asarray(faces, dtype=np.int64).reshape(-1, 3),
    )


def _load_stl(data: bytes) -> Mesh:
    if len(data) >= 84:
        count = int.from_bytes(data[80:84], "little")
        if 84 + count * STL_RECORD.itemsize == len(data):
            records = np.frombuffer(data, dtype=STL_RECORD, count=count, offset=84)
            tris = records["vertices"].astype(np.float64)
            return _soup(tris)

    coords: List[List[float]] = []
    for line in data.decode("utf-8", errors="replace").splitlines():
        parts = line.split()
        if parts and parts[0].lower() == "vertex":
            coords.append([float(x) for x in parts[1:4]])
    if len(coords) % 3:
        raise ValueError("ASCII STL vertex count is not a multiple of 3")
    return _soup(np.asarray(coords, dtype=np.float64).reshape(-1, 3, 3))


def _soup(tris: np.ndarray) -> Mesh:
    count = tris.shape[0]
    return Mesh(
        vertices=tris.reshape(-1, 3),
        faces=np.arange(count * 3, dtype=np.int64).reshape(-1, 3),
    )


def _load_glb(data: bytes) -> Mesh:
    if len(data) < 12 or data[:4] != GLB_MAGIC:
        raise UnsupportedFormat("Not a binary glTF file")
    version, _length = struct.unpack_from("<II", data, 4)
    if version != 2:
        raise UnsupportedFormat(f"Unsupported glTF version {version}")
    offset = 12
    doc: Optional[Dict[str, Any]] = None
    glb_bin: Optional[bytes] = None
    while offset + 8 <= len(data):
        chunk_len, chunk_type = struct.unpack_from("<II", data, offset)
        offset += 8
        chunk = data[offset:offset + chunk_len]
        offset += chunk_len
        if chunk_type == GLB_JSON_CHUNK:
            doc = json.loads(chunk.decode("utf-8"))
        elif chunk_type == GLB_BIN_CHUNK and glb_bin is None:
            glb_bin = chunk
    if doc is None:
        raise UnsupportedFormat("GLB has no JSON chunk")
    return _load_gltf(doc, glb_bin)


def _buffers(doc: Dict[str, Any], glb_bin: Optional[bytes]) -> List[bytes]:
    out: List[bytes] = []
    for i, buf in enumerate(doc.get("buffers", [])):
        uri = buf.get("uri")
        if uri is None:
            if i != 0 or glb_bin is None:
                raise UnsupportedFormat(f"Buffer {i} has no data")
            out.append(glb_bin)
        elif uri.startswith("data:"):
            out.append(base64.b64decode(uri.split(",", 1)[1]))
        else:
            raise UnsupportedFormat("External glTF buffers are not supported")
    return out


def _accessor(doc: Dict[str, Any], buffers: List[bytes], index: int) -> np.ndarray:
    acc = doc["accessors"][index]
    if "sparse" in acc:
        raise UnsupportedFormat("Sparse accessors are not supported")
    dtype = COMPONENT_DTYPES[acc["componentType"]]
    width = TYPE_SIZES[acc["type"]]
    count = int(acc["count"])
    if "bufferView" not in acc:
        return np.zeros((count, width), dtype=np.float64)
    view = doc["bufferViews"][acc["bufferView"]]
    buf = buffers[view["buffer"]]
    base = int(view.get("byteOffset", 0)) + int(acc.get("byteOffset", 0))
    item = dtype.itemsize * width
    stride = int(view.get("byteStride") or item)
    if count and base + stride * (count - 1) + item > len(buf):
        raise ValueError(f"Accessor {index} reads past the end of its buffer")
    arr = np.ndarray(shape=(count, width), dtype=dtype, buffer=buf, offset=base,
                     strides=(stride, dtype.itemsize))
    return np.array(arr)


def _node_matrix(node: Dict[str, Any]) -> np.ndarray:
    if "matrix" in node:
        return np.asarray(node["matrix"], dtype=np.float64).reshape(4, 4).T
    tx, ty, tz = node.get("translation", (0.0, 0.0, 0.0))
    x, y, z, w = node.get("rotation", (0.0, 0.0, 0.0, 1.0))
    sx, sy, sz = node.get("scale", (1.0, 1.0, 1.0))
    rotation = np.array([
        [1 - 2 * (y * y + z * z), 2 * (x * y - z * w), 2 * (x * z + y * w)],
        [2 * (x * y + z * w), 1 - 2 * (x * x + z * z), 2 * (y * z - x * w)],
        [2 * (x * z - y * w), 2 * (y * z + x * w), 1 - 2 * (x * x + y * y)],
    ])
    m = np.eye(4)
    m[:3, :3] = rotation @ np.diag([sx, sy, sz])
    m[:3, 3] = (tx, ty, tz)
    return m


def _load_gltf(doc: Dict[str, Any], glb_bin: Optional[bytes]) -> Mesh:
    buffers = _buffers(doc, glb_bin)
    nodes = doc.get("nodes", [])
    meshes = doc.get("meshes", [])
    parts_v: List[np.ndarray] = []
    parts_f: List[np.ndarray] = []
    total = 0

    def add_mesh(mesh_index: int, matrix: np.ndarray) -> None:
        nonlocal total
        for prim in meshes[mesh_index].get("primitives", []):
            if prim.get("mode", GLTF_TRIANGLES) != GLTF_TRIANGLES:
                continue
            positions = _accessor(doc, buffers, prim["attributes"]["POSITION"])[:, :3].astype(np.float64)
            if "indices" in prim:
                idx = _accessor(doc, buffers, prim["indices"]).reshape(-1).astype(np.int64)
            else:
                idx = np.arange(len(positions), dtype=np.int64)
            tris = idx[: len(idx) // 3 * 3].reshape(-1, 3)
            homogeneous = np.hstack([positions, np.ones((len(positions), 1))])
            parts_v.append((homogeneous @ matrix.T)[:, :3])
            parts_f.append(tris + total)
            total += len(positions)

    def walk(node_index: int, parent: np.ndarray, depth: int) -> None:
        if depth > MAX_NODE_DEPTH:
            raise UnsupportedFormat("glTF node hierarchy too deep or cyclic")
        node = nodes[node_index]
        matrix = parent @ _node_matrix(node)
        if "mesh" in node:
            add_mesh(node["mesh"], matrix)
        for child in node.get("children", []):
            walk(child, matrix, depth + 1)

    scenes = doc.get("scenes") or []
    if scenes:
        for root in scenes[doc.get("scene", 0)].get("nodes", []):
            walk(root, np.eye(4), 0)
    else:
        for mesh_index in range(len(meshes)):
            add_mesh(mesh_index, np.eye(4))

    if not parts_v:
        raise UnsupportedFormat("glTF contains no triangle primitives")
    return Mesh(vertices=np.vstack(parts_v), faces=np.vstack(parts_f))
