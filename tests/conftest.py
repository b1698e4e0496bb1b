"""Shared fixtures: small synthetic media files built in memory."""

import io
import json
import struct
import wave

import numpy as np
import pytest
from PIL import Image

from assetdrm.utils.media_io import MediaFile


def make_jpeg(width=800, height=600, quality=90) -> bytes:
    rng = np.random.default_rng(7)
    pixels = rng.integers(0, 255, size=(height, width, 3), dtype=np.uint8)
    buf = io.BytesIO()
    Image.fromarray(pixels, "RGB").save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def make_png(width=120, height=80, mode="RGBA") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (width, height), (200, 30, 30, 128) if mode == "RGBA" else (200, 30, 30)).save(buf, format="PNG")
    return buf.getvalue()


def make_wav(seconds=25.0, sample_rate=8000, channels=2, amplitude=0.0, frequency=220.0) -> bytes:
    frames = int(seconds * sample_rate)
    t = np.arange(frames) / sample_rate
    tone = amplitude * np.sin(2 * np.pi * frequency * t)
    samples = np.repeat(tone[:, None], channels, axis=1)
    ints = (samples * 32767).astype("<i2")
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(ints.tobytes())
    return buf.getvalue()


CUBE_OBJ = b"""# unit cube
v 0 0 0
v 1 0 0
v 1 1 0
v 0 1 0
v 0 0 1
v 1 0 1
v 1 1 1
v 0 1 1
f 1 2 3 4
f 5 8 7 6
f 1 5 6 2
f 2 6 7 3
f 3 7 8 4
f 5 1 4 8
"""


def make_binary_stl(triangles) -> bytes:
    out = bytearray(b"\x00" * 80)
    out += struct.pack("<I", len(triangles))
    for tri in triangles:
        out += struct.pack("<3f", 0.0, 0.0, 0.0)
        for vertex in tri:
            out += struct.pack("<3f", *vertex)
        out += struct.pack("<H", 0)
    return bytes(out)


def make_glb() -> bytes:
    """Single-triangle binary glTF with an indexed primitive."""
    positions = np.array([[0, 0, 0], [1, 0, 0], [0, 1, 0]], dtype="<f4").tobytes()
    indices = np.array([0, 1, 2, 0], dtype="<u2").tobytes()  # padded to 4-byte alignment
    binary = positions + indices
    doc = {
        "asset": {"version": "2.0"},
        "scene": 0,
        "scenes": [{"nodes": [0]}],
        "nodes": [{"mesh": 0}],
        "meshes": [{"primitives": [{"attributes": {"POSITION": 0}, "indices": 1, "mode": 4}]}],
        "buffers": [{"byteLength": len(binary)}],
        "bufferViews": [
            {"buffer": 0, "byteOffset": 0, "byteLength": len(positions)},
            {"buffer": 0, "byteOffset": len(positions), "byteLength": 6},
        ],
        "accessors": [
            {"bufferView": 0, "componentType": 5126, "count": 3, "type": "VEC3"},
            {"bufferView": 1, "componentType": 5123, "count": 3, "type": "SCALAR"},
        ],
    }
    json_chunk = json.dumps(doc).encode("utf-8")
    json_chunk += b" " * (-len(json_chunk) % 4)
    body = (
        struct.pack("<II", len(json_chunk), 0x4E4F534A) + json_chunk
        + struct.pack("<II", len(binary), 0x004E4942) + binary
    )
    return b"glTF" + struct.pack("<II", 2, 12 + len(body)) + body


@pytest.fixture
def jpeg_media():
    return MediaFile(data=make_jpeg(), filename="photo.jpg", content_type="image/jpeg")


@pytest.fixture
def wav_media():
    return MediaFile(data=make_wav(), filename="track.wav", content_type="audio/wav")


@pytest.fixture
def obj_media():
    return MediaFile(data=CUBE_OBJ, filename="cube.obj", content_type="")


@pytest.fixture
def key():
    from assetdrm.encryption.keys import generate_key
    return generate_key()
