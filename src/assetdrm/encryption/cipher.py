from __future__ import annotations

import io
import json
import os
import tempfile
from pathlib import Path
from typing import BinaryIO, Dict, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..errors import DecryptionError, InvalidKeyError
from .keys import KeyLike, key_to_bytes


# Container format:
# MAGIC (6) | version (1) | header_len (4, big-endian) | header JSON bytes
# header JSON includes: {"filename": ..., "content_type": ..., "media_type": ..., "chunk_size": ...}
# Followed by frames: [flag (1) | nonce (12) | ct_len (4) | ciphertext + tag]
# flag is 0x00 for "more frames follow" and 0x01 for the single final frame.
# Each frame's AAD is header bytes | frame index (8, big-endian) | flag, which
# authenticates the header and pins frame order and stream end.

MAGIC = b"ADRM01"
VERSION = 1
NONCE_SIZE = 12
TAG_SIZE = 16
FLAG_MORE = 0x00
FLAG_FINAL = 0x01
DEFAULT_CHUNK_SIZE = 64 * 1024
MAX_HEADER_SIZE = 64 * 1024


def _aead(key: KeyLike) -> AESGCM:
    return AESGCM(key_to_bytes(key))


def _frame_aad(header_bytes: bytes, index: int, flag: int) -> bytes:
    return header_bytes + index.to_bytes(8, "big") + bytes([flag])


def _read_exact(f: BinaryIO, size: int) -> bytes:
    """Read up to `size` bytes, looping over short reads until EOF."""
    parts = []
    remaining = size
    while remaining > 0:
        part = f.read(remaining)
        if not part:
            break
        parts.append(part)
        remaining -= len(part)
    return b"".join(parts)


def _write_header(out: BinaryIO, metadata: Dict[str, object]) -> bytes:
    header_json = json.dumps(metadata, sort_keys=True, default=str).encode("utf-8")
    if len(header_json) > MAX_HEADER_SIZE:
        raise ValueError(f"Header metadata too large ({len(header_json)} bytes)")
    out.write(MAGIC)
    out.write(bytes([VERSION]))
    out.write(len(header_json).to_bytes(4, "big"))
    out.write(header_json)
    return header_json


def _read_header(f: BinaryIO) -> Tuple[Dict[str, object], bytes]:
    magic = _read_exact(f, len(MAGIC))
    if magic != MAGIC:
        raise DecryptionError("Not an encrypted asset container")
    version = f.read(1)
    if not version:
        raise DecryptionError("Truncated container (no version)")
    ver = version[0]
    if ver != VERSION:
        raise DecryptionError(f"Unsupported container version: {ver}")
    header_len_b = _read_exact(f, 4)
    if len(header_len_b) < 4:
        raise DecryptionError("Truncated container (no header length)")
    header_len = int.from_bytes(header_len_b, "big")
    if header_len > MAX_HEADER_SIZE:
        raise DecryptionError(f"Header length {header_len} exceeds limit")
    header_bytes = _read_exact(f, header_len)
    if len(header_bytes) < header_len:
        raise DecryptionError("Truncated header")
    try:
        header = json.loads(header_bytes.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecryptionError(f"Header is not valid JSON: {e}") from e
    if not isinstance(header, dict):
        raise DecryptionError("Header must be a JSON object")
    return header, header_bytes


def encrypt_stream(
    fin: BinaryIO,
    fout: BinaryIO,
    key: KeyLike,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    metadata: Dict[str, object] | None = None,
) -> Dict[str, object]:
    """Stream-encrypt `fin` into `fout` in AES-GCM frames, each with its own nonce.

    The header stores metadata like original filename and content type; it
    is returned so callers can record what was written.

    Raises:
        InvalidKeyError: If `key` is malformed.
        OSError: If reading `fin` or writing `fout` fails.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    aes = _aead(key)
    header: Dict[str, object] = dict(metadata or {})
    header["chunk_size"] = chunk_size
    header_bytes = _write_header(fout, header)

    index = 0
    chunk = _read_exact(fin, chunk_size)
    while True:
        following = _read_exact(fin, chunk_size) if len(chunk) == chunk_size else b""
        flag = FLAG_MORE if following else FLAG_FINAL
        nonce = os.urandom(NONCE_SIZE)
        ct = aes.encrypt(nonce, chunk, _frame_aad(header_bytes, index, flag))
        fout.write(bytes([flag]))
        fout.write(nonce)
        fout.write(len(ct).to_bytes(4, "big"))
        fout.write(ct)
        if flag == FLAG_FINAL:
            break
        chunk = following
        index += 1
    return header


def decrypt_stream(fin: BinaryIO, fout: BinaryIO, key: KeyLike) -> Dict[str, object]:
    """Decrypt a stream written by `encrypt_stream`. Returns the header dict.

    Plaintext is written frame by frame as each frame authenticates; callers
    that must not expose partial output should write to a scratch buffer.

    Raises:
        DecryptionError: Wrong key, malformed key, tampering or truncation.
    """
    try:
        aes = _aead(key)
    except InvalidKeyError as e:
        raise DecryptionError(f"Invalid key material: {e}") from e

    header, header_bytes = _read_header(fin)
    chunk_size = header.get("chunk_size")
    if not isinstance(chunk_size, int) or chunk_size <= 0:
        raise DecryptionError("Header has no valid chunk_size")

    index = 0
    while True:
        flag_b = fin.read(1)
        if not flag_b:
            raise DecryptionError("Truncated ciphertext (missing final frame)")
        flag = flag_b[0]
        if flag not in (FLAG_MORE, FLAG_FINAL):
            raise DecryptionError(f"Invalid frame flag {flag:#x} at frame {index}")
        nonce = _read_exact(fin, NONCE_SIZE)
        if len(nonce) < NONCE_SIZE:
            raise DecryptionError("Truncated frame nonce")
        ct_len_b = _read_exact(fin, 4)
        if len(ct_len_b) < 4:
            raise DecryptionError("Truncated chunk length")
        ct_len = int.from_bytes(ct_len_b, "big")
        if ct_len < TAG_SIZE or ct_len > chunk_size + TAG_SIZE:
            raise DecryptionError(f"Invalid frame length {ct_len} at frame {index}")
        ct = _read_exact(fin, ct_len)
        if len(ct) < ct_len:
            raise DecryptionError("Truncated ciphertext")
        try:
            pt = aes.decrypt(nonce, ct, _frame_aad(header_bytes, index, flag))
        except InvalidTag:
            raise DecryptionError(
                "Authentication failed: wrong key or corrupted ciphertext"
            ) from None
        fout.write(pt)
        if flag == FLAG_FINAL:
            break
        index += 1

    if fin.read(1):
        raise DecryptionError("Unexpected data after final frame")
    return header


def encrypt_bytes(
    plaintext: bytes,
    key: KeyLike,
    metadata: Dict[str, object] | None = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> bytes:
    out = io.BytesIO()
    encrypt_stream(io.BytesIO(plaintext), out, key, chunk_size=chunk_size, metadata=metadata)
    return out.getvalue()


def decrypt_bytes(ciphertext: bytes, key: KeyLike) -> Tuple[bytes, Dict[str, object]]:
    out = io.BytesIO()
    metadata = decrypt_stream(io.BytesIO(ciphertext), out, key)
    return out.getvalue(), metadata


def read_header(ciphertext: bytes) -> Dict[str, object]:
    """Peek at a container's header without authenticating it."""
    header, _ = _read_header(io.BytesIO(ciphertext))
    return header


def _atomic_output(output_path: str):
    out = Path(output_path)
    fd, tmp = tempfile.mkstemp(prefix=f".{out.name}.", suffix=".part", dir=out.parent or ".")
    return out, os.fdopen(fd, "wb"), Path(tmp)


def encrypt_file(
    input_path: str,
    output_path: str,
    key: KeyLike,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    metadata: Dict[str, object] | None = None,
) -> Dict[str, object]:
    """Encrypt a file on disk. The output only appears once it is complete."""
    metadata = dict(metadata or {})
    metadata.setdefault("filename", Path(input_path).name)
    out, fout, tmp = _atomic_output(output_path)
    try:
        with open(input_path, "rb") as fin, fout:
            header = encrypt_stream(fin, fout, key, chunk_size=chunk_size, metadata=metadata)
        os.replace(tmp, out)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    return header


def decrypt_file(input_path: str, output_path: str, key: KeyLike) -> Dict[str, object]:
    """Decrypt a file on disk. A failed decrypt leaves no plaintext behind."""
    out, fout, tmp = _atomic_output(output_path)
    try:
        with open(input_path, "rb") as fin, fout:
            header = decrypt_stream(fin, fout, key)
        os.replace(tmp, out)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
    return header
