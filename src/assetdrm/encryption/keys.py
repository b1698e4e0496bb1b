"""Per-asset symmetric key generation and serialization.

Keys are 256 bits of OS entropy carried as 64 lowercase hex characters. That
string is what gets submitted as a contract call argument and what a buyer
later reads back, so the encoding must compare equal byte-for-byte.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Union

from ..errors import EntropyUnavailable, InvalidKeyError

KEY_SIZE = 32

KeyLike = Union[str, bytes]


def generate_key() -> str:
    """Generate a fresh random 256-bit key as a hex string.

    Raises:
        EntropyUnavailable: If the OS random source cannot be used.
    """
    try:
        raw = os.urandom(KEY_SIZE)
    except (NotImplementedError, OSError) as e:
        raise EntropyUnavailable(f"Secure random source unavailable: {e}") from e
    return raw.hex()


def key_to_bytes(key: KeyLike) -> bytes:
    """Return the raw 32 key bytes for a hex key string or raw key bytes.

    Raises:
        InvalidKeyError: If the key is empty, not hex, or the wrong length.
    """
    if isinstance(key, (bytes, bytearray)):
        if len(key) != KEY_SIZE:
            raise InvalidKeyError(f"Key must be {KEY_SIZE} bytes, got {len(key)}")
        return bytes(key)
    if not isinstance(key, str):
        raise InvalidKeyError(f"Unsupported key type: {type(key).__name__}")

    text = key.strip()
    if text[:2].lower() == "0x":
        text = text[2:]
    if not text:
        raise InvalidKeyError("Key is empty")
    try:
        raw = bytes.fromhex(text)
    except ValueError as e:
        raise InvalidKeyError("Key is not a hex string") from e
    if len(raw) != KEY_SIZE:
        raise InvalidKeyError(f"Key must encode {KEY_SIZE} bytes, got {len(raw)}")
    return raw


def key_fingerprint(key: KeyLike) -> str:
    """Short SHA-256 fingerprint of a key, safe to log or display."""
    return hashlib.sha256(key_to_bytes(key)).hexdigest()[:16]


def save_key(path: str, key: KeyLike) -> None:
    Path(path).write_text(key_to_bytes(key).hex() + "\n")


def load_key(path: str) -> str:
    text = Path(path).read_text()
    return key_to_bytes(text).hex()
