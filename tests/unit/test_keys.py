"""Tests for asset key generation and parsing."""

import os

import pytest

from assetdrm.encryption import keys
from assetdrm.errors import EntropyUnavailable, InvalidKeyError, ProtectionError


class TestGenerateKey:
    """Test key generation."""

    def test_key_is_64_lowercase_hex(self):
        key = keys.generate_key()
        assert len(key) == 64
        assert key == key.lower()
        assert len(bytes.fromhex(key)) == keys.KEY_SIZE

    def test_keys_are_unique(self):
        """1000 generated keys never collide."""
        generated = {keys.generate_key() for _ in range(1000)}
        assert len(generated) == 1000

    def test_entropy_failure_is_reported(self, monkeypatch):
        def broken(_n):
            raise NotImplementedError("no randomness source")

        monkeypatch.setattr(os, "urandom", broken)
        with pytest.raises(EntropyUnavailable):
            keys.generate_key()


class TestKeyParsing:
    """Test key normalization and rejection of malformed keys."""

    def test_hex_and_raw_forms_agree(self):
        key = keys.generate_key()
        raw = bytes.fromhex(key)
        assert keys.key_to_bytes(key) == raw
        assert keys.key_to_bytes(raw) == raw
        assert keys.key_to_bytes("0x" + key.upper()) == raw
        assert keys.key_to_bytes(f"  {key}\n") == raw

    @pytest.mark.parametrize("bad", ["", "abc", "zz" * 32, "00" * 31, "00" * 33, b"\x00" * 16])
    def test_invalid_keys_rejected(self, bad):
        with pytest.raises(InvalidKeyError):
            keys.key_to_bytes(bad)

    def test_invalid_key_is_value_error(self):
        """Callers that only know about ValueError still catch bad keys."""
        with pytest.raises(ValueError):
            keys.key_to_bytes("not a key")
        assert issubclass(InvalidKeyError, ProtectionError)

    def test_fingerprint_is_stable_and_short(self):
        key = keys.generate_key()
        assert keys.key_fingerprint(key) == keys.key_fingerprint(key.upper())
        assert len(keys.key_fingerprint(key)) == 16
        assert keys.key_fingerprint(key) not in key


class TestKeyFiles:
    def test_save_and_load(self, tmp_path):
        key = keys.generate_key()
        path = tmp_path / "asset.key"
        keys.save_key(str(path), key)
        assert keys.load_key(str(path)) == key

    def test_load_rejects_garbage(self, tmp_path):
        path = tmp_path / "bad.key"
        path.write_text("hello\n")
        with pytest.raises(InvalidKeyError):
            keys.load_key(str(path))
