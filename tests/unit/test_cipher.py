"""Tests for the authenticated chunked container format."""

import os

import pytest

from assetdrm.encryption import cipher
from assetdrm.encryption.keys import generate_key
from assetdrm.errors import DecryptionError


def _header_end(blob: bytes) -> int:
    header_len = int.from_bytes(blob[len(cipher.MAGIC) + 1:len(cipher.MAGIC) + 5], "big")
    return len(cipher.MAGIC) + 5 + header_len


class TestRoundTrip:
    """Encrypt then decrypt returns the exact plaintext."""

    @pytest.mark.parametrize("size", [0, 1, 1023, 1024, 1025, 3 * 1024 * 1024])
    def test_sizes(self, key, size):
        plaintext = os.urandom(size)
        blob = cipher.encrypt_bytes(plaintext, key, chunk_size=1024)
        out, header = cipher.decrypt_bytes(blob, key)
        assert out == plaintext
        assert header["chunk_size"] == 1024

    def test_ciphertext_hides_plaintext(self, key):
        plaintext = b"\x00" * 4096
        blob = cipher.encrypt_bytes(plaintext, key)
        assert plaintext[:64] not in blob[_header_end(blob):]

    def test_same_input_encrypts_differently(self, key):
        """Fresh nonces per frame: two encryptions never match."""
        assert cipher.encrypt_bytes(b"same", key) != cipher.encrypt_bytes(b"same", key)

    def test_metadata_roundtrip(self, key):
        meta = {"filename": "song.mp3", "content_type": "audio/mpeg", "media_type": "audio"}
        blob = cipher.encrypt_bytes(b"data", key, metadata=meta)
        _, header = cipher.decrypt_bytes(blob, key)
        for name, value in meta.items():
            assert header[name] == value
        assert cipher.read_header(blob)["filename"] == "song.mp3"

    def test_metadata_cannot_override_frame_size(self, key):
        """The header always records the frame size actually used."""
        plaintext = os.urandom(5000)
        blob = cipher.encrypt_bytes(plaintext, key, metadata={"chunk_size": 1024})
        out, header = cipher.decrypt_bytes(blob, key)
        assert out == plaintext
        assert header["chunk_size"] == cipher.DEFAULT_CHUNK_SIZE


class TestAuthentication:
    """Any mismatch between key and ciphertext surfaces as DecryptionError."""

    def test_wrong_key(self, key):
        blob = cipher.encrypt_bytes(b"secret master file", key)
        with pytest.raises(DecryptionError):
            cipher.decrypt_bytes(blob, generate_key())

    def test_malformed_key(self, key):
        blob = cipher.encrypt_bytes(b"secret", key)
        with pytest.raises(DecryptionError):
            cipher.decrypt_bytes(blob, "not-hex")

    def test_flipped_ciphertext_byte(self, key):
        blob = bytearray(cipher.encrypt_bytes(os.urandom(5000), key, chunk_size=1024))
        blob[-20] ^= 0x01
        with pytest.raises(DecryptionError):
            cipher.decrypt_bytes(bytes(blob), key)

    def test_header_is_authenticated(self, key):
        blob = cipher.encrypt_bytes(b"payload", key, metadata={"filename": "a.png"})
        tampered = blob.replace(b'"a.png"', b'"b.png"')
        assert tampered != blob
        with pytest.raises(DecryptionError):
            cipher.decrypt_bytes(tampered, key)

    def test_truncation_detected(self, key):
        blob = cipher.encrypt_bytes(os.urandom(4096), key, chunk_size=1024)
        frame = 1 + cipher.NONCE_SIZE + 4 + 1024 + cipher.TAG_SIZE
        # dropping whole trailing frames leaves a well-formed but unfinished stream
        with pytest.raises(DecryptionError):
            cipher.decrypt_bytes(blob[:-frame], key)
        with pytest.raises(DecryptionError):
            cipher.decrypt_bytes(blob[:-5], key)

    def test_frame_reorder_detected(self, key):
        blob = cipher.encrypt_bytes(os.urandom(3 * 1024), key, chunk_size=1024)
        start = _header_end(blob)
        frame = 1 + cipher.NONCE_SIZE + 4 + 1024 + cipher.TAG_SIZE
        first, second = blob[start:start + frame], blob[start + frame:start + 2 * frame]
        swapped = blob[:start] + second + first + blob[start + 2 * frame:]
        with pytest.raises(DecryptionError):
            cipher.decrypt_bytes(swapped, key)

    def test_trailing_data_rejected(self, key):
        blob = cipher.encrypt_bytes(b"payload", key)
        with pytest.raises(DecryptionError):
            cipher.decrypt_bytes(blob + b"\x00", key)

    @pytest.mark.parametrize("blob", [b"", b"not a container", cipher.MAGIC + b"\x09"])
    def test_garbage_rejected(self, key, blob):
        with pytest.raises(DecryptionError):
            cipher.decrypt_bytes(blob, key)


class TestFiles:
    def test_file_roundtrip(self, tmp_path, key):
        src = tmp_path / "sample.bin"
        data = b"\x00\x01\x02hello world!" * 10
        src.write_bytes(data)

        encrypted = tmp_path / "sample.bin.encrypted"
        cipher.encrypt_file(str(src), str(encrypted), key, chunk_size=64)

        decrypted = tmp_path / "sample.bin.dec"
        meta = cipher.decrypt_file(str(encrypted), str(decrypted), key)

        assert decrypted.read_bytes() == data
        assert meta.get("filename") == "sample.bin"

    def test_failed_decrypt_leaves_no_output(self, tmp_path, key):
        src = tmp_path / "sample.bin"
        src.write_bytes(os.urandom(10_000))
        encrypted = tmp_path / "sample.bin.encrypted"
        cipher.encrypt_file(str(src), str(encrypted), key, chunk_size=1024)

        target = tmp_path / "out.bin"
        with pytest.raises(DecryptionError):
            cipher.decrypt_file(str(encrypted), str(target), generate_key())
        assert not target.exists()
        assert [p.name for p in tmp_path.iterdir() if p.suffix == ".part"] == []
