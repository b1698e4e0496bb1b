"""Error taxonomy for the asset-protection pipeline.

Cryptographic and key failures always propagate to the caller. Preview
failures are recovered inside :mod:`assetdrm.preview.dispatch` and never
escape it. ``KeyNotAvailable`` is not a failure at all: it is the normal
state of an asset the caller has not purchased yet, so it deliberately does
not derive from :class:`ProtectionError`.
"""

from __future__ import annotations


class ProtectionError(Exception):
    """Base class for asset-protection failures."""


class EntropyUnavailable(ProtectionError):
    """The platform's secure random source could not produce key material."""


class InvalidKeyError(ProtectionError, ValueError):
    """A key string or byte sequence is not a valid 256-bit key."""


class DecryptionError(ProtectionError):
    """Ciphertext could not be authenticated with the supplied key.

    Raised for a wrong key, tampered or truncated ciphertext, or input that
    is not an encrypted container at all.
    """


class MediaReadError(ProtectionError, OSError):
    """The source media could not be read."""


class UnsupportedFormat(ProtectionError):
    """A preview generator cannot decode or render its input."""


class InvalidUpload(ProtectionError, ValueError):
    """An upload failed type or size validation."""


class InvalidListing(ProtectionError, ValueError):
    """Listing fields (title, royalty, collaborators) are invalid."""


class KeyNotAvailable(LookupError):
    """No decryption key has been released to the caller for this asset."""
