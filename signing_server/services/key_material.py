"""
Secret key handling for the signing server.

Reads a Nix secret key file (``<name>:<base64 of secret seed + public key>``),
derives the public key and signs fingerprints with Ed25519. Signatures are
deterministic and byte-identical to those produced by ``nix store sign``.
"""

from __future__ import annotations

import base64
import binascii
import logging
from pathlib import Path

import nacl.encoding
import nacl.signing

from signing_server.errors import KeyLoadError, KeyUnavailableError
from signing_server.services.signature_codec import encode_signature

logger = logging.getLogger(__name__)

SEED_BYTES = 32
PUBLIC_KEY_BYTES = 32
SECRET_KEY_BYTES = SEED_BYTES + PUBLIC_KEY_BYTES


class SigningKey:
    """A loaded Nix signing key.

    Built once at startup and shared read-only by every request handler.
    """

    def __init__(self, name: str, secret: bytes, public: bytes):
        self.name = name
        self.public = public
        self._signing_key: nacl.signing.SigningKey | None = nacl.signing.SigningKey(
            secret, encoder=nacl.encoding.RawEncoder
        )

    @classmethod
    def parse(cls, contents: str) -> SigningKey:
        """
        Parse the contents of a Nix secret key file.

        Args:
            contents: File contents, surrounding whitespace is ignored

        Returns:
            The loaded key

        Raises:
            KeyLoadError: If the contents do not describe a valid key
        """
        name, sep, payload = contents.strip().partition(":")
        if not sep:
            raise KeyLoadError("Malformed secret key: missing ':' separator")
        if not name:
            raise KeyLoadError("Malformed secret key: empty key name")

        try:
            key_bytes = base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as e:
            raise KeyLoadError(f"Malformed secret key '{name}': invalid base64") from e

        if len(key_bytes) != SECRET_KEY_BYTES:
            raise KeyLoadError(
                f"Malformed secret key '{name}': payload is {len(key_bytes)} bytes, "
                f"expected {SECRET_KEY_BYTES}"
            )

        secret, public = key_bytes[:SEED_BYTES], key_bytes[SEED_BYTES:]
        key = cls(name, secret, public)

        # libsodium mixes the stored public half into every signature
        derived = key._require_key().verify_key.encode()
        if derived != public:
            raise KeyLoadError(
                f"Malformed secret key '{name}': public half does not match the secret seed"
            )

        return key

    def public_key_string(self) -> str:
        """Return the public key in Nix's ``name:base64`` form."""
        return f"{self.name}:{base64.b64encode(self.public).decode('ascii')}"

    def sign(self, message: bytes) -> bytes:
        """Return the 64-byte detached Ed25519 signature over ``message``."""
        return self._require_key().sign(message).signature

    def sign_fingerprint(self, fingerprint: bytes | str) -> str:
        """Sign a fingerprint and encode it as ``name:base64``."""
        if isinstance(fingerprint, str):
            fingerprint = fingerprint.encode("utf-8")
        return encode_signature(self.name, self.sign(fingerprint))

    @property
    def is_loaded(self) -> bool:
        return self._signing_key is not None

    def close(self) -> None:
        """Drop the secret key material. Later signing attempts fail."""
        if self._signing_key is not None:
            self._signing_key = None
            logger.info("Released signing key '%s'", self.name)

    def _require_key(self) -> nacl.signing.SigningKey:
        if self._signing_key is None:
            raise KeyUnavailableError(f"Signing key '{self.name}' has been released")
        return self._signing_key

    def __repr__(self) -> str:
        return f"SigningKey(name={self.name!r}, public={self.public_key_string()!r})"


def load_signing_key(path: str | Path) -> SigningKey:
    """
    Load a signing key from a Nix secret key file.

    Raises:
        KeyLoadError: If the file cannot be read or is malformed
    """
    key_path = Path(path)
    try:
        contents = key_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise KeyLoadError(f"Failed to read {key_path}: {e}") from e

    key = SigningKey.parse(contents)
    logger.debug("Loaded signing key '%s' from %s", key.name, key_path)
    return key
