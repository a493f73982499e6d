"""
Signature codec for Nix-style detached signatures.

Nix stores signatures and public keys as ``<name>:<base64>``.
"""

from __future__ import annotations

import base64
import binascii

import nacl.encoding
import nacl.exceptions
import nacl.signing

from signing_server.errors import MalformedInputError

SIGNATURE_BYTES = 64
PUBLIC_KEY_BYTES = 32


def encode_signature(name: str, sig_bytes: bytes) -> str:
    """Encode raw signature bytes as ``name:base64``."""
    return f"{name}:{base64.b64encode(sig_bytes).decode('ascii')}"


def split_named_value(text: str) -> tuple[str, bytes]:
    """
    Split a ``name:base64`` string into its name and decoded payload.

    Raises:
        MalformedInputError: If the separator is missing or the payload is not base64
    """
    name, sep, payload = text.strip().partition(":")
    if not sep or not name:
        raise MalformedInputError(f"Expected '<name>:<base64>', got {text!r}")

    try:
        return name, base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedInputError(f"Invalid base64 payload for '{name}': {e}") from e


def decode_signature(text: str) -> tuple[str, bytes]:
    """Decode a ``name:base64`` signature into (name, 64 signature bytes)."""
    name, sig_bytes = split_named_value(text)
    if len(sig_bytes) != SIGNATURE_BYTES:
        raise MalformedInputError(
            f"Signature '{name}' is {len(sig_bytes)} bytes, expected {SIGNATURE_BYTES}"
        )
    return name, sig_bytes


def verify_signature(public_key: str, message: bytes, signature: str) -> bool:
    """
    Check a signature string against a ``name:base64`` public key.

    The key name must match the signature name, as it does in Nix.

    Args:
        public_key: Public key string as printed by ``/publickey``
        message: The exact bytes that were signed (the fingerprint)
        signature: Signature string as returned by the signing endpoints

    Returns:
        True if the signature is valid for this key and message
    """
    key_name, key_bytes = split_named_value(public_key)
    sig_name, sig_bytes = decode_signature(signature)

    if key_name != sig_name or len(key_bytes) != PUBLIC_KEY_BYTES:
        return False

    try:
        verify_key = nacl.signing.VerifyKey(key_bytes, encoder=nacl.encoding.RawEncoder)
        verify_key.verify(message, sig_bytes)
        return True
    except nacl.exceptions.BadSignatureError:
        return False
