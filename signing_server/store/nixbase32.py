"""
Nix base-32 encoding and hash normalisation.

Nix prints hashes in fingerprints as ``<algo>:<nix32 digest>``. ``nix path-info``
may report them as SRI (``sha256-<base64>``) or as ``<algo>:`` followed by a
base16, nix32 or base64 digest, told apart by length.
"""

from __future__ import annotations

import base64
import binascii

from signing_server.errors import StoreQueryError

# Omits e, o, u and t
NIX32_CHARS = "0123456789abcdfghijklmnpqrsvwxyz"

HASH_SIZES: dict[str, int] = {
    "md5": 16,
    "sha1": 20,
    "sha256": 32,
    "sha512": 64,
}


def nix32_len(size: int) -> int:
    """Length of the nix32 encoding of ``size`` bytes."""
    return (size * 8 - 1) // 5 + 1


def nix32_encode(data: bytes) -> str:
    """Encode bytes with Nix's base-32 alphabet and bit order."""
    if not data:
        return ""

    chars = []
    for n in range(nix32_len(len(data)) - 1, -1, -1):
        b = n * 5
        i, j = divmod(b, 8)
        c = data[i] >> j
        if i < len(data) - 1:
            c |= data[i + 1] << (8 - j)
        chars.append(NIX32_CHARS[c & 0x1F])
    return "".join(chars)


def nix32_decode(text: str, size: int) -> bytes:
    """
    Decode a nix32 string into exactly ``size`` bytes.

    Raises:
        ValueError: On a wrong length, an invalid character or overflowing bits
    """
    if len(text) != nix32_len(size):
        raise ValueError(f"nix32 string has length {len(text)}, expected {nix32_len(size)}")

    out = bytearray(size)
    for n, ch in enumerate(reversed(text)):
        digit = NIX32_CHARS.find(ch)
        if digit < 0:
            raise ValueError(f"invalid nix32 character {ch!r}")
        b = n * 5
        i, j = divmod(b, 8)
        out[i] |= (digit << j) & 0xFF
        carry = digit >> (8 - j)
        if i < size - 1:
            out[i + 1] |= carry
        elif carry:
            raise ValueError("nix32 string has non-zero trailing bits")
    return bytes(out)


def _decode_digest(algo: str, digest: str, sri: bool) -> bytes:
    size = HASH_SIZES[algo]

    if sri:
        raw = base64.b64decode(digest, validate=True)
    elif len(digest) == size * 2:
        raw = bytes.fromhex(digest)
    elif len(digest) == nix32_len(size):
        raw = nix32_decode(digest, size)
    elif len(digest) == ((size + 2) // 3) * 4:
        raw = base64.b64decode(digest, validate=True)
    else:
        raise ValueError(f"digest length {len(digest)} does not match {algo}")

    if len(raw) != size:
        raise ValueError(f"{algo} digest is {len(raw)} bytes, expected {size}")
    return raw


def parse_hash(text: str) -> tuple[str, bytes]:
    """
    Parse a Nix hash string in any supported encoding.

    Returns:
        Tuple of (algorithm name, raw digest bytes)

    Raises:
        StoreQueryError: If the hash cannot be parsed
    """
    colon = text.find(":")
    dash = text.find("-")

    if colon > 0 and (dash < 0 or colon < dash):
        algo, digest, sri = text[:colon], text[colon + 1 :], False
    elif dash > 0:
        algo, digest, sri = text[:dash], text[dash + 1 :], True
    else:
        raise StoreQueryError(f"Hash {text!r} has no algorithm prefix")

    if algo not in HASH_SIZES:
        raise StoreQueryError(f"Unsupported hash algorithm {algo!r}")

    try:
        return algo, _decode_digest(algo, digest, sri)
    except (binascii.Error, ValueError) as e:
        raise StoreQueryError(f"Invalid {algo} hash {text!r}: {e}") from e


def to_nix32_hash(text: str) -> str:
    """Normalise any supported hash encoding to ``<algo>:<nix32>``."""
    algo, raw = parse_hash(text)
    return f"{algo}:{nix32_encode(raw)}"
