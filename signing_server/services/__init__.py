"""Key material and signature services for the signing server."""

from signing_server.services.key_material import SigningKey, load_signing_key
from signing_server.services.signature_codec import (
    decode_signature,
    encode_signature,
    verify_signature,
)

__all__ = [
    "SigningKey",
    "load_signing_key",
    "encode_signature",
    "decode_signature",
    "verify_signature",
]
