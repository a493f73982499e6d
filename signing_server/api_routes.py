"""
Signing API routes.

Endpoints:
- GET  /publickey        - Public half of the loaded key
- POST /sign-store-path  - Sign a store path known to the local store
- POST /sign             - Sign a caller-supplied fingerprint

Every endpoint answers with a plain text body. The same routes are also served
under the versioned prefix /_api/v1.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse

from signing_server.errors import KeyUnavailableError, MalformedInputError, PayloadTooLargeError
from signing_server.services.key_material import SigningKey
from signing_server.store.fingerprint import FingerprintBuilder

logger = logging.getLogger(__name__)

API_V1_PREFIX = "/_api/v1"

router = APIRouter()


# =============================================================================
# Dependencies
# =============================================================================


def get_signing_key(request: Request) -> SigningKey:
    """Shared signing key, refusing to hand out a released one."""
    key: SigningKey | None = getattr(request.app.state, "signing_key", None)
    if key is None or not key.is_loaded:
        raise KeyUnavailableError("Signing key is not loaded")
    return key


def get_fingerprint_builder(request: Request) -> FingerprintBuilder:
    return request.app.state.fingerprint_builder


async def read_bounded_body(request: Request) -> bytes:
    """Read the whole request body, failing once it exceeds the size limit."""
    limit: int = request.app.state.max_body_bytes

    content_length = request.headers.get("content-length", "")
    if content_length.isdigit() and int(content_length) > limit:
        raise PayloadTooLargeError(f"Request body of {content_length} bytes exceeds {limit}")

    body = bytearray()
    async for chunk in request.stream():
        body += chunk
        if len(body) > limit:
            raise PayloadTooLargeError(f"Request body exceeds {limit} bytes")

    return bytes(body)


# =============================================================================
# Endpoints
# =============================================================================


@router.get("/publickey", response_class=PlainTextResponse)
async def public_key(key: SigningKey = Depends(get_signing_key)) -> str:
    """Return the public key as ``name:base64``."""
    return key.public_key_string()


@router.post("/sign-store-path", response_class=PlainTextResponse)
async def sign_store_path(
    body: bytes = Depends(read_bounded_body),
    key: SigningKey = Depends(get_signing_key),
    builder: FingerprintBuilder = Depends(get_fingerprint_builder),
) -> str:
    """Resolve a store path's fingerprint through the store and sign it."""
    try:
        store_path = body.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise MalformedInputError("Store path is not valid UTF-8") from e

    if not store_path:
        raise MalformedInputError("Request body must contain a store path")

    fingerprint = await builder.resolve_by_name(store_path)
    signature = key.sign_fingerprint(fingerprint)

    logger.info("signed store path '%s'", store_path)
    return signature


@router.post("/sign", response_class=PlainTextResponse)
async def sign(
    body: bytes = Depends(read_bounded_body),
    key: SigningKey = Depends(get_signing_key),
) -> str:
    """Sign a fingerprint supplied by the caller, after a shape check."""
    fingerprint = FingerprintBuilder.accept_raw(body)
    signature = key.sign_fingerprint(fingerprint)

    logger.info("signed fingerprint of %d bytes", len(fingerprint))
    return signature
