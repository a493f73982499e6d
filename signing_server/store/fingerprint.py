"""
Fingerprint builder.

Turns a signing request into the exact bytes that get signed, either by
resolving a store path through a StoreQueryProvider or by accepting a
caller-supplied fingerprint after a shape check.
"""

from __future__ import annotations

import logging

from signing_server.errors import MalformedInputError
from signing_server.store.base import StoreQueryProvider
from signing_server.store.path_info import FINGERPRINT_VERSION

logger = logging.getLogger(__name__)

FINGERPRINT_PREFIX = f"{FINGERPRINT_VERSION};".encode("ascii")


class FingerprintBuilder:
    """Builds fingerprints for the signing endpoints."""

    def __init__(self, provider: StoreQueryProvider):
        self.provider = provider

    async def resolve_by_name(self, store_path: str) -> str:
        """
        Build the fingerprint for a store path known to the store.

        Raises:
            NotFoundError: If the store does not know the path
            StoreQueryError: If the store query fails
        """
        logger.debug(
            "getting path info for store path '%s' from %s store", store_path, self.provider.name
        )
        path_info = await self.provider.query_path_info(store_path)
        fingerprint = path_info.fingerprint()
        logger.debug("fingerprint for '%s': %s", store_path, fingerprint)
        return fingerprint

    @staticmethod
    def accept_raw(data: bytes) -> bytes:
        """
        Validate a caller-supplied fingerprint and return it unchanged.

        Raises:
            MalformedInputError: If the fingerprint does not start with ``1;``
                or is not UTF-8
        """
        if not data.startswith(FINGERPRINT_PREFIX):
            raise MalformedInputError(
                f"Fingerprint must start with '{FINGERPRINT_PREFIX.decode()}'"
            )
        try:
            data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedInputError("Fingerprint is not valid UTF-8") from e
        return data
