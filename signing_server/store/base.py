"""
Base store query provider.

The signing endpoints only need to look up path metadata. Providers implement
this interface so the router can be run against Nix or an in-memory fixture.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from signing_server.store.path_info import PathInfo


class StoreQueryProvider(ABC):
    """Abstract read-only view of a Nix store."""

    # Shown in log records
    name: str = ""

    @abstractmethod
    async def query_path_info(self, store_path: str) -> PathInfo:
        """
        Look up metadata for a store path.

        Args:
            store_path: Full store path, e.g. ``/nix/store/<hash>-<name>``

        Returns:
            PathInfo for the path

        Raises:
            NotFoundError: If the path is not valid in the store
            StoreQueryError: If the store could not be queried
        """
        raise NotImplementedError
