"""
In-memory store query provider.

Serves path metadata from a dict, e.g. captured ``nix path-info --json``
output, without touching a real store.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from signing_server.errors import NotFoundError, StoreQueryError
from signing_server.store.base import StoreQueryProvider
from signing_server.store.path_info import PathInfo


class FixtureStoreProvider(StoreQueryProvider):
    """Store provider backed by a fixed set of PathInfo entries."""

    name = "fixture"

    def __init__(self, path_infos: list[PathInfo] | None = None):
        self._path_infos = {info.store_path: info for info in path_infos or []}

    @classmethod
    def from_nix_json(cls, data: Any) -> FixtureStoreProvider:
        """Build from ``nix path-info --json`` output (list or dict form)."""
        if isinstance(data, dict):
            entries = [{"path": path, **info} for path, info in data.items() if info]
        elif isinstance(data, list):
            entries = [e for e in data if isinstance(e, dict) and e.get("valid", True)]
        else:
            raise StoreQueryError("Path info JSON must be a list or an object")
        try:
            return cls([PathInfo.model_validate(entry) for entry in entries])
        except ValueError as e:
            raise StoreQueryError(f"Invalid path info: {e}") from e

    @classmethod
    def from_file(cls, path: str | Path) -> FixtureStoreProvider:
        """Load ``nix path-info --json`` output saved to a file."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreQueryError(f"Failed to load path info from {path}: {e}") from e
        return cls.from_nix_json(data)

    def store_paths(self) -> list[str]:
        return sorted(self._path_infos)

    async def query_path_info(self, store_path: str) -> PathInfo:
        try:
            return self._path_infos[store_path]
        except KeyError:
            raise NotFoundError(f"Store path {store_path} is not valid") from None
