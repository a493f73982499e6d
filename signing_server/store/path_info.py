"""
Store path metadata and fingerprint construction.

A fingerprint is the string Nix signs in place of a path's contents:

    1;<store path>;<algo>:<nix32 nar hash>;<nar size>;<references>

References are full store paths, sorted, comma separated, and include the
path itself when it refers to itself.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from signing_server.errors import NotFoundError, StoreQueryError
from signing_server.store.nixbase32 import to_nix32_hash

FINGERPRINT_VERSION = "1"


class PathInfo(BaseModel):
    """Metadata for a single store path, as reported by ``nix path-info --json``."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    store_path: str = Field(..., alias="path", description="Full store path")
    nar_hash: str = Field(..., alias="narHash", description="Hash of the NAR serialisation")
    nar_size: int = Field(..., alias="narSize", ge=0, description="Size of the NAR in bytes")
    references: list[str] = Field(default_factory=list, description="Referenced store paths")

    @classmethod
    def from_nix_json(cls, data: Any, store_path: str) -> PathInfo:
        """
        Build a PathInfo from ``nix path-info --json`` output.

        Older Nix prints a list of objects carrying a ``path`` key; newer Nix
        prints an object keyed by store path. Both are accepted.
        """
        if isinstance(data, list):
            if not data:
                raise StoreQueryError(f"nix path-info returned no entries for {store_path}")
            entry = data[0]
            if not isinstance(entry, dict):
                raise StoreQueryError("nix path-info returned unexpected JSON")
            if entry.get("valid") is False:
                raise NotFoundError(f"Store path {entry.get('path', store_path)} is not valid")
        elif isinstance(data, dict):
            if store_path in data:
                entry = data[store_path]
            elif len(data) == 1:
                store_path, entry = next(iter(data.items()))
            else:
                raise StoreQueryError(f"nix path-info returned no entry for {store_path}")
            if entry is None:
                raise NotFoundError(f"Store path {store_path} is not valid")
            entry = {"path": store_path, **entry}
        else:
            raise StoreQueryError("nix path-info returned unexpected JSON")

        try:
            return cls.model_validate(entry)
        except ValueError as e:
            raise StoreQueryError(f"Invalid path info for {store_path}: {e}") from e

    def sorted_references(self) -> list[str]:
        """References in the order Nix prints them."""
        return sorted(set(self.references))

    def fingerprint(self) -> str:
        """
        Build the fingerprint Nix would sign for this path.

        Raises:
            StoreQueryError: If the NAR size is unknown or the hash is unusable
        """
        if self.nar_size == 0:
            raise StoreQueryError(
                f"Cannot fingerprint {self.store_path}: its NAR size is not known"
            )

        return ";".join(
            [
                FINGERPRINT_VERSION,
                self.store_path,
                to_nix32_hash(self.nar_hash),
                str(self.nar_size),
                ",".join(self.sorted_references()),
            ]
        )
