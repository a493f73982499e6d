"""Store metadata lookup and fingerprint construction."""

from signing_server.store.base import StoreQueryProvider
from signing_server.store.fingerprint import FingerprintBuilder
from signing_server.store.fixture import FixtureStoreProvider
from signing_server.store.nix_cli import NixCliStoreProvider
from signing_server.store.path_info import PathInfo

__all__ = [
    "StoreQueryProvider",
    "FingerprintBuilder",
    "FixtureStoreProvider",
    "NixCliStoreProvider",
    "PathInfo",
]
