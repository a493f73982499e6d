"""
Store query provider backed by the ``nix`` command line.

Each lookup runs its own ``nix path-info --json`` subprocess, so concurrent
requests never share query state. Failures are reported, never retried.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path

from signing_server.errors import NotFoundError, StoreQueryError, StoreQueryTimeoutError
from signing_server.store.base import StoreQueryProvider
from signing_server.store.path_info import PathInfo

logger = logging.getLogger(__name__)

# Substrings nix prints on stderr for paths it does not know
NOT_FOUND_MARKERS = (
    "is not valid",
    "does not exist",
    "is not in the Nix store",
    "don't know how to build",
)


class NixCliStoreProvider(StoreQueryProvider):
    """Query path metadata with ``nix path-info``."""

    name = "nix-cli"

    def __init__(
        self,
        nix_bin: str = "nix",
        timeout_sec: float = 30.0,
        store_dir: str = "/nix/store",
        check_exists: bool = True,
    ):
        self.nix_bin = nix_bin
        self.timeout_sec = timeout_sec
        self.store_dir = store_dir.rstrip("/")
        self.check_exists = check_exists

    def build_command(self, store_path: str) -> list[str]:
        """Command line used to query a store path."""
        return [
            self.nix_bin,
            "--extra-experimental-features",
            "nix-command",
            "path-info",
            "--json",
            store_path,
        ]

    async def query_path_info(self, store_path: str) -> PathInfo:
        """Run ``nix path-info --json`` for one store path."""
        if not store_path.startswith(self.store_dir + "/"):
            raise NotFoundError(f"{store_path} is not in the store {self.store_dir}")
        if self.check_exists and not os.path.lexists(store_path):
            raise NotFoundError(f"Store path {store_path} does not exist")

        cmd = self.build_command(store_path)
        logger.debug("%s: running %s", self.name, " ".join(cmd))

        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise StoreQueryError(f"Failed to run {self.nix_bin}: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(),
                timeout=self.timeout_sec,
            )
        except asyncio.TimeoutError as e:
            process.kill()
            await process.wait()
            raise StoreQueryTimeoutError(
                f"nix path-info timed out after {self.timeout_sec} seconds for {store_path}"
            ) from e

        stderr_text = stderr.decode("utf-8", errors="replace").strip()

        if process.returncode != 0:
            if any(marker in stderr_text for marker in NOT_FOUND_MARKERS):
                raise NotFoundError(f"Store path {store_path} is not valid: {stderr_text}")
            raise StoreQueryError(
                f"nix path-info exited with {process.returncode} for {store_path}: "
                f"{stderr_text[:500]}"
            )

        try:
            data = json.loads(stdout.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StoreQueryError(f"nix path-info returned invalid JSON for {store_path}") from e

        return PathInfo.from_nix_json(data, store_path)


def default_store_dir() -> str:
    """Store directory, honouring ``NIX_STORE_DIR`` like nix itself."""
    return str(Path(os.environ.get("NIX_STORE_DIR", "/nix/store")))
