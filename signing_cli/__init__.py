"""Command-line interface for the Nix cache signing server."""

from signing_server import __version__

__all__ = ["__version__"]
