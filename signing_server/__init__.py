"""Nix cache signing server."""

__version__ = "0.1.0"
