"""
Error taxonomy for the signing server.

Startup errors (ConfigError, KeyLoadError) terminate the process before the
listener binds. Everything else is raised per request and mapped to an HTTP
status by the exception handler registered in signing_server.main.
"""

from __future__ import annotations


class SigningServerError(Exception):
    """Base class for all signing server errors."""

    status_code: int = 500


class ConfigError(SigningServerError):
    """Invalid startup configuration."""


class KeyLoadError(SigningServerError):
    """The secret key file could not be loaded."""


class KeyUnavailableError(SigningServerError):
    """The signing key has already been released."""

    status_code = 503


class MalformedInputError(SigningServerError):
    """Request body failed validation."""

    status_code = 400


class PayloadTooLargeError(SigningServerError):
    """Request body exceeded the configured limit."""

    status_code = 413


class NotFoundError(SigningServerError):
    """Store path is not known to the store."""

    status_code = 404


class StoreQueryError(SigningServerError):
    """Querying the store failed."""

    status_code = 502


class StoreQueryTimeoutError(StoreQueryError):
    """Querying the store took longer than allowed."""

    status_code = 504
