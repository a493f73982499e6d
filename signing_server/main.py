"""
Nix Cache Signing Server - FastAPI application.

Holds one Nix signing key in memory and signs store paths and fingerprints
over HTTP, producing the same signatures as ``nix store sign``.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from http import HTTPStatus

import structlog
import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from signing_server import __version__
from signing_server.api_routes import API_V1_PREFIX, router as signing_router
from signing_server.config import ServerConfig
from signing_server.errors import SigningServerError
from signing_server.logging_setup import TRACE
from signing_server.services.key_material import SigningKey, load_signing_key
from signing_server.store.base import StoreQueryProvider
from signing_server.store.fingerprint import FingerprintBuilder
from signing_server.store.nix_cli import NixCliStoreProvider

logger = logging.getLogger(__name__)

DEFAULT_MAX_BODY_BYTES = 64 * 1024


def create_app(
    signing_key: SigningKey,
    provider: StoreQueryProvider,
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
) -> FastAPI:
    """
    Build the signing server application.

    Args:
        signing_key: Loaded key, shared read-only by all requests
        provider: Store query provider used by /sign-store-path
        max_body_bytes: Largest request body accepted

    Returns:
        The FastAPI application. Leaving its lifespan releases the key.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("serving public key %s", signing_key.public_key_string())
        try:
            yield
        finally:
            # uvicorn has drained in-flight requests by now
            signing_key.close()

    app = FastAPI(
        title="Nix Cache Signing Server",
        description="Signs Nix store paths with a centrally held key",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )

    app.state.signing_key = signing_key
    app.state.fingerprint_builder = FingerprintBuilder(provider)
    app.state.max_body_bytes = max_body_bytes

    app.include_router(signing_router)
    app.include_router(signing_router, prefix=API_V1_PREFIX)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "healthy"}

    @app.middleware("http")
    async def trace_requests(request: Request, call_next) -> Response:  # type: ignore[no-untyped-def]
        """Bind request context for log records and trace each request."""
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:16]
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            uri=request.url.path,
            # TODO: honour X-Forwarded-For once a trusted proxy list is configurable
            source=request.client.host if request.client else "<unknown>",
        )

        start = time.perf_counter()
        logger.log(TRACE, "Got request")

        response = await call_next(request)

        latency_us = int((time.perf_counter() - start) * 1_000_000)
        structlog.contextvars.bind_contextvars(
            status=response.status_code,
            latency=f"{latency_us}μs",
        )
        logger.log(TRACE, "Responded")

        response.headers["x-request-id"] = request_id
        return response

    @app.exception_handler(SigningServerError)
    async def signing_error_handler(request: Request, exc: SigningServerError) -> PlainTextResponse:
        """Map per-request errors to plain text responses."""
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
            body = HTTPStatus(exc.status_code).phrase
        else:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
            body = str(exc)
        return PlainTextResponse(body, status_code=exc.status_code)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(
        request: Request, exc: StarletteHTTPException
    ) -> PlainTextResponse:
        """Plain text bodies for routing errors such as 404."""
        return PlainTextResponse(str(exc.detail), status_code=exc.status_code)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> PlainTextResponse:
        """Global exception handler for unhandled errors."""
        logger.exception("Unhandled exception: %s", exc)
        return PlainTextResponse("Something went wrong", status_code=500)

    return app


def build_app(config: ServerConfig) -> FastAPI:
    """
    Load the key and wire the application for a configuration.

    Raises:
        KeyLoadError: If the secret key file cannot be loaded
    """
    signing_key = load_signing_key(config.secret_key_file)
    provider = NixCliStoreProvider(
        nix_bin=config.nix_bin,
        timeout_sec=config.store_query_timeout,
        store_dir=config.store_dir,
    )
    return create_app(signing_key, provider, max_body_bytes=config.max_body_bytes)


def serve(config: ServerConfig) -> None:
    """Run the signing server until it is signalled to stop."""
    app = build_app(config)

    logger.info("listening on %s", config.bind)
    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_config=None,
        access_log=False,
    )
