"""
Nix Cache Signing Server CLI.

Usage:
    python -m signing_cli serve --bind [::]:8080 --secret-key-file /etc/secret-key -vv
    python -m signing_cli public-key --secret-key-file /etc/secret-key
    python -m signing_cli fingerprint /nix/store/...-hello-2.12.1
    python -m signing_cli sign --secret-key-file /etc/secret-key --store-path /nix/store/...
    python -m signing_cli probe --url http://localhost:8080 --secret-key-file /etc/secret-key
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Annotated, Optional

import httpx
import typer

from signing_server.config import DEFAULT_BIND, LoggerStyle, build_config
from signing_server.errors import (
    ConfigError,
    KeyLoadError,
    SigningServerError,
)
from signing_server.logging_setup import configure_logging
from signing_server.main import serve as serve_app
from signing_server.services.key_material import load_signing_key
from signing_server.store.base import StoreQueryProvider
from signing_server.store.fingerprint import FingerprintBuilder
from signing_server.store.fixture import FixtureStoreProvider
from signing_server.store.nix_cli import NixCliStoreProvider, default_store_dir

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="nix-cache-signing-server",
    help="Nix Cache Signing Server - sign store paths with a centrally held key",
    add_completion=False,
)

SecretKeyOption = Annotated[
    Path,
    typer.Option("--secret-key-file", "-k", help="Path to the Nix secret key file"),
]

PathInfoOption = Annotated[
    Optional[Path],
    typer.Option(
        "--path-info-json",
        help="Read path info from saved 'nix path-info --json' output instead of nix",
    ),
]


def _fail(message: str) -> typer.Exit:
    typer.echo(f"[ERROR] {message}", err=True)
    return typer.Exit(code=1)


def _provider(path_info_json: Path | None) -> StoreQueryProvider:
    if path_info_json is not None:
        return FixtureStoreProvider.from_file(path_info_json)
    return NixCliStoreProvider(store_dir=default_store_dir())


@app.command()
def serve(
    bind: Annotated[
        Optional[str],
        typer.Option("--bind", help=f"Address to listen on [default: {DEFAULT_BIND}]"),
    ] = None,
    secret_key_file: Annotated[
        Optional[Path],
        typer.Option("--secret-key-file", "-k", help="Path to the Nix secret key file"),
    ] = None,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Enable debug logs, -vv for trace"),
    ] = 0,
    log_style: Annotated[
        Optional[LoggerStyle],
        typer.Option("--logger", help="Which logger to use"),
    ] = None,
    log_directives: Annotated[
        Optional[str],
        typer.Option("--log-directives", help="Comma-separated log filter directives"),
    ] = None,
    config_file: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="YAML configuration file"),
    ] = None,
    store_query_timeout: Annotated[
        Optional[float],
        typer.Option("--store-query-timeout", help="Timeout for a store query in seconds"),
    ] = None,
    max_body_bytes: Annotated[
        Optional[int],
        typer.Option("--max-body-bytes", help="Largest request body accepted"),
    ] = None,
    nix_bin: Annotated[
        Optional[str],
        typer.Option("--nix-bin", help="nix executable used for store queries"),
    ] = None,
) -> None:
    """
    Start the signing server.

    Loads the secret key once, then serves /publickey, /sign-store-path and
    /sign until signalled to stop. Exits non-zero if the configuration or the
    key cannot be loaded.
    """
    try:
        config = build_config(
            config_file,
            bind=bind,
            secret_key_file=secret_key_file,
            verbosity=verbose or None,
            logger=log_style,
            log_directives=log_directives,
            store_query_timeout=store_query_timeout,
            max_body_bytes=max_body_bytes,
            nix_bin=nix_bin,
        )
        configure_logging(config.verbosity, config.logger, config.log_directives)
    except ConfigError as e:
        raise _fail(str(e)) from e

    try:
        serve_app(config)
    except KeyLoadError as e:
        logger.error("%s", e)
        raise typer.Exit(code=1) from e


@app.command("public-key")
def public_key(secret_key_file: SecretKeyOption) -> None:
    """Print the public key for a secret key file."""
    try:
        key = load_signing_key(secret_key_file)
    except KeyLoadError as e:
        raise _fail(str(e)) from e
    typer.echo(key.public_key_string())


@app.command()
def fingerprint(
    store_path: Annotated[str, typer.Argument(help="Store path to fingerprint")],
    path_info_json: PathInfoOption = None,
) -> None:
    """Print the fingerprint Nix would sign for a store path."""
    try:
        builder = FingerprintBuilder(_provider(path_info_json))
        typer.echo(asyncio.run(builder.resolve_by_name(store_path)))
    except SigningServerError as e:
        raise _fail(str(e)) from e


@app.command()
def sign(
    secret_key_file: SecretKeyOption,
    store_path: Annotated[
        Optional[str],
        typer.Option("--store-path", "-s", help="Store path to sign"),
    ] = None,
    fingerprint_text: Annotated[
        Optional[str],
        typer.Option("--fingerprint", "-f", help="Fingerprint to sign as-is"),
    ] = None,
    path_info_json: PathInfoOption = None,
) -> None:
    """
    Sign a store path or fingerprint locally.

    Uses the same engine as the server, without starting it.
    """
    if (store_path is None) == (fingerprint_text is None):
        raise _fail("Pass exactly one of --store-path or --fingerprint")

    try:
        key = load_signing_key(secret_key_file)
        if store_path is not None:
            builder = FingerprintBuilder(_provider(path_info_json))
            data = asyncio.run(builder.resolve_by_name(store_path)).encode("utf-8")
        else:
            data = FingerprintBuilder.accept_raw(fingerprint_text.encode("utf-8"))  # type: ignore[union-attr]
        typer.echo(key.sign_fingerprint(data))
    except SigningServerError as e:
        raise _fail(str(e)) from e


@app.command()
def probe(
    url: Annotated[
        str,
        typer.Option("--url", "-u", help="Base URL of a running signing server"),
    ] = "http://localhost:8080",
    secret_key_file: Annotated[
        Optional[Path],
        typer.Option("--secret-key-file", "-k", help="Compare against this local key"),
    ] = None,
    timeout: Annotated[
        float,
        typer.Option("--timeout", "-t", help="Request timeout in seconds"),
    ] = 10.0,
) -> None:
    """
    Check that a running server answers with the expected public key.
    """
    try:
        response = httpx.get(f"{url.rstrip('/')}/publickey", timeout=timeout)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise _fail(f"Failed to query {url}: {e}") from e

    served = response.text.strip()
    typer.echo(served)

    if secret_key_file is None:
        return

    try:
        expected = load_signing_key(secret_key_file).public_key_string()
    except KeyLoadError as e:
        raise _fail(str(e)) from e

    if served != expected:
        raise _fail(f"Public key mismatch: server has {served}, expected {expected}")
    typer.echo("[OK] Public key matches")


@app.command()
def version() -> None:
    """Show version information."""
    from signing_cli import __version__

    typer.echo(f"nix-cache-signing-server version {__version__}")


if __name__ == "__main__":
    app()
