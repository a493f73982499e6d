"""Signing server configuration management."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from signing_server.errors import ConfigError
from signing_server.store.nix_cli import default_store_dir

DEFAULT_BIND = "[::]:8080"


class LoggerStyle(str, Enum):
    """Log output styles."""

    COMPACT = "compact"
    FULL = "full"
    PRETTY = "pretty"
    JSON = "json"


class ServerConfig(BaseModel):
    """Startup configuration for the signing server."""

    host: str = Field(default="::", description="Address to bind to")
    port: int = Field(default=8080, ge=0, le=65535, description="Port to bind to")
    secret_key_file: Path = Field(..., description="Path to the Nix secret key file")
    verbosity: int = Field(default=0, ge=0, description="0 is info, 1 is debug, 2 is trace")
    logger: LoggerStyle = Field(default=LoggerStyle.COMPACT, description="Log output style")
    log_directives: list[str] = Field(
        default_factory=list,
        description="Log filter directives such as 'signing_server.store=trace'",
    )
    max_body_bytes: int = Field(default=64 * 1024, gt=0, description="Max request body size")
    store_query_timeout: float = Field(
        default=30.0, gt=0, description="Timeout for a single store query in seconds"
    )
    nix_bin: str = Field(default="nix", description="nix executable used for store queries")
    store_dir: str = Field(default_factory=default_store_dir, description="Nix store directory")

    @field_validator("verbosity")
    @classmethod
    def _clamp_verbosity(cls, value: int) -> int:
        return min(value, 2)

    @field_validator("log_directives", mode="before")
    @classmethod
    def _split_directives(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [d.strip() for d in value.split(",") if d.strip()]
        return value

    @property
    def bind(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"


def parse_bind(value: str) -> tuple[str, int]:
    """
    Split a bind address into host and port.

    Accepts ``host:port``, ``[ipv6]:port`` and ``:port``.

    Raises:
        ConfigError: If the address cannot be parsed
    """
    value = value.strip()
    host, sep, port_str = value.rpartition(":")
    if not sep or not port_str.isdigit():
        raise ConfigError(f"Invalid bind address {value!r}: expected HOST:PORT")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ConfigError(f"Invalid bind address {value!r}: IPv6 hosts must be bracketed")

    port = int(port_str)
    if port > 65535:
        raise ConfigError(f"Invalid bind address {value!r}: port out of range")

    return host or "0.0.0.0", port


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load configuration values from a YAML file."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to load config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    return {str(k).replace("-", "_"): v for k, v in data.items()}


def build_config(config_file: str | Path | None = None, **overrides: Any) -> ServerConfig:
    """
    Build the server configuration.

    Values from ``config_file`` are applied first, then any non-None
    ``overrides`` (usually command-line options). A ``bind`` value is split
    into host and port.

    Raises:
        ConfigError: If the resulting configuration is invalid
    """
    values: dict[str, Any] = load_config_file(config_file) if config_file else {}
    values.update({k: v for k, v in overrides.items() if v is not None})

    bind = values.pop("bind", None)
    if bind is not None:
        values["host"], values["port"] = parse_bind(str(bind))

    try:
        return ServerConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
