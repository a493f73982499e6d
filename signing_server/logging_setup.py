"""
Logging configuration for the signing server.

Application modules log through the standard library (``logging.getLogger``).
This module installs a single stderr handler whose formatter is a structlog
``ProcessorFormatter``, so the same records can be rendered compactly for a
terminal or as JSON for log shipping.

Filtering works like ``RUST_LOG``-style directives:

    info                          -> everything at info
    signing_server=debug          -> one logger tree at debug
    signing_server.store=trace    -> finer grained override
    uvicorn=off                   -> silence a logger tree

Without directives the application loggers log at the level chosen by the
verbosity flag and everything else at WARNING. Directives in the
``NIX_CACHE_SIGNING_SERVER_LOG`` environment variable replace that default.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterable, Mapping

import structlog
from structlog.typing import Processor

from signing_server.config import LoggerStyle
from signing_server.errors import ConfigError

TRACE = 5
logging.addLevelName(TRACE, "TRACE")

LOG_ENV = "NIX_CACHE_SIGNING_SERVER_LOG"
APP_LOGGERS = ("signing_server", "signing_cli")
DEFAULT_OTHER_LEVEL = logging.WARNING

LEVELS: dict[str, int] = {
    "trace": TRACE,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "off": logging.CRITICAL + 10,
}

Directive = tuple[str | None, int]

_configured_targets: set[str] = set()


def verbosity_level(verbosity: int) -> str:
    """Map the -v count to a level name."""
    return ("info", "debug", "trace")[min(max(verbosity, 0), 2)]


def parse_directive(text: str) -> Directive:
    """
    Parse one filter directive.

    ``target=level`` sets a logger tree, a bare level sets the default and a
    bare target enables that tree at trace.

    Raises:
        ConfigError: If the level is unknown
    """
    text = text.strip()
    target, sep, level_name = text.rpartition("=")

    if not sep:
        if text.lower() in LEVELS:
            return None, LEVELS[text.lower()]
        return text, TRACE

    level = LEVELS.get(level_name.strip().lower())
    if level is None:
        raise ConfigError(f"Invalid log directive {text!r}: unknown level {level_name!r}")
    if not target.strip():
        raise ConfigError(f"Invalid log directive {text!r}: empty target")

    return target.strip(), level


def parse_directives(directives: Iterable[str]) -> list[Directive]:
    return [parse_directive(d) for d in directives if d.strip()]


def build_filter(
    verbosity: int,
    directives: Iterable[str] = (),
    environ: Mapping[str, str] | None = None,
) -> list[Directive]:
    """
    Work out the effective filter directives.

    Order matters: later directives override earlier ones for the same target.
    """
    environ = os.environ if environ is None else environ
    directives = list(directives)

    env_value = environ.get(LOG_ENV, "").strip()
    if env_value:
        try:
            base = parse_directives(env_value.split(","))
        except ConfigError as e:
            raise ConfigError(f"parsing {LOG_ENV} directives: {e}") from e
    elif directives:
        # Explicit directives replace the default
        base = []
    else:
        level = LEVELS[verbosity_level(verbosity)]
        base = [(name, level) for name in APP_LOGGERS]

    return base + parse_directives(directives)


def _pre_chain(style: LoggerStyle) -> list[Processor]:
    chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
    ]
    if style is not LoggerStyle.COMPACT:
        chain += [
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
        ]
    if style is LoggerStyle.PRETTY:
        chain.append(
            structlog.processors.CallsiteParameterAdder(
                [
                    structlog.processors.CallsiteParameter.PATHNAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            )
        )
    return chain


def _renderers(style: LoggerStyle, colors: bool) -> list[Processor]:
    if style is LoggerStyle.JSON:
        return [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    return [structlog.dev.ConsoleRenderer(colors=colors)]


def build_formatter(style: LoggerStyle, colors: bool = False) -> logging.Formatter:
    """Create the formatter for a log style."""
    return structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_pre_chain(style),
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *_renderers(style, colors),
        ],
    )


def configure_logging(
    verbosity: int = 0,
    style: LoggerStyle | str = LoggerStyle.COMPACT,
    directives: Iterable[str] = (),
    environ: Mapping[str, str] | None = None,
) -> list[Directive]:
    """
    Install the stderr handler and logger levels. Safe to call again.

    Returns:
        The effective filter directives

    Raises:
        ConfigError: If a directive cannot be parsed
    """
    style = LoggerStyle(style)
    filters = build_filter(verbosity, directives, environ)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(build_formatter(style, colors=sys.stderr.isatty()))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(DEFAULT_OTHER_LEVEL)

    for target in _configured_targets:
        logging.getLogger(target).setLevel(logging.NOTSET)
    _configured_targets.clear()

    for target, level in filters:
        if target is None:
            root.setLevel(level)
        else:
            logging.getLogger(target).setLevel(level)
            _configured_targets.add(target)

    return filters
