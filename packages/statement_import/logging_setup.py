"""Logging for the ``statement_import`` logger hierarchy.

Every module logs under ``statement_import.<module>`` (``.categorize``,
``.importer``, ``.inference`` ...). Library code only calls
:func:`get_logger`; the CLI calls :func:`configure_logging` once per
invocation with the ``--log-level`` it was given.

Settings, all optional:

``STATEMENT_IMPORT_LOG_LEVEL``
    Level of the package logger when no explicit level is passed
    (default ``INFO``).
``STATEMENT_IMPORT_LOG_LEVELS``
    Per-module overrides, e.g. ``categorize=DEBUG,importer=WARNING``. Names
    are relative to the package logger.

The HTTP client loggers used by the AI fallback and the remote import
endpoint (``openai``, ``httpx``, ``urllib3``) are held at ``WARNING`` unless
the package itself runs at ``DEBUG``.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Mapping
from typing import IO

PACKAGE_LOGGER = "statement_import"
LEVEL_ENV_VAR = "STATEMENT_IMPORT_LOG_LEVEL"
MODULE_LEVELS_ENV_VAR = "STATEMENT_IMPORT_LOG_LEVELS"

_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_HTTP_LOGGERS: tuple[str, ...] = ("openai", "httpx", "urllib3")


class _PackageHandler(logging.StreamHandler):
    """Marker type so reconfiguration replaces only the handler installed here."""


def parse_level(level: int | str) -> int:
    """Return the numeric level for an ``int``, digit string or level name.

    Raises ``ValueError`` for unknown names.
    """

    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelNamesMapping().get(name)
    if numeric is None:
        raise ValueError(f"unknown log level: {level!r}")
    return numeric


def parse_module_levels(spec: str) -> dict[str, int]:
    """Parse ``"categorize=DEBUG,importer=WARNING"`` into full logger names."""

    out: dict[str, int] = {}
    for part in spec.split(","):
        part = part.strip()
        if not part:
            continue
        module, sep, level = part.partition("=")
        module = module.strip()
        if not sep or not module:
            raise ValueError(f"expected <module>=<level>, got {part!r}")
        if not module.startswith(PACKAGE_LOGGER + ".") and module != PACKAGE_LOGGER:
            module = f"{PACKAGE_LOGGER}.{module}"
        out[module] = parse_level(level)
    return out


def configure_logging(
    level: int | str | None = None,
    *,
    module_levels: Mapping[str, int | str] | None = None,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach one stream handler to the package logger and set its levels.

    Calling it again replaces the handler and levels from the previous call.
    ``level`` falls back to ``STATEMENT_IMPORT_LOG_LEVEL`` and then ``INFO``;
    ``module_levels`` falls back to ``STATEMENT_IMPORT_LOG_LEVELS``. Invalid
    level names raise ``ValueError`` before anything is changed.
    """

    if level is None:
        level = os.getenv(LEVEL_ENV_VAR) or logging.INFO
    resolved = parse_level(level)
    if module_levels is None:
        overrides = parse_module_levels(os.getenv(MODULE_LEVELS_ENV_VAR, ""))
    else:
        overrides = parse_module_levels(
            ",".join(f"{name}={lvl}" for name, lvl in module_levels.items())
        )

    pkg = logging.getLogger(PACKAGE_LOGGER)
    for h in list(pkg.handlers):
        if isinstance(h, (_PackageHandler, logging.NullHandler)):
            pkg.removeHandler(h)

    # Records are filtered by logger levels so module overrides below the
    # package level still reach the stream.
    handler = _PackageHandler(stream)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))
    pkg.addHandler(handler)
    pkg.setLevel(resolved)
    pkg.propagate = False

    for name in list(logging.root.manager.loggerDict):
        if name.startswith(PACKAGE_LOGGER + ".") and name not in overrides:
            logging.getLogger(name).setLevel(logging.NOTSET)
    for name, lvl in overrides.items():
        logging.getLogger(name).setLevel(lvl)

    http_level = logging.DEBUG if resolved <= logging.DEBUG else logging.WARNING
    for name in _HTTP_LOGGERS:
        logging.getLogger(name).setLevel(http_level)


def get_logger(name: str) -> logging.Logger:
    """Return a logger in the package hierarchy.

    Until :func:`configure_logging` runs, the package logger only holds a
    ``NullHandler`` so library use stays silent.
    """

    pkg = logging.getLogger(PACKAGE_LOGGER)
    if not pkg.handlers:
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = [
    "LEVEL_ENV_VAR",
    "MODULE_LEVELS_ENV_VAR",
    "PACKAGE_LOGGER",
    "configure_logging",
    "get_logger",
    "parse_level",
    "parse_module_levels",
]
