"""
Logging configuration — central setup for the CLI and the controller.

Called once at startup by main.py.  Every module that does
``logger = logging.getLogger(__name__)`` inherits this config.

Levels are resolved in precedence order:
    CLI flag  >  COPS_LOG_LEVEL env var  >  WARNING (default)

Optional file output via COPS_LOG_FILE / COPS_LOG_FILE_LEVEL env vars.

Records emitted while a pass runs carry the declared resource being
reconciled (``Kind/namespace/name``, or ``-`` outside a pass), so the
interleaved output of a controller sweep can be told apart:

    12:04:31 [cops.core.services.converge] Buildkit/ci/buildkitd Created Secret ci/buildkitd
"""

from __future__ import annotations

import contextvars
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager

# ── Format strings ──────────────────────────────────────────────

# WARNING level: minimal
_FMT_MINIMAL = "%(levelname)s %(message)s"

# INFO level: timestamped with the resource under reconciliation
_FMT_VERBOSE = "%(asctime)s [%(name)s] %(resource)s %(message)s"
_DATEFMT_VERBOSE = "%H:%M:%S"

# DEBUG level and file output: full diagnostic with file:line
_FMT_DEBUG = "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(resource)s — %(message)s"
_DATEFMT_DEBUG = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are noisy at INFO/DEBUG
_NOISY_LOGGERS = ("urllib3", "asyncio")

_NO_RESOURCE = "-"

_current_resource: contextvars.ContextVar[str] = contextvars.ContextVar(
    "cops_resource", default=_NO_RESOURCE,
)


class ResourceContextFilter(logging.Filter):
    """Stamp every record with the declared resource being reconciled."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.resource = _current_resource.get()
        return True


@contextmanager
def resource_context(key: str) -> Iterator[None]:
    """Tag log records emitted inside the block with ``key``."""
    token = _current_resource.set(key)
    try:
        yield
    finally:
        _current_resource.reset(token)


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Configure Python logging for the entire process.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to a log file.
        log_file_level: Optional separate level for the log file.
            Defaults to the same as ``level``.
        quiet_third_party: Keep noisy third-party loggers at WARNING
            unless we're at DEBUG level.
    """
    numeric_level = _parse_level(level)

    if numeric_level <= logging.DEBUG:
        fmt, datefmt = _FMT_DEBUG, _DATEFMT_DEBUG
    elif numeric_level <= logging.INFO:
        fmt, datefmt = _FMT_VERBOSE, _DATEFMT_VERBOSE
    else:
        fmt, datefmt = _FMT_MINIMAL, None

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(numeric_level)
    console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    console.addFilter(ResourceContextFilter())

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(console)

    effective_level = numeric_level

    if log_file:
        file_level = _parse_level(log_file_level) if log_file_level else numeric_level
        effective_level = min(effective_level, file_level)

        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(file_level)
        fh.setFormatter(logging.Formatter(_FMT_DEBUG, datefmt=_DATEFMT_DEBUG))
        fh.addFilter(ResourceContextFilter())
        root.addHandler(fh)

    root.setLevel(effective_level)

    if quiet_third_party and numeric_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)


def _parse_level(level: str | None) -> int:
    """Convert a level name string to its numeric constant."""
    if not level:
        return logging.WARNING
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        return logging.WARNING
    return numeric
