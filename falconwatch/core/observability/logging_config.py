"""
Process-wide logging for falconwatch.

``main.py`` calls :func:`setup_logging` once, before the engine is built.
Modules log through ``logging.getLogger(__name__)`` and never attach
handlers of their own.

Console level, strongest source first:
    --debug / --verbose / --quiet  >  FALCONWATCH_LOG_LEVEL  >  WARNING

``falconwatch run`` is usually left unattended; point
FALCONWATCH_LOG_FILE at a path to keep a dated trail of every cycle
(FALCONWATCH_LOG_FILE_LEVEL sets its threshold separately).
"""

from __future__ import annotations

import logging
import os
import sys

ENV_LEVEL = "FALCONWATCH_LOG_LEVEL"
ENV_FILE = "FALCONWATCH_LOG_FILE"
ENV_FILE_LEVEL = "FALCONWATCH_LOG_FILE_LEVEL"

_DEFAULT_LEVEL = logging.WARNING

# Console layout grows with verbosity: (threshold, format, datefmt).
_CONSOLE_LAYOUTS = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d  %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
)
_CONSOLE_TERSE = "%(levelname)s %(message)s"

_FILE_FORMAT = "%(asctime)s %(levelname)-5s %(threadName)s %(name)s:%(lineno)d  %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Chatty at INFO: HTTP pools and the Flask dev server.
_CHATTY = ("urllib3", "werkzeug", "charset_normalizer")


def resolve_level(debug: bool = False, verbose: bool = False, quiet: bool = False) -> str:
    """Pick the console level from CLI flags, falling back to the env var."""
    for flag, name in ((debug, "DEBUG"), (verbose, "INFO"), (quiet, "ERROR")):
        if flag:
            return name
    return os.environ.get(ENV_LEVEL, logging.getLevelName(_DEFAULT_LEVEL))


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Install the console handler, and a file handler when one is configured.

    Any handlers already on the root logger are replaced. The root level
    is the lower of the two handler levels so the file can be more
    detailed than stderr.
    """
    console_level = _parse_level(level)
    handlers = [_console_handler(console_level)]

    path = log_file or os.environ.get(ENV_FILE)
    if path:
        file_level_name = log_file_level or os.environ.get(ENV_FILE_LEVEL)
        file_level = _parse_level(file_level_name) if file_level_name else console_level
        handlers.append(_file_handler(path, file_level))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(min(h.level for h in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _CHATTY:
            logging.getLogger(name).setLevel(logging.WARNING)

    # A broken stream must not take a cycle down with it.
    logging.raiseExceptions = False


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = _CONSOLE_TERSE, None
    for threshold, layout, layout_datefmt in _CONSOLE_LAYOUTS:
        if level <= threshold:
            fmt, datefmt = layout, layout_datefmt
            break
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def _parse_level(level: str | None) -> int:
    """Level name to number; unknown or empty names mean WARNING."""
    numeric = getattr(logging, level.upper(), None) if level else None
    return numeric if isinstance(numeric, int) else _DEFAULT_LEVEL
