"""Log rotation and slicer-output trimming for slicemeter.

Provides a logging filter that shortens captured slicer stdout/stderr
before it reaches the log file, and a helper to configure a rotating file
handler with that filter installed.

Only stdlib modules are used.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

_DEFAULT_LOG_DIR = os.path.join(str(Path.home()), ".slicemeter", "logs")

# Slicer output can run to megabytes on a bad mesh.
_MAX_ARG_CHARS = 2000
_TRUNCATION_MARK = "...[truncated]"


def _truncate(text: str, limit: int = _MAX_ARG_CHARS) -> str:
    """Cut *text* to *limit* characters, marking the cut."""
    if len(text) <= limit:
        return text
    return text[:limit] + _TRUNCATION_MARK


class TruncateFilter(logging.Filter):
    """Logging filter that caps the length of string log arguments.

    The message template itself is left alone; only the interpolated
    arguments (where slicer streams end up) are shortened.
    """

    def __init__(self, limit: int = _MAX_ARG_CHARS) -> None:
        super().__init__()
        self.limit = limit

    def filter(self, record: logging.LogRecord) -> bool:
        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: _truncate(v, self.limit) if isinstance(v, str) else v
                    for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    _truncate(a, self.limit) if isinstance(a, str) else a
                    for a in record.args
                )
        return True


def configure_logging(
    log_dir: Optional[str] = None,
    *,
    max_bytes: int = 10_000_000,
    backup_count: int = 5,
    level: Optional[str] = None,
) -> str:
    """Configure logging with rotation and output trimming.

    :param log_dir: Directory for log files.  Reads ``SLICEMETER_LOG_DIR``
        env var, then falls back to ``~/.slicemeter/logs/``.
    :param max_bytes: Maximum log file size before rotation (default 10 MB).
    :param backup_count: Number of rotated log files to keep (default 5).
    :param level: Log level string.  Reads ``SLICEMETER_LOG_LEVEL`` env
        var, then falls back to ``"INFO"``.
    :returns: Path of the active log file.
    """
    log_dir = log_dir or os.environ.get("SLICEMETER_LOG_DIR", _DEFAULT_LOG_DIR)
    level = level or os.environ.get("SLICEMETER_LOG_LEVEL", "INFO")

    os.makedirs(log_dir, exist_ok=True)
    log_path = os.path.join(log_dir, "slicemeter.log")

    log_level = getattr(logging, level.upper(), logging.INFO)

    truncate_filter = TruncateFilter()

    root = logging.getLogger()
    root.setLevel(log_level)

    has_rotating = any(
        isinstance(h, RotatingFileHandler) for h in root.handlers
    )
    if not has_rotating:
        file_handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s %(name)s %(levelname)s %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(file_handler)

    for handler in root.handlers:
        if not any(isinstance(f, TruncateFilter) for f in handler.filters):
            handler.addFilter(truncate_filter)

    return log_path
