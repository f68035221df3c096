"""slicemeter - slice 3D models with PrusaSlicer and extract print metrics."""

from __future__ import annotations

import logging
import os
import re
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

_logger = logging.getLogger(__name__)


def _resolve_version() -> str:
    """Resolve the installed package version with a source-tree fallback."""
    try:
        pyproject = Path(__file__).resolve().parents[2] / "pyproject.toml"
        if pyproject.is_file():
            content = pyproject.read_text(encoding="utf-8")
            match = re.search(r'(?m)^\s*version\s*=\s*"([^"]+)"\s*$', content)
            if match:
                return match.group(1)
    except OSError as exc:
        _logger.debug("Local pyproject version fallback failed: %s", exc)

    try:
        return version("slicemeter")
    except PackageNotFoundError:
        return "unknown"


__version__ = _resolve_version()


def parse_float_env(name: str, default: float) -> float:
    """Parse a float from an environment variable with safe fallback.

    Logs a warning and returns *default* if the value is not a valid number.
    """
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        _logger.warning(
            "Invalid number for %s=%r, using default %s",
            name,
            raw,
            default,
        )
        return default
