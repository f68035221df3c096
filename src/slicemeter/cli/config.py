"""Configuration management for the slicemeter CLI.

Settings live in ``~/.slicemeter/config.yaml`` (or the file named by
``SLICEMETER_CONFIG``)::

    slicer_path: /usr/bin/prusa-slicer
    profile: ~/profiles/pla_0.2mm.ini
    timeout: 30
    cost_per_gram: 0.02
    docker:
      container: prusaslicer
      binary: prusa-slicer
      data_dir: /data
      profile: /config.ini

Precedence (highest first):
    1. CLI flags (``--slicer``, ``--profile``, etc.)
    2. Environment variables (``SLICEMETER_SLICER_PATH``, etc.)
    3. Config file
    4. Built-in defaults
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import yaml

from slicemeter import parse_float_env
from slicemeter.errors import ConfigError
from slicemeter.metrics import DEFAULT_COST_PER_GRAM
from slicemeter.slicer import DEFAULT_TIMEOUT

logger = logging.getLogger(__name__)

# Valid top-level keys in the config file.  Used for schema validation.
_KNOWN_KEYS: set[str] = {
    "slicer_path",
    "profile",
    "timeout",
    "cost_per_gram",
    "docker",
}

_DOCKER_KEYS: set[str] = {"container", "binary", "data_dir", "profile"}


@dataclass(frozen=True)
class DockerSettings:
    """Where the containerised slicer lives.  Disabled without a container."""

    container: str | None = None
    binary: str = "prusa-slicer"
    data_dir: str = "/data"
    profile: str = "/config.ini"

    @property
    def enabled(self) -> bool:
        return bool(self.container)


@dataclass(frozen=True)
class Settings:
    """Fully resolved slicemeter settings."""

    slicer_path: str | None = None
    profile: str | None = None
    timeout: float = DEFAULT_TIMEOUT
    cost_per_gram: float = DEFAULT_COST_PER_GRAM
    docker: DockerSettings = field(default_factory=DockerSettings)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def get_config_path() -> Path:
    """Return the config file path (``SLICEMETER_CONFIG`` or the default)."""
    env_path = os.environ.get("SLICEMETER_CONFIG", "")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".slicemeter" / "config.yaml"


# ---------------------------------------------------------------------------
# Load
# ---------------------------------------------------------------------------


def _validate_config_schema(data: dict[str, Any], path: Path) -> None:
    """Log warnings for unknown keys in the config file."""
    unknown = set(data.keys()) - _KNOWN_KEYS
    for key in sorted(unknown):
        logger.warning(
            "Config file %s contains unknown key %r (expected one of: %s)",
            path,
            key,
            ", ".join(sorted(_KNOWN_KEYS)),
        )
    docker = data.get("docker")
    if isinstance(docker, dict):
        for key in sorted(set(docker.keys()) - _DOCKER_KEYS):
            logger.warning("Config file %s contains unknown docker key %r", path, key)


def _read_config_file(path: Path) -> dict[str, Any]:
    """Read and parse the YAML config file; return ``{}`` on any failure."""
    if not path.is_file():
        return {}
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
        if not isinstance(data, dict):
            return {}
        _validate_config_schema(data, path)
        return data
    except yaml.YAMLError as exc:
        logger.warning("Config file %s has invalid YAML: %s -- ignoring it.", path, exc)
        return {}
    except OSError as exc:
        logger.warning("Could not read config file %s: %s", path, exc)
        return {}


def _as_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{key} must be a number, got {value!r}") from None


def _expand(path: str | None) -> str | None:
    return os.path.expanduser(str(path)) if path else None


def load_settings(
    *,
    config_path: Path | None = None,
    slicer_path: str | None = None,
    profile: str | None = None,
    timeout: float | None = None,
    cost_per_gram: float | None = None,
    docker_container: str | None = None,
) -> Settings:
    """Resolve :class:`Settings` from flags, environment, and config file.

    Keyword arguments are CLI flag values; ``None`` means "not given".

    Raises :class:`ConfigError` if a value is malformed or out of range.
    """
    path = config_path or get_config_path()
    raw = _read_config_file(path)

    file_timeout = _as_float(raw.get("timeout", DEFAULT_TIMEOUT), "timeout")
    file_cost = _as_float(raw.get("cost_per_gram", DEFAULT_COST_PER_GRAM), "cost_per_gram")

    resolved_timeout = timeout if timeout is not None else parse_float_env("SLICEMETER_TIMEOUT", file_timeout)
    resolved_cost = (
        cost_per_gram if cost_per_gram is not None else parse_float_env("SLICEMETER_COST_PER_GRAM", file_cost)
    )
    for key, value in (("timeout", resolved_timeout), ("cost_per_gram", resolved_cost)):
        if not math.isfinite(value):
            raise ConfigError(f"{key} must be a finite number, got {value}")
    if resolved_timeout <= 0:
        raise ConfigError(f"timeout must be positive, got {resolved_timeout}")
    if resolved_cost < 0:
        raise ConfigError(f"cost_per_gram must not be negative, got {resolved_cost}")

    resolved_slicer = slicer_path or os.environ.get("SLICEMETER_SLICER_PATH") or raw.get("slicer_path")
    resolved_profile = profile or os.environ.get("SLICEMETER_PROFILE") or raw.get("profile")

    docker_raw = raw.get("docker", {})
    if not isinstance(docker_raw, dict):
        logger.warning("Config file %s: 'docker' must be a mapping, ignoring it", path)
        docker_raw = {}
    defaults = DockerSettings()
    docker = DockerSettings(
        container=docker_container
        or os.environ.get("SLICEMETER_DOCKER_CONTAINER")
        or docker_raw.get("container"),
        binary=str(docker_raw.get("binary", defaults.binary)),
        data_dir=str(docker_raw.get("data_dir", defaults.data_dir)),
        profile=str(docker_raw.get("profile", defaults.profile)),
    )

    return Settings(
        slicer_path=_expand(resolved_slicer),
        profile=_expand(resolved_profile),
        timeout=resolved_timeout,
        cost_per_gram=resolved_cost,
        docker=docker,
    )
