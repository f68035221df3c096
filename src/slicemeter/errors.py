"""Exception hierarchy and failure taxonomy for slicemeter."""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    """Why a single slicing request failed."""

    PROCESS_ERROR = "process_error"
    TIMEOUT_ERROR = "timeout_error"
    PARSE_ERROR = "parse_error"
    MISSING_INPUT_ERROR = "missing_input_error"
    INVALID_INPUT_ERROR = "invalid_input_error"

    @property
    def code(self) -> str:
        """Upper-case error code used in CLI and JSON output."""
        return self.name


class SlicemeterError(Exception):
    """Base class for slicemeter errors."""


class SlicerNotFoundError(SlicemeterError):
    """Raised when no slicer binary is found on the system."""


class ToolpathParseError(SlicemeterError):
    """Raised when a toolpath file cannot be read or scanned."""


class ConfigError(SlicemeterError):
    """Raised when resolved settings are invalid."""
