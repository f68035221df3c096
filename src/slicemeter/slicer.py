"""Slicer invocation: headless slicing via the PrusaSlicer CLI.

Wraps the command-line interface of PrusaSlicer (and CLI-compatible
forks) so that STL or 3MF models can be sliced to G-code without opening
the GUI.  The slicer either runs as a local binary, auto-detected on PATH,
or inside a long-running container reached through ``docker exec``.

Every invocation produces exactly one toolpath file next to the input
model (same directory and stem, ``.gcode`` extension) or a
:class:`SliceFailure` describing what went wrong.  Failures are returned,
never raised, so that a bad model only ends its own request.

Example::

    from slicemeter.slicer import LocalSlicerInvoker, SliceRequest

    invoker = LocalSlicerInvoker()                       # auto-detect
    result = invoker.invoke(SliceRequest("benchy.stl", "pla.ini"))
    if result.success:
        print(result.toolpath_path)                      # benchy.gcode
"""

from __future__ import annotations

import contextlib
import logging
import os
import posixpath
import shutil
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Union

from slicemeter.errors import ErrorKind, SlicerNotFoundError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Names to probe on PATH, in preference order.
_SLICER_NAMES: list[str] = [
    "prusa-slicer",
    "PrusaSlicer",
    "prusaslicer",
]

# Common install locations on macOS (app bundles).
_MACOS_PATHS: list[str] = (
    [
        "/Applications/PrusaSlicer.app/Contents/MacOS/PrusaSlicer",
        "/Applications/Original Prusa Drivers/PrusaSlicer.app/Contents/MacOS/PrusaSlicer",
    ]
    if sys.platform == "darwin"
    else []
)

# Model formats the slicer accepts, compared lower-cased.
_INPUT_EXTENSIONS = {".stl", ".3mf", ".obj", ".amf", ".step", ".stp"}

TOOLPATH_EXTENSION = ".gcode"

DEFAULT_TIMEOUT: float = 30.0

# Flags appended after the profile, in order.
_EXPORT_FLAGS: list[str] = ["--gcode-comments", "--export-gcode"]


# ---------------------------------------------------------------------------
# Dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SliceRequest:
    """One model to slice with one profile."""

    input_path: str
    profile_path: str


@dataclass
class SlicerInfo:
    """Information about a discovered slicer binary."""

    path: str
    name: str


@dataclass(frozen=True)
class SliceSuccess:
    """The slicer exited cleanly and wrote *toolpath_path*."""

    toolpath_path: str

    @property
    def success(self) -> bool:
        return True

    def to_dict(self) -> dict[str, Any]:
        return {"success": True, "toolpath_path": self.toolpath_path}


@dataclass(frozen=True)
class SliceFailure:
    """The slicer could not produce a toolpath.

    ``stderr`` and ``stdout`` hold the captured process streams verbatim
    (empty when the process never ran).
    """

    error_kind: ErrorKind
    message: str
    stderr: str = ""
    stdout: str = ""

    @property
    def success(self) -> bool:
        return False

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": False,
            "error_kind": self.error_kind.code,
            "message": self.message,
            "stderr": self.stderr,
            "stdout": self.stdout,
        }


SliceResult = Union[SliceSuccess, SliceFailure]


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------


def is_supported_model(path: str) -> bool:
    """Return ``True`` if *path* has a sliceable extension (any case)."""
    return Path(path).suffix.lower() in _INPUT_EXTENSIONS


def toolpath_path_for(input_path: str) -> str:
    """Return where the slicer writes the G-code for *input_path*.

    The model extension is swapped for ``.gcode`` regardless of its case,
    so ``parts/Bracket.STL`` maps to ``parts/Bracket.gcode``.
    """
    return str(Path(input_path).with_suffix(TOOLPATH_EXTENSION))


# ---------------------------------------------------------------------------
# Slicer discovery
# ---------------------------------------------------------------------------


def find_slicer(slicer_path: str | None = None) -> SlicerInfo:
    """Locate a slicer binary on the system.

    Args:
        slicer_path: Explicit path to a slicer binary.  If provided,
            this is used directly (validated for existence).  If ``None``,
            auto-detection is performed.

    Returns:
        A :class:`SlicerInfo` with the resolved path and name.

    Raises:
        SlicerNotFoundError: If no slicer binary can be found.
    """
    if slicer_path:
        if os.path.isfile(slicer_path) and os.access(slicer_path, os.X_OK):
            name = Path(slicer_path).stem.lower()
            return SlicerInfo(path=slicer_path, name=name)
        raise SlicerNotFoundError(f"Slicer binary not found or not executable: {slicer_path}")

    env_path = os.environ.get("SLICEMETER_SLICER_PATH")
    if env_path and os.path.isfile(env_path) and os.access(env_path, os.X_OK):
        name = Path(env_path).stem.lower()
        return SlicerInfo(path=env_path, name=name)

    for name in _SLICER_NAMES:
        found = shutil.which(name)
        if found:
            return SlicerInfo(path=found, name=name.lower())

    for path in _MACOS_PATHS:
        if os.path.isfile(path) and os.access(path, os.X_OK):
            name = Path(path).stem.lower()
            return SlicerInfo(path=path, name=name)

    raise SlicerNotFoundError(
        "No slicer found. Install PrusaSlicer:\n"
        "  Linux: apt install prusa-slicer  (or download from prusaslicer.org)\n"
        "  macOS: brew install --cask prusaslicer\n"
        "Or set SLICEMETER_SLICER_PATH to the binary location."
    )


def _as_text(stream: str | bytes | None) -> str:
    """Normalise a captured stream from :class:`subprocess.TimeoutExpired`."""
    if stream is None:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream


# ---------------------------------------------------------------------------
# Invokers
# ---------------------------------------------------------------------------


class SlicerInvoker(ABC):
    """Something that turns a :class:`SliceRequest` into a toolpath."""

    @abstractmethod
    def invoke(self, request: SliceRequest) -> SliceResult:
        """Slice *request* once, blocking until done or timed out."""


class CommandSlicerInvoker(SlicerInvoker):
    """Base for invokers that run the slicer as a child process.

    Subclasses only decide the argv; validation, the timeout, stream
    capture and the result mapping are shared.
    """

    def __init__(self, timeout: float = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout

    @abstractmethod
    def build_command(self, request: SliceRequest) -> list[str]:
        """Return the argv that slices *request*."""

    def validate(self, request: SliceRequest) -> SliceFailure | None:
        """Return a failure if *request* cannot be sliced, else ``None``."""
        if not request.input_path:
            return SliceFailure(ErrorKind.MISSING_INPUT_ERROR, "No model file provided")
        if not os.path.isfile(request.input_path):
            return SliceFailure(
                ErrorKind.MISSING_INPUT_ERROR,
                f"Input file not found: {os.path.basename(request.input_path)}",
            )
        if not is_supported_model(request.input_path):
            ext = Path(request.input_path).suffix.lower() or "<none>"
            return SliceFailure(
                ErrorKind.INVALID_INPUT_ERROR,
                f"Unsupported input format '{ext}'. Supported: {', '.join(sorted(_INPUT_EXTENSIONS))}",
            )
        if not request.profile_path:
            return SliceFailure(ErrorKind.INVALID_INPUT_ERROR, "No slicer profile provided")
        return None

    def invoke(self, request: SliceRequest) -> SliceResult:
        failure = self.validate(request)
        if failure is not None:
            logger.warning("Rejected slice request for %s: %s", request.input_path, failure.message)
            return failure

        toolpath = toolpath_path_for(request.input_path)
        cmd = self.build_command(request)
        logger.info("Slicing: %s", " ".join(cmd))

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as exc:
            # The child is killed by subprocess.run; drop whatever it wrote.
            with contextlib.suppress(OSError):
                os.unlink(toolpath)
            logger.warning("Slicing %s timed out after %ss", request.input_path, self.timeout)
            return SliceFailure(
                ErrorKind.TIMEOUT_ERROR,
                f"Slicing timed out after {self.timeout}s. The model may be too complex or the slicer is hanging.",
                stderr=_as_text(exc.stderr),
                stdout=_as_text(exc.stdout),
            )
        except OSError as exc:
            logger.error("Failed to run slicer %s: %s", cmd[0], exc)
            return SliceFailure(ErrorKind.PROCESS_ERROR, f"Failed to run slicer: {exc}")
        except ValueError as exc:
            # Raised for arguments the OS cannot take, such as an embedded NUL.
            logger.warning("Rejected slicer arguments for %s: %s", request.input_path, exc)
            return SliceFailure(ErrorKind.INVALID_INPUT_ERROR, f"Invalid slicer arguments: {exc}")

        if result.returncode != 0:
            logger.error(
                "Slicer exited with code %d for %s: %s",
                result.returncode,
                request.input_path,
                (result.stderr or "").strip(),
            )
            return SliceFailure(
                ErrorKind.PROCESS_ERROR,
                f"Slicer exited with code {result.returncode}",
                stderr=result.stderr or "",
                stdout=result.stdout or "",
            )

        logger.info("Sliced %s -> %s", Path(request.input_path).name, Path(toolpath).name)
        return SliceSuccess(toolpath_path=toolpath)


class LocalSlicerInvoker(CommandSlicerInvoker):
    """Run a slicer binary installed on this machine."""

    def __init__(
        self,
        slicer_path: str | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(timeout=timeout)
        self.slicer = find_slicer(slicer_path)

    def validate(self, request: SliceRequest) -> SliceFailure | None:
        failure = super().validate(request)
        if failure is not None:
            return failure
        profile = request.profile_path
        if not (os.path.isfile(profile) and os.access(profile, os.R_OK)):
            return SliceFailure(
                ErrorKind.INVALID_INPUT_ERROR,
                f"Profile file not found or unreadable: {os.path.basename(profile)}",
            )
        return None

    def build_command(self, request: SliceRequest) -> list[str]:
        return [
            self.slicer.path,
            os.path.abspath(request.input_path),
            "--load",
            request.profile_path,
            *_EXPORT_FLAGS,
        ]


class DockerSlicerInvoker(CommandSlicerInvoker):
    """Run the slicer inside a running container via ``docker exec``.

    The host directory holding the model must be mounted in the container
    at *data_dir*; the request's profile path is resolved inside the
    container and is not checked on the host.
    """

    def __init__(
        self,
        container: str = "prusaslicer",
        *,
        binary: str = "prusa-slicer",
        data_dir: str = "/data",
        docker_path: str = "docker",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        super().__init__(timeout=timeout)
        self.container = container
        self.binary = binary
        self.data_dir = data_dir
        self.docker_path = docker_path

    def build_command(self, request: SliceRequest) -> list[str]:
        container_input = posixpath.join(self.data_dir, os.path.basename(request.input_path))
        return [
            self.docker_path,
            "exec",
            self.container,
            self.binary,
            container_input,
            "--load",
            request.profile_path,
            *_EXPORT_FLAGS,
        ]
