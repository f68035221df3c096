"""Shared fixtures for the slicemeter test suite.

Provides a small PrusaSlicer-style G-code file and helpers for building
models and profiles on disk.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

# ---------------------------------------------------------------------------
# G-code payloads
# ---------------------------------------------------------------------------

SAMPLE_GCODE = """\
; generated by PrusaSlicer 2.7.1+linux-x64-GTK3 on 2024-03-02 at 10:15:04 UTC
;

; external perimeters extrusion width = 0.45mm
M73 P0 R12
M107
G28 ; home all axes
G1 Z.2 F720
G1 X10.5 Y-3 F9000
G1 X60.25 Y40 E2.5
G0 X35 Y15.75 Z5.4
G1 E-.8 F2100
G10 ; retract
; filament used [mm] = 1523.45
; filament used [cm3] = 3.66
; total filament used [g] = 4.54
; total filament cost = 0.11
; estimated printing time (normal mode) = 12m 31s
; estimated first layer printing time (normal mode) = 1m 2s
"""


@pytest.fixture()
def sample_gcode() -> str:
    return SAMPLE_GCODE


@pytest.fixture()
def gcode_file(tmp_path):
    """Write :data:`SAMPLE_GCODE` to a temp file and return its path."""
    path = tmp_path / "benchy.gcode"
    path.write_text(SAMPLE_GCODE, encoding="utf-8")
    return path


@pytest.fixture()
def model_file(tmp_path):
    path = tmp_path / "benchy.stl"
    path.write_bytes(b"solid benchy\nendsolid benchy\n")
    return path


@pytest.fixture()
def profile_file(tmp_path):
    path = tmp_path / "pla.ini"
    path.write_text("layer_height = 0.2\n", encoding="utf-8")
    return path


def _completed_process(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    """Stand-in for the :class:`subprocess.CompletedProcess` of a slicer run."""
    proc = MagicMock()
    proc.returncode = returncode
    proc.stdout = stdout
    proc.stderr = stderr
    return proc


@pytest.fixture()
def completed_process():
    """Factory for fake slicer process results."""
    return _completed_process
