"""Print metrics from slicer-annotated G-code.

PrusaSlicer run with ``--gcode-comments`` writes summary comments such as::

    ; filament used [mm] = 1234.56
    ; total filament used [g] = 12.5
    ; estimated printing time (normal mode) = 1h 2m 3s

This module scans a toolpath once, picks those values up through a
marker table, tracks the bounding box of every ``G0``/``G1`` move, and
derives print dimensions, volume, and a filament cost estimate.  Absent
values are simply left out of the report; they are never an error.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, localcontext
from types import MappingProxyType
from typing import Any, Mapping, Optional

from slicemeter.errors import ToolpathParseError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_COST_PER_GRAM: float = 0.02

FILAMENT_LENGTH = "Filament Length"
FILAMENT_VOLUME = "Filament Volume"
FILAMENT_WEIGHT = "Filament Weight"
PRINT_TIME = "Print Time"
FIRST_LAYER_TIME = "First Layer Time"
PRINT_DIMENSIONS = "Print Dimensions"
PRINT_VOLUME = "Print Volume"
ESTIMATED_COST = "Estimated Cost"

_MOVE_PREFIXES = ("G1", "G0")

# Optional minus, then digits with an optional fraction.  PrusaSlicer
# drops the leading zero (``Z.2``), so a bare fraction is accepted too.
_NUMBER = r"(-?(?:\d+(?:\.\d*)?|\.\d+))"
_AXIS_PATTERNS: dict[str, re.Pattern[str]] = {
    "x": re.compile("X" + _NUMBER),
    "y": re.compile("Y" + _NUMBER),
    "z": re.compile("Z" + _NUMBER),
}

_CENTS = Decimal("0.01")


# ---------------------------------------------------------------------------
# Marker table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MetricMarker:
    """A summary comment and the report entry it fills."""

    marker: str
    name: str
    unit: str = ""

    def raw_value(self, line: str) -> str:
        """Everything after the first ``=`` of *line*, stripped."""
        return line.split("=", 1)[1].strip()

    def format(self, raw: str) -> str:
        return f"{raw} {self.unit}" if self.unit else raw


MARKERS: tuple[MetricMarker, ...] = (
    MetricMarker("filament used [mm] =", FILAMENT_LENGTH, "mm"),
    MetricMarker("filament used [cm3] =", FILAMENT_VOLUME, "cm³"),
    MetricMarker("total filament used [g] =", FILAMENT_WEIGHT, "g"),
    MetricMarker("estimated printing time (normal mode) =", PRINT_TIME),
    MetricMarker("estimated first layer printing time (normal mode) =", FIRST_LAYER_TIME),
)


# ---------------------------------------------------------------------------
# Bounding box
# ---------------------------------------------------------------------------


@dataclass
class AxisRange:
    """Running min/max of one axis; both ends are ``None`` until observed."""

    low: Optional[float] = None
    high: Optional[float] = None

    @property
    def observed(self) -> bool:
        return self.low is not None and self.high is not None

    def observe(self, value: float) -> None:
        if self.low is None or value < self.low:
            self.low = value
        if self.high is None or value > self.high:
            self.high = value

    @property
    def span(self) -> Optional[float]:
        if self.low is None or self.high is None:
            return None
        return self.high - self.low


@dataclass
class BoundingBox:
    """Axis-aligned extent of every coordinate seen on a move line."""

    x: AxisRange = field(default_factory=AxisRange)
    y: AxisRange = field(default_factory=AxisRange)
    z: AxisRange = field(default_factory=AxisRange)

    @property
    def is_complete(self) -> bool:
        """``True`` once every axis has seen at least one coordinate."""
        return self.x.observed and self.y.observed and self.z.observed

    def observe_move(self, line: str) -> None:
        """Fold the first X, Y and Z words of a move *line* into the box.

        Axes missing from the line are left untouched.
        """
        for axis, pattern in _AXIS_PATTERNS.items():
            m = pattern.search(line)
            if m is None:
                continue
            value = float(m.group(1))
            if not math.isfinite(value):
                logger.debug("Ignoring non-finite %s coordinate in %r", axis.upper(), line)
                continue
            getattr(self, axis).observe(value)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MetricsReport:
    """Metrics extracted from one toolpath.

    Attributes:
        metrics: Ordered, read-only mapping of metric name to display
            string, in order of first appearance followed by the derived
            dimensions, volume and cost.
        filament_weight_g: Parsed ``total filament used [g]`` value, or
            ``None`` when absent or not a number.
        extents_mm: ``(width, depth, height)`` rounded to two decimals, or
            ``None`` when some axis was never observed.
    """

    metrics: Mapping[str, str]
    filament_weight_g: Optional[float] = None
    extents_mm: Optional[tuple[float, float, float]] = None

    def __getitem__(self, name: str) -> str:
        return self.metrics[name]

    def __contains__(self, name: object) -> bool:
        return name in self.metrics

    def __len__(self) -> int:
        return len(self.metrics)

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.metrics.get(name, default)

    def to_dict(self) -> dict[str, str]:
        return dict(self.metrics)

    def raw_dict(self) -> dict[str, Any]:
        """Numeric fields for callers that do their own arithmetic."""
        return {
            "filament_weight_g": self.filament_weight_g,
            "extents_mm": list(self.extents_mm) if self.extents_mm else None,
        }


# ---------------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------------


def _round2(value: float) -> Decimal:
    """Round to cents, half away from zero, on the exact binary value."""
    exact = Decimal(value)
    with localcontext() as ctx:
        # Room for every integer digit plus the two decimals.
        ctx.prec = max(ctx.prec, exact.adjusted() + 3)
        return exact.quantize(_CENTS, rounding=ROUND_HALF_UP)


def _parse_number(raw: Optional[str]) -> Optional[float]:
    """Parse *raw* as a finite float, or return ``None``."""
    if raw is None:
        return None
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def parse_toolpath(
    text: str,
    *,
    cost_per_gram: float = DEFAULT_COST_PER_GRAM,
) -> MetricsReport:
    """Scan G-code *text* once and build a :class:`MetricsReport`.

    Every line is checked against every entry of :data:`MARKERS`, so the
    markers are independent of each other; a repeated marker keeps its
    last value.  Lines starting with ``G1`` or ``G0`` feed the bounding
    box.  Dimensions and volume are only reported when all three axes
    were seen, and the cost only when the filament weight is positive.
    """
    metrics: dict[str, str] = {}
    raw_values: dict[str, str] = {}
    bbox = BoundingBox()

    for line in text.split("\n"):
        for marker in MARKERS:
            if marker.marker in line:
                raw = marker.raw_value(line)
                raw_values[marker.name] = raw
                metrics[marker.name] = marker.format(raw)
        if line.startswith(_MOVE_PREFIXES):
            bbox.observe_move(line)

    extents: Optional[tuple[float, float, float]] = None
    if bbox.is_complete:
        width, depth, height = (_round2(axis.span) for axis in (bbox.x, bbox.y, bbox.z))
        volume = _round2(float(width) * float(depth) * float(height) / 1000)
        metrics[PRINT_DIMENSIONS] = f"{width} × {depth} × {height} mm"
        metrics[PRINT_VOLUME] = f"{volume} cm³"
        extents = (float(width), float(depth), float(height))

    weight = _parse_number(raw_values.get(FILAMENT_WEIGHT))
    if weight is not None and weight > 0:
        metrics[ESTIMATED_COST] = f"${_round2(weight * cost_per_gram)}"

    return MetricsReport(
        metrics=MappingProxyType(metrics),
        filament_weight_g=weight,
        extents_mm=extents,
    )


def extract_metrics(
    toolpath_path: str,
    *,
    cost_per_gram: float = DEFAULT_COST_PER_GRAM,
) -> MetricsReport:
    """Read the UTF-8 toolpath at *toolpath_path* and extract its metrics.

    Newlines are not translated, so only ``\\n`` ends a line.

    Raises:
        ToolpathParseError: If the file cannot be read or decoded, or its
            contents cannot be scanned.
    """
    try:
        with open(toolpath_path, "r", encoding="utf-8", newline="") as fh:
            text = fh.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise ToolpathParseError(f"Failed to read G-code {toolpath_path}: {exc}") from exc

    try:
        report = parse_toolpath(text, cost_per_gram=cost_per_gram)
    except (ValueError, ArithmeticError) as exc:
        raise ToolpathParseError(f"Failed to parse G-code {toolpath_path}: {exc}") from exc

    logger.debug("Extracted %d metric(s) from %s", len(report), toolpath_path)
    return report
