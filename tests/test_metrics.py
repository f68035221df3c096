"""Tests for slicemeter.metrics — print metrics from slicer G-code."""

from __future__ import annotations

import pytest

from slicemeter.errors import ToolpathParseError
from slicemeter.metrics import (
    DEFAULT_COST_PER_GRAM,
    MARKERS,
    AxisRange,
    BoundingBox,
    MetricsReport,
    extract_metrics,
    parse_toolpath,
)


# ---------------------------------------------------------------------------
# Marker table
# ---------------------------------------------------------------------------


class TestMarkers:
    def test_filament_length(self):
        report = parse_toolpath("; filament used [mm] = 1523.45")
        assert report["Filament Length"] == "1523.45 mm"

    def test_filament_volume(self):
        report = parse_toolpath("; filament used [cm3] = 3.66")
        assert report["Filament Volume"] == "3.66 cm³"

    def test_filament_weight(self):
        report = parse_toolpath("; total filament used [g] = 12.5")
        assert report["Filament Weight"] == "12.5 g"

    def test_print_time_verbatim(self):
        report = parse_toolpath("; estimated printing time (normal mode) = 1h 2m 3s")
        assert report["Print Time"] == "1h 2m 3s"

    def test_first_layer_time_not_confused_with_print_time(self):
        report = parse_toolpath("; estimated first layer printing time (normal mode) = 1m 2s")
        assert report["First Layer Time"] == "1m 2s"
        assert "Print Time" not in report

    def test_marker_matched_anywhere_in_line(self):
        report = parse_toolpath("M117 filament used [mm] = 7")
        assert report["Filament Length"] == "7 mm"

    def test_marker_is_case_sensitive(self):
        report = parse_toolpath("; Filament Used [mm] = 7")
        assert "Filament Length" not in report

    def test_value_is_everything_after_first_equals(self):
        report = parse_toolpath("; estimated printing time (normal mode) = a = b ")
        assert report["Print Time"] == "a = b"

    def test_value_is_trimmed_including_carriage_return(self):
        report = parse_toolpath("; filament used [mm] =   42.0  \r\n")
        assert report["Filament Length"] == "42.0 mm"

    def test_later_marker_overrides_earlier(self):
        text = "; filament used [mm] = 1\n; filament used [mm] = 2\n"
        report = parse_toolpath(text)
        assert report["Filament Length"] == "2 mm"

    def test_unrelated_filament_lines_ignored(self):
        text = "; filament used [g] = 4.5\n; total filament cost = 0.11\n"
        assert len(parse_toolpath(text)) == 0

    def test_line_order_does_not_change_captured_metrics(self):
        lines = [
            "; filament used [mm] = 10",
            "; filament used [cm3] = 1",
            "; total filament used [g] = 2",
            "; estimated printing time (normal mode) = 5m",
            "; estimated first layer printing time (normal mode) = 30s",
        ]
        forward = parse_toolpath("\n".join(lines))
        backward = parse_toolpath("\n".join(reversed(lines)))
        assert forward.to_dict() == backward.to_dict()
        assert len(forward) == len(MARKERS) + 1  # plus Estimated Cost

    def test_report_order_follows_first_appearance(self):
        text = (
            "; estimated printing time (normal mode) = 5m\n"
            "; filament used [mm] = 10\n"
            "; estimated printing time (normal mode) = 6m\n"
        )
        report = parse_toolpath(text)
        assert list(report.metrics) == ["Print Time", "Filament Length"]
        assert report["Print Time"] == "6m"


# ---------------------------------------------------------------------------
# Bounding box
# ---------------------------------------------------------------------------


class TestAxisRange:
    def test_starts_unobserved(self):
        axis = AxisRange()
        assert axis.observed is False
        assert axis.span is None

    def test_tracks_min_and_max(self):
        axis = AxisRange()
        for value in (3.0, -1.5, 7.25, 0.0):
            axis.observe(value)
        assert axis.low == -1.5
        assert axis.high == 7.25
        assert axis.span == 8.75

    def test_single_point_has_zero_span(self):
        axis = AxisRange()
        axis.observe(4.0)
        assert axis.observed is True
        assert axis.span == 0.0


class TestBoundingBox:
    def test_incomplete_until_all_axes_seen(self):
        bbox = BoundingBox()
        bbox.observe_move("G1 X1 Y2")
        assert bbox.is_complete is False
        bbox.observe_move("G1 Z0.3")
        assert bbox.is_complete is True

    def test_first_occurrence_per_axis(self):
        bbox = BoundingBox()
        bbox.observe_move("G1 X5 X9 Y1 Z1")
        assert bbox.x.low == 5.0
        assert bbox.x.high == 5.0

    def test_negative_and_leading_dot_values(self):
        bbox = BoundingBox()
        bbox.observe_move("G1 X-2.5 Y.75 Z-.1")
        assert bbox.x.low == -2.5
        assert bbox.y.low == 0.75
        assert bbox.z.low == -0.1

    def test_lowercase_axis_letters_ignored(self):
        bbox = BoundingBox()
        bbox.observe_move("G1 x1 y2 z3")
        assert not (bbox.x.observed or bbox.y.observed or bbox.z.observed)


class TestDimensions:
    def test_two_point_box(self):
        report = parse_toolpath("G1 X0 Y0 Z0\nG1 X10 Y20 Z5\n")
        assert report["Print Dimensions"] == "10.00 × 20.00 × 5.00 mm"
        assert report["Print Volume"] == "1.00 cm³"
        assert report.extents_mm == (10.0, 20.0, 5.0)

    def test_no_moves_omits_dimensions(self):
        report = parse_toolpath("; filament used [mm] = 10\nM104 S200\n")
        assert "Print Dimensions" not in report
        assert "Print Volume" not in report
        assert report.extents_mm is None

    def test_missing_axis_omits_dimensions(self):
        report = parse_toolpath("G1 X0 Y0\nG1 X10 Y20\n")
        assert "Print Dimensions" not in report
        assert "Print Volume" not in report

    def test_move_prefix_must_start_line(self):
        report = parse_toolpath(" G1 X0 Y0 Z0\n; G1 X10 Y20 Z5\n")
        assert "Print Dimensions" not in report

    def test_g0_counts_as_move(self):
        report = parse_toolpath("G0 X0 Y0 Z0\nG0 X1 Y1 Z1\n")
        assert report["Print Dimensions"] == "1.00 × 1.00 × 1.00 mm"

    def test_axes_accumulate_across_lines(self):
        text = "G1 Z0.2\nG1 X5 Y5\nG1 X15\nG1 Y25\nG1 Z10.2\n"
        report = parse_toolpath(text)
        assert report["Print Dimensions"] == "10.00 × 20.00 × 10.00 mm"
        assert report["Print Volume"] == "2.00 cm³"

    def test_halfway_rounds_up(self):
        report = parse_toolpath("G1 X0 Y0 Z0\nG1 X0.125 Y1 Z1\n")
        assert report["Print Dimensions"].startswith("0.13 × ")

    def test_rounding_uses_binary_value(self):
        # 1.005 is stored just below 1.005
        report = parse_toolpath("G1 X0 Y0 Z0\nG1 X1.005 Y1 Z1\n")
        assert report["Print Dimensions"].startswith("1.00 × ")

    def test_volume_uses_rounded_dimensions(self):
        # Unrounded extents would give 10.0084 cm³.
        report = parse_toolpath("G1 X0 Y0 Z0\nG1 X10.004 Y100.004 Z10.004\n")
        assert report["Print Dimensions"] == "10.00 × 100.00 × 10.00 mm"
        assert report["Print Volume"] == "10.00 cm³"

    def test_very_large_extent(self):
        far = "9" * 30
        report = parse_toolpath(f"G1 X0 Y0 Z0\nG1 X{far} Y1 Z1\n")
        width = int(float(far))
        assert report["Print Dimensions"] == f"{width}.00 × 1.00 × 1.00 mm"
        assert report["Print Volume"] == f"{int(float(width) / 1000)}.00 cm³"


# ---------------------------------------------------------------------------
# Cost
# ---------------------------------------------------------------------------


class TestEstimatedCost:
    def test_cost_from_weight(self):
        report = parse_toolpath("; total filament used [g] = 12.5")
        assert report["Estimated Cost"] == "$0.25"
        assert report.filament_weight_g == 12.5

    def test_custom_rate(self):
        report = parse_toolpath("; total filament used [g] = 100", cost_per_gram=0.035)
        assert report["Estimated Cost"] == "$3.50"

    def test_default_rate(self):
        assert DEFAULT_COST_PER_GRAM == 0.02

    def test_zero_weight_omits_cost(self):
        report = parse_toolpath("; total filament used [g] = 0")
        assert report["Filament Weight"] == "0 g"
        assert "Estimated Cost" not in report

    def test_negative_weight_omits_cost(self):
        report = parse_toolpath("; total filament used [g] = -3.2")
        assert "Estimated Cost" not in report

    def test_non_numeric_weight_omits_cost(self):
        report = parse_toolpath("; total filament used [g] = n/a")
        assert report["Filament Weight"] == "n/a g"
        assert "Estimated Cost" not in report
        assert report.filament_weight_g is None

    def test_nan_weight_omits_cost(self):
        report = parse_toolpath("; total filament used [g] = nan")
        assert "Estimated Cost" not in report

    def test_very_large_weight(self):
        report = parse_toolpath("; total filament used [g] = 1e30")
        assert report["Filament Weight"] == "1e30 g"
        assert report["Estimated Cost"] == f"${int(1e30 * 0.02)}.00"

    def test_missing_weight_omits_cost(self):
        report = parse_toolpath("; filament used [mm] = 10")
        assert "Estimated Cost" not in report
        assert report.filament_weight_g is None


# ---------------------------------------------------------------------------
# Full file
# ---------------------------------------------------------------------------


class TestExtractMetrics:
    def test_sample_file(self, gcode_file):
        report = extract_metrics(str(gcode_file))
        assert report.to_dict() == {
            "Filament Length": "1523.45 mm",
            "Filament Volume": "3.66 cm³",
            "Filament Weight": "4.54 g",
            "Print Time": "12m 31s",
            "First Layer Time": "1m 2s",
            "Print Dimensions": "49.75 × 43.00 × 5.20 mm",
            "Print Volume": "11.12 cm³",
            "Estimated Cost": "$0.09",
        }

    def test_idempotent(self, gcode_file):
        first = extract_metrics(str(gcode_file))
        second = extract_metrics(str(gcode_file))
        assert list(first.metrics.items()) == list(second.metrics.items())
        assert first.raw_dict() == second.raw_dict()

    def test_empty_report_is_not_failure(self, tmp_path):
        path = tmp_path / "blank.gcode"
        path.write_text("M104 S200\nM140 S60\n; nothing here\n", encoding="utf-8")
        report = extract_metrics(str(path))
        assert isinstance(report, MetricsReport)
        assert report.to_dict() == {}

    def test_missing_file(self, tmp_path):
        with pytest.raises(ToolpathParseError, match="Failed to read G-code"):
            extract_metrics(str(tmp_path / "missing.gcode"))

    def test_only_line_feed_ends_a_line(self, tmp_path):
        path = tmp_path / "cr.gcode"
        path.write_bytes(b"G1 X0 Y0 Z0\n;\rG1 X10 Y10 Z10\n")
        report = extract_metrics(str(path))
        assert report["Print Dimensions"] == "0.00 × 0.00 × 0.00 mm"

    def test_crlf_values_are_trimmed(self, tmp_path):
        path = tmp_path / "crlf.gcode"
        path.write_bytes(b"; total filament used [g] = 12.5\r\n")
        report = extract_metrics(str(path))
        assert report["Filament Weight"] == "12.5 g"
        assert report["Estimated Cost"] == "$0.25"

    def test_invalid_utf8(self, tmp_path):
        path = tmp_path / "binary.gcode"
        path.write_bytes(b"G1 X0 Y0 Z0\n\xff\xfe\x00junk\n")
        with pytest.raises(ToolpathParseError):
            extract_metrics(str(path))

    def test_report_is_read_only(self, gcode_file):
        report = extract_metrics(str(gcode_file))
        with pytest.raises(TypeError):
            report.metrics["Print Time"] = "0s"  # type: ignore[index]

    def test_raw_dict(self, gcode_file):
        raw = extract_metrics(str(gcode_file)).raw_dict()
        assert raw["filament_weight_g"] == 4.54
        assert raw["extents_mm"] == [49.75, 43.0, 5.2]
