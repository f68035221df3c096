"""Slice a model and report its print metrics in one call.

The slicer runs to completion first; the extractor only ever sees a
toolpath from a successful run.  Every request-level problem comes back
as a failed :class:`PipelineResult` instead of an exception.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from slicemeter.errors import ErrorKind, ToolpathParseError
from slicemeter.metrics import DEFAULT_COST_PER_GRAM, MetricsReport, extract_metrics
from slicemeter.slicer import SliceFailure, SliceRequest, SlicerInvoker

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outcome of slicing one model and reading its toolpath."""

    success: bool
    file_path: Optional[str] = None
    gcode_file_path: Optional[str] = None
    report: Optional[MetricsReport] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    stderr: str = ""
    stdout: str = ""

    @property
    def parameters(self) -> Dict[str, str]:
        return self.report.to_dict() if self.report is not None else {}

    @classmethod
    def failed(
        cls,
        kind: ErrorKind,
        error: str,
        *,
        file_path: Optional[str] = None,
        gcode_file_path: Optional[str] = None,
        stderr: str = "",
        stdout: str = "",
    ) -> "PipelineResult":
        return cls(
            success=False,
            file_path=file_path,
            gcode_file_path=gcode_file_path,
            error=error,
            error_kind=kind,
            stderr=stderr,
            stdout=stdout,
        )

    def to_dict(self) -> Dict[str, Any]:
        """JSON body for an upload handler (camelCase keys)."""
        if self.success:
            return {
                "success": True,
                "parameters": self.parameters,
                "filePath": self.file_path,
                "gcodeFilePath": self.gcode_file_path,
            }
        d: Dict[str, Any] = {
            "success": False,
            "error": self.error,
            "errorKind": self.error_kind.code if self.error_kind else None,
        }
        # Streams only exist when the slicer actually ran.
        if self.error_kind in (ErrorKind.PROCESS_ERROR, ErrorKind.TIMEOUT_ERROR):
            d["stderr"] = self.stderr
            d["stdout"] = self.stdout
        return d


def _failure_from_slice(request: SliceRequest, failure: SliceFailure) -> PipelineResult:
    prefix = {
        ErrorKind.PROCESS_ERROR: "Slicer error",
        ErrorKind.TIMEOUT_ERROR: "Slicer timeout",
    }.get(failure.error_kind)
    message = f"{prefix}: {failure.message}" if prefix else failure.message
    return PipelineResult.failed(
        failure.error_kind,
        message,
        file_path=request.input_path or None,
        stderr=failure.stderr,
        stdout=failure.stdout,
    )


def run_pipeline(
    request: SliceRequest,
    invoker: SlicerInvoker,
    *,
    cost_per_gram: float = DEFAULT_COST_PER_GRAM,
) -> PipelineResult:
    """Slice *request* with *invoker*, then extract metrics from the G-code.

    Args:
        request: Model and profile to slice.
        invoker: How the slicer is run (local binary, container, ...).
        cost_per_gram: Filament price used for ``Estimated Cost``.

    Returns:
        A :class:`PipelineResult`; ``success`` is ``False`` if slicing or
        extraction failed, with ``error_kind`` saying which.
    """
    slice_result = invoker.invoke(request)
    if isinstance(slice_result, SliceFailure):
        return _failure_from_slice(request, slice_result)

    gcode_path = slice_result.toolpath_path
    try:
        report = extract_metrics(gcode_path, cost_per_gram=cost_per_gram)
    except ToolpathParseError as exc:
        logger.error("Metrics extraction failed for %s: %s", gcode_path, exc)
        return PipelineResult.failed(
            ErrorKind.PARSE_ERROR,
            str(exc),
            file_path=request.input_path,
            gcode_file_path=gcode_path,
        )

    return PipelineResult(
        success=True,
        file_path=request.input_path,
        gcode_file_path=gcode_path,
        report=report,
    )
