"""slicemeter CLI: slice a model and report what the print will take.

Provides a ``slicemeter`` command with subcommands to slice a model and
read its metrics (``slice``), read metrics from existing G-code
(``metrics``), and show the resolved settings (``config``).  Every
subcommand supports a ``--json`` flag for machine-parseable output.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click

from slicemeter.cli.config import Settings, load_settings
from slicemeter.cli.output import format_error, format_metrics, format_settings
from slicemeter.errors import ConfigError, SlicerNotFoundError, ToolpathParseError
from slicemeter.log_config import configure_logging

logger = logging.getLogger(__name__)


def _settings_from_ctx(ctx: click.Context, json_mode: bool, **flags: object) -> Settings:
    """Resolve settings, exiting with ``CONFIG_ERROR`` on bad values."""
    try:
        return load_settings(config_path=ctx.obj.get("config_path"), **flags)  # type: ignore[arg-type]
    except ConfigError as exc:
        click.echo(format_error(str(exc), code="CONFIG_ERROR", json_mode=json_mode))
        sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False),
    help="Config file (default: ~/.slicemeter/config.yaml).",
)
@click.option(
    "--log-dir",
    default=None,
    envvar="SLICEMETER_LOG_DIR",
    type=click.Path(file_okay=False),
    help="Write a rotating log file to this directory.",
)
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
@click.version_option(package_name="slicemeter")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, log_dir: str | None, verbose: bool) -> None:
    """slicemeter - slice 3D models and extract print metrics."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(name)s %(levelname)s %(message)s",
            stream=sys.stderr,
        )
    if log_dir:
        configure_logging(log_dir, level="DEBUG" if verbose else None)


# ---------------------------------------------------------------------------
# slice
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("input_file", type=click.Path(dir_okay=False))
@click.option("--profile", "-P", default=None, help="Slicer profile (.ini) passed to --load.")
@click.option("--slicer", default=None, help="Explicit path to slicer binary.")
@click.option(
    "--docker",
    "docker_container",
    default=None,
    help="Run the slicer inside this container via docker exec.",
)
@click.option("--timeout", "-t", default=None, type=float, help="Slicing timeout in seconds (default 30).")
@click.option("--cost-per-gram", default=None, type=float, help="Filament price per gram (default 0.02).")
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def slice(
    ctx: click.Context,
    input_file: str,
    profile: str | None,
    slicer: str | None,
    docker_container: str | None,
    timeout: float | None,
    cost_per_gram: float | None,
    json_mode: bool,
) -> None:
    """Slice a 3D model (STL/3MF/OBJ) and report its print metrics.

    Runs PrusaSlicer on INPUT_FILE, writes the G-code next to it, and
    prints filament usage, print time, dimensions, and estimated cost.
    """
    from slicemeter.pipeline import run_pipeline
    from slicemeter.slicer import DockerSlicerInvoker, LocalSlicerInvoker, SliceRequest, SlicerInvoker

    settings = _settings_from_ctx(
        ctx,
        json_mode,
        slicer_path=slicer,
        profile=profile,
        timeout=timeout,
        cost_per_gram=cost_per_gram,
        docker_container=docker_container,
    )

    invoker: SlicerInvoker
    if settings.docker.enabled:
        invoker = DockerSlicerInvoker(
            settings.docker.container or "",
            binary=settings.docker.binary,
            data_dir=settings.docker.data_dir,
            timeout=settings.timeout,
        )
        profile_path = profile or settings.docker.profile
    else:
        try:
            invoker = LocalSlicerInvoker(settings.slicer_path, timeout=settings.timeout)
        except SlicerNotFoundError as exc:
            click.echo(format_error(str(exc), code="SLICER_NOT_FOUND", json_mode=json_mode))
            sys.exit(1)
        profile_path = settings.profile or ""

    result = run_pipeline(
        SliceRequest(input_path=input_file, profile_path=profile_path),
        invoker,
        cost_per_gram=settings.cost_per_gram,
    )

    if not result.success:
        code = result.error_kind.code if result.error_kind else "ERROR"
        click.echo(
            format_error(
                result.error or "Slicing failed",
                code=code,
                stderr=result.stderr,
                stdout=result.stdout,
                json_mode=json_mode,
            )
        )
        sys.exit(1)

    click.echo(
        format_metrics(
            result.parameters,
            file_path=result.file_path,
            gcode_file_path=result.gcode_file_path,
            json_mode=json_mode,
        )
    )


# ---------------------------------------------------------------------------
# metrics
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("gcode_file", type=click.Path(dir_okay=False))
@click.option("--cost-per-gram", default=None, type=float, help="Filament price per gram (default 0.02).")
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def metrics(ctx: click.Context, gcode_file: str, cost_per_gram: float | None, json_mode: bool) -> None:
    """Extract print metrics from an existing G-code file."""
    from slicemeter.metrics import extract_metrics

    settings = _settings_from_ctx(ctx, json_mode, cost_per_gram=cost_per_gram)

    try:
        report = extract_metrics(gcode_file, cost_per_gram=settings.cost_per_gram)
    except ToolpathParseError as exc:
        click.echo(format_error(str(exc), code="PARSE_ERROR", json_mode=json_mode))
        sys.exit(1)

    click.echo(format_metrics(report.metrics, gcode_file_path=gcode_file, json_mode=json_mode))


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


@cli.command("config")
@click.option("--json", "json_mode", is_flag=True, help="Output JSON.")
@click.pass_context
def show_config(ctx: click.Context, json_mode: bool) -> None:
    """Show the resolved settings."""
    settings = _settings_from_ctx(ctx, json_mode)
    click.echo(format_settings(settings.to_dict(), json_mode=json_mode))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entry point."""
    cli()


if __name__ == "__main__":
    main()
