"""CLI entrypoint for maestro-cli."""

from __future__ import annotations

import logging
import math
import os
import re
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TypeVar

import rich_click as click

from maestro_cli import __version__
from maestro_cli.client import MaestroError
from maestro_cli.controllers import (
    CommandResult,
    DeleteCommand,
    GlobalOptions,
    ListCommand,
    MaestroCliController,
    WaitCommand,
    WatchCommand,
    WorkCommand,
)
from maestro_cli.status.poller import WaitError
from maestro_cli.status.rendering import OUTPUT_FORMATS

click.rich_click.USE_MARKDOWN = True
CONTROLLER = MaestroCliController()

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

T = TypeVar("T")
R = TypeVar("R")


class DurationParamType(click.ParamType):
    """Durations such as ``90``, ``30s``, ``5m``, ``1h30m`` converted to seconds."""

    name = "duration"
    _UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}
    _PART = re.compile(r"(\d+(?:\.\d+)?)(ms|s|m|h)")

    def convert(self, value, param, ctx):  # type: ignore[no-untyped-def]
        seconds = self._seconds(value, param, ctx)
        if not math.isfinite(seconds) or seconds <= 0:
            self.fail(f"{value!r} must be a positive, finite duration.", param, ctx)
        return seconds

    def _seconds(self, value, param, ctx) -> float:  # type: ignore[no-untyped-def]
        if isinstance(value, (int, float)):
            return float(value)
        text = str(value).strip()
        try:
            return float(text)
        except ValueError:
            pass
        parts = self._PART.findall(text)
        if not parts or "".join(number + unit for number, unit in parts) != text:
            self.fail(f"{value!r} is not a valid duration (for example 30s, 5m, 1h).", param, ctx)
        return sum(float(number) * self._UNITS[unit] for number, unit in parts)


DURATION = DurationParamType()


@click.group()
@click.version_option(version=__version__, prog_name="maestro-cli")
@click.option(
    "--http-endpoint",
    default=None,
    help="Maestro HTTP API endpoint. Defaults to $MAESTRO_HTTP_ENDPOINT or http://localhost:8000.",
)
@click.option(
    "--insecure/--secure",
    default=None,
    help="Skip TLS certificate verification.",
)
@click.option(
    "--output",
    "-o",
    "output_format",
    type=click.Choice(OUTPUT_FORMATS, case_sensitive=False),
    default=None,
    help="Output format for get, describe and list.",
)
@click.option(
    "--results-path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Write status results JSON here. Defaults to $RESULTS_PATH.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
@click.pass_context
def maestro_cli(
    ctx: click.Context,
    http_endpoint: str | None,
    insecure: bool | None,
    output_format: str | None,
    results_path: Path | None,
    verbose: bool,
) -> None:
    """Inspect, wait on, and delete Maestro ManifestWorks."""

    _configure_logging(verbose)
    ctx.obj = GlobalOptions(
        http_endpoint=http_endpoint,
        insecure=insecure,
        output_format=output_format,
        results_path=results_path,
        verbose=verbose,
    )


@maestro_cli.command("wait")
@click.option("--name", required=True, help="ManifestWork name.")
@click.option("--consumer", required=True, help="Consumer (cluster) name.")
@click.option(
    "--for",
    "condition",
    required=True,
    help=(
        "Condition expression, for example `Available`, "
        "`Job/ns/pi:Complete && Available` or `Deployment:availableReplicas>=2`."
    ),
)
@click.option(
    "--timeout",
    type=DURATION,
    default=None,
    help="Maximum wait. Defaults to $MAESTRO_WAIT_TIMEOUT_SECONDS or 5m.",
)
@click.option(
    "--poll-interval",
    type=DURATION,
    default=None,
    help="Poll interval. Defaults to $MAESTRO_POLL_INTERVAL_SECONDS or 1s.",
)
@click.pass_obj
def wait_command(
    options: GlobalOptions,
    name: str,
    consumer: str,
    condition: str,
    timeout: float | None,
    poll_interval: float | None,
) -> None:
    """Wait until a ManifestWork satisfies a condition expression."""

    result = _call(
        CONTROLLER.wait,
        WaitCommand(
            options=options,
            name=name,
            consumer=consumer,
            condition=condition,
            timeout_seconds=timeout,
            poll_interval_seconds=poll_interval,
        ),
    )
    _finish(result)


@maestro_cli.command("get")
@click.option("--name", required=True, help="ManifestWork name.")
@click.option("--consumer", required=True, help="Consumer (cluster) name.")
@click.pass_obj
def get_command(options: GlobalOptions, name: str, consumer: str) -> None:
    """Print the raw resource bundle of a ManifestWork."""

    _emit_lines(_call(CONTROLLER.get, WorkCommand(options=options, name=name, consumer=consumer)))


@maestro_cli.command("describe")
@click.option("--name", required=True, help="ManifestWork name.")
@click.option("--consumer", required=True, help="Consumer (cluster) name.")
@click.pass_obj
def describe_command(options: GlobalOptions, name: str, consumer: str) -> None:
    """Show conditions, manifests and per-resource status of a ManifestWork."""

    _emit_lines(
        _call(CONTROLLER.describe, WorkCommand(options=options, name=name, consumer=consumer)),
    )


@maestro_cli.command("list")
@click.option("--consumer", required=True, help="Consumer (cluster) name.")
@click.option(
    "--filter",
    "filter_pattern",
    default="",
    help="Filter by `name`, `Kind/name` or `Kind/namespace/name` substring.",
)
@click.pass_obj
def list_command(options: GlobalOptions, consumer: str, filter_pattern: str) -> None:
    """List ManifestWorks of a consumer."""

    _emit_lines(
        _call(
            CONTROLLER.list_works,
            ListCommand(options=options, consumer=consumer, filter_pattern=filter_pattern),
        ),
    )


@maestro_cli.command("delete")
@click.option("--name", required=True, help="ManifestWork name.")
@click.option("--consumer", required=True, help="Consumer (cluster) name.")
@click.option("--wait", "wait_for_deletion", is_flag=True, help="Wait until the work is gone.")
@click.option("--dry-run", is_flag=True, help="Show what would be deleted.")
@click.option(
    "--timeout",
    type=DURATION,
    default=None,
    help="Maximum deletion wait. Defaults to $MAESTRO_WAIT_TIMEOUT_SECONDS or 5m.",
)
@click.pass_obj
def delete_command(
    options: GlobalOptions,
    name: str,
    consumer: str,
    wait_for_deletion: bool,
    dry_run: bool,
    timeout: float | None,
) -> None:
    """Delete a ManifestWork."""

    result = _call(
        CONTROLLER.delete,
        DeleteCommand(
            options=options,
            name=name,
            consumer=consumer,
            wait=wait_for_deletion,
            dry_run=dry_run,
            timeout_seconds=timeout,
        ),
    )
    _finish(result)


@maestro_cli.command("watch")
@click.option("--name", required=True, help="ManifestWork name.")
@click.option("--consumer", required=True, help="Consumer (cluster) name.")
@click.option("--until", default=None, help="Stop once this condition expression holds.")
@click.option(
    "--timeout",
    type=DURATION,
    default=None,
    help="Stop watching after this long. Watches until interrupted when omitted.",
)
@click.option("--poll-interval", type=DURATION, default=None, help="Poll interval.")
@click.pass_obj
def watch_command(
    options: GlobalOptions,
    name: str,
    consumer: str,
    until: str | None,
    timeout: float | None,
    poll_interval: float | None,
) -> None:
    """Print a line whenever the work's version or conditions change."""

    command = WatchCommand(
        options=options,
        name=name,
        consumer=consumer,
        until=until,
        timeout_seconds=timeout,
        poll_interval_seconds=poll_interval,
    )
    _finish(_call(lambda cmd: CONTROLLER.watch(cmd, click.echo), command))


def _call(handler: Callable[[T], R], command: T) -> R:
    try:
        return handler(command)
    except (MaestroError, WaitError, ValueError) as error:
        raise click.ClickException(str(error)) from error


def _finish(result: CommandResult) -> None:
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(result.error or "command failed")


def _configure_logging(verbose: bool) -> None:
    level_name = "debug" if verbose else os.getenv("MAESTRO_CLI_LOG_LEVEL", "info")
    level = logging.getLevelNamesMapping().get(level_name.strip().upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)
    logging.getLogger("maestro_cli").setLevel(level)
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    maestro_cli()
