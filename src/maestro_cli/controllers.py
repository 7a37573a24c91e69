"""Controllers for maestro-cli commands."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

from maestro_cli.client import MaestroHttpClient, WorkNotFoundError
from maestro_cli.config import ConnectionSettings, Settings
from maestro_cli.status.poller import (
    CancelToken,
    WaitState,
    cancel_on_signals,
    run_deletion_wait,
    run_wait,
)
from maestro_cli.status.rendering import (
    WatchPrinter,
    dump_document,
    filter_works,
    render_describe_lines,
    render_work_list_lines,
    snapshot_to_dict,
    work_summary_to_dict,
)
from maestro_cli.status.results import (
    STATUS_DELETED,
    ResultsFileSink,
    StatusResult,
    write_result,
)

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ConnectionSettings], MaestroHttpClient]


@dataclass(slots=True)
class GlobalOptions:
    """Connection and output flags shared by every command."""

    http_endpoint: str | None = None
    insecure: bool | None = None
    output_format: str | None = None
    results_path: Path | None = None
    verbose: bool = False


@dataclass(slots=True)
class WaitCommand:
    """CLI input for a condition wait."""

    options: GlobalOptions
    name: str
    consumer: str
    condition: str
    timeout_seconds: float | None
    poll_interval_seconds: float | None = None


@dataclass(slots=True)
class WorkCommand:
    """CLI input for commands addressing a single work (get, describe)."""

    options: GlobalOptions
    name: str
    consumer: str


@dataclass(slots=True)
class ListCommand:
    """CLI input for work listing."""

    options: GlobalOptions
    consumer: str
    filter_pattern: str = ""


@dataclass(slots=True)
class DeleteCommand:
    """CLI input for work deletion."""

    options: GlobalOptions
    name: str
    consumer: str
    wait: bool
    dry_run: bool
    timeout_seconds: float | None


@dataclass(slots=True)
class WatchCommand:
    """CLI input for watching a work until a deadline or condition."""

    options: GlobalOptions
    name: str
    consumer: str
    until: str | None
    timeout_seconds: float | None
    poll_interval_seconds: float | None = None


@dataclass(slots=True)
class CommandResult:
    """Lines to print plus a failure message for non-zero exits."""

    lines: list[str]
    success: bool = True
    error: str | None = None


def _default_client_factory(connection: ConnectionSettings) -> MaestroHttpClient:
    return MaestroHttpClient(
        endpoint=connection.http_endpoint,
        insecure=connection.insecure,
        timeout_seconds=connection.request_timeout_seconds,
        max_retries=connection.max_retries,
    )


class MaestroCliController:
    """Coordinates Maestro reads, deletes, and condition waits for the CLI."""

    def __init__(self, client_factory: ClientFactory | None = None) -> None:
        self.client_factory = client_factory or _default_client_factory

    def wait(self, command: WaitCommand) -> CommandResult:
        settings = self.settings(command.options)
        poll_settings = settings.wait.to_poll_settings(
            timeout_seconds=command.timeout_seconds,
            poll_interval_seconds=command.poll_interval_seconds,
        )
        with self.client_factory(settings.connection) as client:
            client.validate_consumer(command.consumer)
            client.get_work_summary(command.consumer, command.name)

            logger.info(
                "Waiting for condition %r on %s/%s (timeout %gs)",
                command.condition,
                command.consumer,
                command.name,
                poll_settings.timeout_seconds,
            )
            sink = None
            if settings.output.results_path is not None:
                sink = ResultsFileSink(
                    results_path=settings.output.results_path,
                    name=command.name,
                    consumer=command.consumer,
                    expression=command.condition,
                )
            token = CancelToken()
            with cancel_on_signals(token):
                outcome = run_wait(
                    lambda _token: client.get_snapshot(command.consumer, command.name),
                    command.condition,
                    settings=poll_settings,
                    cancel_token=token,
                    sink=sink,
                )

        if outcome.succeeded:
            return CommandResult(
                lines=[f"Condition '{command.condition}' met for ManifestWork {command.name}"],
            )
        return CommandResult(
            lines=[],
            success=False,
            error=f"error waiting for condition '{command.condition}': {outcome.error}",
        )

    def get(self, command: WorkCommand) -> list[str]:
        settings = self.settings(command.options)
        with self.client_factory(settings.connection) as client:
            client.validate_consumer(command.consumer)
            bundle = client.get_bundle(command.consumer, command.name)
        output_format = "json" if settings.output.output_format == "json" else "yaml"
        return [dump_document(dict(bundle), output_format)]

    def describe(self, command: WorkCommand) -> list[str]:
        settings = self.settings(command.options)
        with self.client_factory(settings.connection) as client:
            client.validate_consumer(command.consumer)
            snapshot = client.get_snapshot(command.consumer, command.name)
        if settings.output.output_format == "text":
            return render_describe_lines(snapshot)
        return [dump_document(snapshot_to_dict(snapshot), settings.output.output_format)]

    def list_works(self, command: ListCommand) -> list[str]:
        settings = self.settings(command.options)
        with self.client_factory(settings.connection) as client:
            client.validate_consumer(command.consumer)
            works = client.list_works(command.consumer)
        works = filter_works(works, command.filter_pattern)
        logger.debug("Listed %d works for %s", len(works), command.consumer)
        if settings.output.output_format == "text":
            return render_work_list_lines(
                works,
                consumer=command.consumer,
                pattern=command.filter_pattern,
            )
        return [
            dump_document(
                [work_summary_to_dict(work) for work in works],
                settings.output.output_format,
            ),
        ]

    def delete(self, command: DeleteCommand) -> CommandResult:
        settings = self.settings(command.options)
        with self.client_factory(settings.connection) as client:
            client.validate_consumer(command.consumer)
            try:
                work = client.get_work_summary(command.consumer, command.name)
            except WorkNotFoundError:
                logger.warning(
                    "ManifestWork %s not found for %s, nothing to delete",
                    command.name,
                    command.consumer,
                )
                return CommandResult(
                    lines=[f"ManifestWork {command.name} not found, nothing to delete"],
                )

            if command.dry_run:
                return CommandResult(
                    lines=[
                        f"[DRY RUN] Would delete ManifestWork {command.name} "
                        f"({len(work.manifests)} manifests) from {command.consumer}",
                    ],
                )

            logger.info("Deleting ManifestWork %s from %s", command.name, command.consumer)
            client.delete_work(command.consumer, command.name)

            if command.wait:
                token = CancelToken()
                with cancel_on_signals(token):
                    outcome = run_deletion_wait(
                        lambda _token: client.get_snapshot(command.consumer, command.name),
                        settings=settings.wait.to_poll_settings(
                            timeout_seconds=command.timeout_seconds,
                        ),
                        cancel_token=token,
                    )
                if not outcome.succeeded:
                    return CommandResult(
                        lines=[],
                        success=False,
                        error=f"error waiting for deletion: {outcome.error}",
                    )

        write_result(
            settings.output.results_path,
            StatusResult(
                name=command.name,
                consumer=command.consumer,
                status=STATUS_DELETED,
                message="ManifestWork deleted successfully",
            ),
        )
        return CommandResult(lines=[f"ManifestWork {command.name} deleted"])

    def watch(self, command: WatchCommand, emit: Callable[[str], None]) -> CommandResult:
        """Print a status line on every change until the deadline, a signal, or ``until``."""

        settings = self.settings(command.options)
        poll_settings = settings.wait.to_poll_settings(
            poll_interval_seconds=command.poll_interval_seconds,
        )
        poll_settings.timeout_seconds = command.timeout_seconds or math.inf
        with self.client_factory(settings.connection) as client:
            client.validate_consumer(command.consumer)
            token = CancelToken()
            with cancel_on_signals(token):
                outcome = run_wait(
                    lambda _token: client.get_snapshot(command.consumer, command.name),
                    command.until or "",
                    settings=poll_settings,
                    cancel_token=token,
                    sink=WatchPrinter(emit),
                )
        if outcome.state is WaitState.CONDITION_MET:
            return CommandResult(lines=[f"Condition '{command.until}' met"])
        return CommandResult(lines=["Watch stopped"])

    def settings(self, options: GlobalOptions) -> Settings:
        settings = Settings.from_env()
        connection = settings.connection
        if options.http_endpoint:
            connection = replace(connection, http_endpoint=options.http_endpoint)
        if options.insecure is not None:
            connection = replace(connection, insecure=options.insecure)
        output = settings.output
        if options.output_format:
            output = replace(output, output_format=options.output_format.lower())
        if options.results_path is not None:
            output = replace(output, results_path=options.results_path)
        settings = replace(
            settings,
            connection=connection,
            output=output,
            log_level="debug" if options.verbose else settings.log_level,
        )
        settings.validate()
        return settings
