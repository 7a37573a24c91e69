"""Runtime configuration for the Maestro client and condition waits."""

from __future__ import annotations

import math
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

from maestro_cli.status.poller import (
    DEFAULT_BACKOFF_CAP_SECONDS,
    DEFAULT_POLL_INTERVAL_SECONDS,
    DEFAULT_WAIT_TIMEOUT_SECONDS,
    PollSettings,
)
from maestro_cli.status.rendering import OUTPUT_FORMATS

DEFAULT_HTTP_ENDPOINT = "http://localhost:8000"
LOG_LEVELS: tuple[str, ...] = ("debug", "info", "warning", "error")


@dataclass(slots=True)
class ConnectionSettings:
    """Maestro HTTP API connection settings."""

    http_endpoint: str = DEFAULT_HTTP_ENDPOINT
    insecure: bool = False
    request_timeout_seconds: float = 30.0
    max_retries: int = 3


@dataclass(slots=True)
class WaitSettings:
    """Polling cadence and deadline for condition and deletion waits."""

    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    timeout_seconds: float = DEFAULT_WAIT_TIMEOUT_SECONDS
    backoff_cap_seconds: float = DEFAULT_BACKOFF_CAP_SECONDS

    def to_poll_settings(
        self,
        *,
        timeout_seconds: float | None = None,
        poll_interval_seconds: float | None = None,
    ) -> PollSettings:
        if poll_interval_seconds is not None:
            _require_positive("--poll-interval", poll_interval_seconds)
        if timeout_seconds is not None:
            _require_positive("--timeout", timeout_seconds)
        return PollSettings(
            poll_interval_seconds=poll_interval_seconds or self.poll_interval_seconds,
            timeout_seconds=timeout_seconds or self.timeout_seconds,
            backoff_cap_seconds=self.backoff_cap_seconds,
        )


@dataclass(slots=True)
class OutputSettings:
    """Output format and status-reporter integration."""

    output_format: str = "yaml"
    results_path: Path | None = None


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    connection: ConnectionSettings = field(default_factory=ConnectionSettings)
    wait: WaitSettings = field(default_factory=WaitSettings)
    output: OutputSettings = field(default_factory=OutputSettings)
    log_level: str = "info"

    @classmethod
    def from_env(cls) -> Settings:
        """Load settings from environment with defaults for a local Maestro."""

        results_path = os.getenv("RESULTS_PATH", "").strip()
        return cls(
            connection=ConnectionSettings(
                http_endpoint=os.getenv("MAESTRO_HTTP_ENDPOINT", "").strip()
                or DEFAULT_HTTP_ENDPOINT,
                insecure=_env_bool(
                    "MAESTRO_INSECURE",
                    default=_env_bool("MAESTRO_GRPC_INSECURE", default=False),
                ),
                request_timeout_seconds=float(os.getenv("MAESTRO_HTTP_TIMEOUT_SECONDS", "30")),
                max_retries=int(os.getenv("MAESTRO_HTTP_MAX_RETRIES", "3")),
            ),
            wait=WaitSettings(
                poll_interval_seconds=float(
                    os.getenv("MAESTRO_POLL_INTERVAL_SECONDS", str(DEFAULT_POLL_INTERVAL_SECONDS)),
                ),
                timeout_seconds=float(
                    os.getenv("MAESTRO_WAIT_TIMEOUT_SECONDS", str(DEFAULT_WAIT_TIMEOUT_SECONDS)),
                ),
                backoff_cap_seconds=float(
                    os.getenv("MAESTRO_BACKOFF_CAP_SECONDS", str(DEFAULT_BACKOFF_CAP_SECONDS)),
                ),
            ),
            output=OutputSettings(
                output_format=os.getenv("MAESTRO_CLI_OUTPUT", "yaml").strip().lower() or "yaml",
                results_path=Path(results_path) if results_path else None,
            ),
            log_level=os.getenv("MAESTRO_CLI_LOG_LEVEL", "info").strip().lower() or "info",
        )

    def validate(self) -> None:
        """Raise configuration error for values the client cannot work with."""

        _validate_endpoint(self.connection.http_endpoint)
        if self.connection.request_timeout_seconds <= 0:
            raise ValueError("MAESTRO_HTTP_TIMEOUT_SECONDS must be > 0.")
        if self.connection.max_retries < 0:
            raise ValueError("MAESTRO_HTTP_MAX_RETRIES must be >= 0.")
        _require_positive("MAESTRO_POLL_INTERVAL_SECONDS", self.wait.poll_interval_seconds)
        _require_positive("MAESTRO_WAIT_TIMEOUT_SECONDS", self.wait.timeout_seconds)
        _require_positive("MAESTRO_BACKOFF_CAP_SECONDS", self.wait.backoff_cap_seconds)
        if self.wait.backoff_cap_seconds < self.wait.poll_interval_seconds:
            raise ValueError(
                "MAESTRO_BACKOFF_CAP_SECONDS must be >= MAESTRO_POLL_INTERVAL_SECONDS.",
            )
        if self.output.output_format not in OUTPUT_FORMATS:
            raise ValueError(
                f"Unsupported output format {self.output.output_format!r}. "
                f"Expected one of: {', '.join(OUTPUT_FORMATS)}.",
            )
        if self.log_level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid MAESTRO_CLI_LOG_LEVEL {self.log_level!r}. "
                f"Expected one of: {', '.join(LOG_LEVELS)}.",
            )


def _require_positive(name: str, value: float) -> None:
    if not math.isfinite(value) or value <= 0:
        raise ValueError(f"{name} must be a finite number > 0, got {value!r}.")


def _validate_endpoint(value: str) -> None:
    parsed = urlparse(value)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise ValueError(
            "Invalid Maestro HTTP endpoint: "
            f"{value!r}. Expected an absolute URL with http:// or https:// scheme.",
        )


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
