from __future__ import annotations

from pathlib import Path

import allure
import pytest

from maestro_cli.config import (
    ConnectionSettings,
    OutputSettings,
    Settings,
    WaitSettings,
)

pytestmark = [
    allure.epic("Maestro Client"),
    allure.feature("Configuration"),
]


def test_defaults_target_local_maestro() -> None:
    settings = Settings.from_env()

    assert settings.connection.http_endpoint == "http://localhost:8000"
    assert settings.connection.insecure is False
    assert settings.wait.poll_interval_seconds == 1.0
    assert settings.wait.timeout_seconds == 300.0
    assert settings.wait.backoff_cap_seconds == 300.0
    assert settings.output.output_format == "yaml"
    assert settings.output.results_path is None
    assert settings.log_level == "info"
    settings.validate()


def test_from_env_reads_overrides(monkeypatch) -> None:
    monkeypatch.setenv("MAESTRO_HTTP_ENDPOINT", "https://maestro.example.com")
    monkeypatch.setenv("MAESTRO_INSECURE", "yes")
    monkeypatch.setenv("MAESTRO_POLL_INTERVAL_SECONDS", "2.5")
    monkeypatch.setenv("MAESTRO_WAIT_TIMEOUT_SECONDS", "60")
    monkeypatch.setenv("MAESTRO_CLI_OUTPUT", "JSON")
    monkeypatch.setenv("RESULTS_PATH", "/tmp/results.json")
    monkeypatch.setenv("MAESTRO_CLI_LOG_LEVEL", "Debug")

    settings = Settings.from_env()

    assert settings.connection.http_endpoint == "https://maestro.example.com"
    assert settings.connection.insecure is True
    assert settings.wait.poll_interval_seconds == 2.5
    assert settings.wait.timeout_seconds == 60.0
    assert settings.output.output_format == "json"
    assert settings.output.results_path == Path("/tmp/results.json")
    assert settings.log_level == "debug"


def test_grpc_insecure_is_honoured_as_fallback(monkeypatch) -> None:
    monkeypatch.setenv("MAESTRO_GRPC_INSECURE", "true")

    assert Settings.from_env().connection.insecure is True

    monkeypatch.setenv("MAESTRO_INSECURE", "false")

    assert Settings.from_env().connection.insecure is False


def test_invalid_boolean_env_is_rejected(monkeypatch) -> None:
    monkeypatch.setenv("MAESTRO_INSECURE", "maybe")

    with pytest.raises(ValueError, match="Invalid boolean value for MAESTRO_INSECURE"):
        Settings.from_env()


@pytest.mark.parametrize(
    ("settings", "message"),
    [
        (Settings(connection=ConnectionSettings(http_endpoint="localhost:8000")), "endpoint"),
        (Settings(connection=ConnectionSettings(http_endpoint="grpc://maestro:8090")), "endpoint"),
        (
            Settings(connection=ConnectionSettings(request_timeout_seconds=0)),
            "MAESTRO_HTTP_TIMEOUT_SECONDS",
        ),
        (Settings(connection=ConnectionSettings(max_retries=-1)), "MAESTRO_HTTP_MAX_RETRIES"),
        (Settings(wait=WaitSettings(poll_interval_seconds=0)), "MAESTRO_POLL_INTERVAL_SECONDS"),
        (Settings(wait=WaitSettings(timeout_seconds=-5)), "MAESTRO_WAIT_TIMEOUT_SECONDS"),
        (
            Settings(wait=WaitSettings(poll_interval_seconds=float("nan"))),
            "MAESTRO_POLL_INTERVAL_SECONDS",
        ),
        (Settings(wait=WaitSettings(timeout_seconds=float("inf"))), "MAESTRO_WAIT_TIMEOUT_SECONDS"),
        (
            Settings(wait=WaitSettings(poll_interval_seconds=10, backoff_cap_seconds=5)),
            "MAESTRO_BACKOFF_CAP_SECONDS",
        ),
        (Settings(output=OutputSettings(output_format="table")), "Unsupported output format"),
        (Settings(log_level="trace"), "MAESTRO_CLI_LOG_LEVEL"),
    ],
)
def test_validate_rejects_unusable_values(settings: Settings, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        settings.validate()


def test_to_poll_settings_prefers_explicit_values() -> None:
    wait = WaitSettings(poll_interval_seconds=2.0, timeout_seconds=120.0, backoff_cap_seconds=30.0)

    assert wait.to_poll_settings().timeout_seconds == 120.0
    overridden = wait.to_poll_settings(timeout_seconds=5.0, poll_interval_seconds=0.5)
    assert overridden.timeout_seconds == 5.0
    assert overridden.poll_interval_seconds == 0.5
    assert overridden.backoff_cap_seconds == 30.0


@pytest.mark.parametrize(
    ("overrides", "message"),
    [
        ({"poll_interval_seconds": -1.0}, "--poll-interval"),
        ({"poll_interval_seconds": float("nan")}, "--poll-interval"),
        ({"timeout_seconds": 0.0}, "--timeout"),
        ({"timeout_seconds": float("inf")}, "--timeout"),
    ],
)
def test_to_poll_settings_rejects_unusable_overrides(overrides: dict, message: str) -> None:
    with pytest.raises(ValueError, match=message):
        WaitSettings().to_poll_settings(**overrides)
