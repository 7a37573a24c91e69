"""Shared test fixtures."""

from __future__ import annotations

import pytest
from factories import FakeMaestro

from maestro_cli import main

_MAESTRO_ENV = (
    "MAESTRO_HTTP_ENDPOINT",
    "MAESTRO_INSECURE",
    "MAESTRO_GRPC_INSECURE",
    "MAESTRO_HTTP_TIMEOUT_SECONDS",
    "MAESTRO_HTTP_MAX_RETRIES",
    "MAESTRO_POLL_INTERVAL_SECONDS",
    "MAESTRO_WAIT_TIMEOUT_SECONDS",
    "MAESTRO_BACKOFF_CAP_SECONDS",
    "MAESTRO_CLI_OUTPUT",
    "MAESTRO_CLI_LOG_LEVEL",
    "RESULTS_PATH",
)


@pytest.fixture(autouse=True)
def clean_maestro_env(monkeypatch):
    """Keep developer shell settings out of the tests."""
    for name in _MAESTRO_ENV:
        monkeypatch.delenv(name, raising=False)
    # rich-click wraps error panels at the terminal width (80 when none is
    # attached); keep messages on one line so output assertions are stable.
    monkeypatch.setenv("COLUMNS", "200")


@pytest.fixture()
def fake_maestro(monkeypatch) -> FakeMaestro:
    """Route the CLI controller to an in-memory Maestro API."""
    server = FakeMaestro()
    monkeypatch.setattr(main.CONTROLLER, "client_factory", server.client)
    monkeypatch.setenv("MAESTRO_POLL_INTERVAL_SECONDS", "0.01")
    return server
