"""Errors raised by the Maestro wire client."""

from __future__ import annotations


class MaestroError(Exception):
    """Base class for Maestro client failures."""


class MaestroApiError(MaestroError):
    """Request to the Maestro HTTP API failed."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ConsumerNotFoundError(MaestroError):
    """Consumer is not registered with Maestro."""

    def __init__(self, consumer: str, available: tuple[str, ...] = ()) -> None:
        if available:
            message = (
                f"consumer {consumer!r} not found. Available consumers: {', '.join(available)}"
            )
        else:
            message = f"consumer {consumer!r} not found: no consumers are registered with Maestro"
        super().__init__(message)
        self.consumer = consumer
        self.available = available


class WorkNotFoundError(MaestroError):
    """ManifestWork with the given name does not exist for the consumer."""

    def __init__(self, name: str, consumer: str) -> None:
        super().__init__(f"ManifestWork {name!r} not found for consumer {consumer!r}")
        self.name = name
        self.consumer = consumer


class InvalidSearchQueryError(MaestroError, ValueError):
    """Value cannot be embedded safely into a resource bundle search query."""
