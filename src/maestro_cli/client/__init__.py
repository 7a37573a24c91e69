"""Maestro wire client."""

from maestro_cli.client.errors import (
    ConsumerNotFoundError,
    InvalidSearchQueryError,
    MaestroApiError,
    MaestroError,
    WorkNotFoundError,
)
from maestro_cli.client.http_client import MaestroHttpClient, validate_search_query

__all__ = [
    "ConsumerNotFoundError",
    "InvalidSearchQueryError",
    "MaestroApiError",
    "MaestroError",
    "MaestroHttpClient",
    "WorkNotFoundError",
    "validate_search_query",
]
