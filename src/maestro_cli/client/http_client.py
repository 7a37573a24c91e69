"""HTTP client for the Maestro resource bundle API."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

from maestro_cli.client.errors import (
    ConsumerNotFoundError,
    InvalidSearchQueryError,
    MaestroApiError,
    WorkNotFoundError,
)
from maestro_cli.status.models import StatusSnapshot, WorkSummary, bundle_name

logger = logging.getLogger(__name__)

DEFAULT_HTTP_ENDPOINT = "http://localhost:8000"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_RETRIES = 3
API_PREFIX = "/api/maestro/v1"
MAX_SEARCH_VALUE_LENGTH = 253


class MaestroHttpClient:
    """Read and delete ManifestWorks through the Maestro HTTP API.

    Works are stored by Maestro as resource bundles; the original ManifestWork
    name lives in the bundle's ``metadata.name``. Connection-level retries are
    delegated to the httpx transport.
    """

    def __init__(
        self,
        *,
        endpoint: str = DEFAULT_HTTP_ENDPOINT,
        insecure: bool = False,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = DEFAULT_MAX_RETRIES,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if insecure:
            logger.warning("TLS certificate verification disabled (insecure mode)")
        self._client = httpx.Client(
            base_url=endpoint.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            transport=transport or httpx.HTTPTransport(retries=max_retries, verify=not insecure),
            headers={"Accept": "application/json"},
        )

    def list_consumers(self) -> list[str]:
        payload = self._request("GET", f"{API_PREFIX}/consumers", action="list consumers")
        return [
            item["name"]
            for item in _items(payload)
            if isinstance(item.get("name"), str) and item["name"]
        ]

    def validate_consumer(self, consumer: str) -> None:
        """Raise ConsumerNotFoundError naming the registered consumers if absent."""

        consumers = self.list_consumers()
        if consumer not in consumers:
            raise ConsumerNotFoundError(consumer, tuple(consumers))

    def list_works(self, consumer: str) -> list[WorkSummary]:
        return [
            WorkSummary.from_resource_bundle(bundle, consumer=consumer)
            for bundle in self._search_bundles(consumer)
        ]

    def get_bundle(self, consumer: str, name: str) -> dict[str, Any]:
        """Raw resource bundle document for the named work."""

        for bundle in self._search_bundles(consumer):
            if bundle_name(bundle) == name:
                return bundle
        raise WorkNotFoundError(name, consumer)

    def get_work_summary(self, consumer: str, name: str) -> WorkSummary:
        return WorkSummary.from_resource_bundle(self.get_bundle(consumer, name), consumer=consumer)

    def get_snapshot(self, consumer: str, name: str) -> StatusSnapshot:
        return StatusSnapshot.from_resource_bundle(
            self.get_bundle(consumer, name),
            consumer=consumer,
        )

    def delete_work(self, consumer: str, name: str) -> WorkSummary:
        """Delete the named work by bundle id; returns the summary of what was deleted."""

        work = self.get_work_summary(consumer, name)
        self._request(
            "DELETE",
            f"{API_PREFIX}/resource-bundles/{work.id}",
            action=f"delete resource bundle {work.id}",
        )
        return work

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> MaestroHttpClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    def _search_bundles(self, consumer: str) -> list[Mapping[str, Any]]:
        validate_search_query(consumer)
        payload = self._request(
            "GET",
            f"{API_PREFIX}/resource-bundles",
            params={"search": f"consumer_name = '{consumer}'"},
            action="search resource bundles",
        )
        return _items(payload)

    def _request(
        self,
        method: str,
        path: str,
        *,
        action: str,
        params: dict[str, str] | None = None,
    ) -> Any:
        try:
            response = self._client.request(method, path, params=params)
        except httpx.TimeoutException as error:
            raise MaestroApiError(f"failed to {action}: timeout") from error
        except httpx.HTTPError as error:
            raise MaestroApiError(f"failed to {action}: {error}") from error

        if not response.is_success:
            raise MaestroApiError(
                f"failed to {action}: HTTP {response.status_code} {_reason(response)}".rstrip(),
                status_code=response.status_code,
            )
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as error:
            raise MaestroApiError(
                f"failed to {action}: invalid JSON response",
                status_code=response.status_code,
            ) from error


def validate_search_query(value: str) -> None:
    """Allow only Kubernetes-style names inside search expressions."""

    for char in value:
        if not (char.isascii() and (char.isalnum() or char in "-_.")):
            raise InvalidSearchQueryError(
                f"invalid character {char!r} in search query, "
                "only alphanumeric, hyphens, underscores, and dots allowed",
            )
    if not value:
        raise InvalidSearchQueryError("search query cannot be empty")
    if len(value) > MAX_SEARCH_VALUE_LENGTH:
        raise InvalidSearchQueryError(
            f"search query too long: {len(value)} characters (max {MAX_SEARCH_VALUE_LENGTH})",
        )


def _items(payload: Any) -> list[Mapping[str, Any]]:
    if not isinstance(payload, Mapping):
        return []
    items = payload.get("items")
    if not isinstance(items, list):
        return []
    return [item for item in items if isinstance(item, Mapping)]


def _reason(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(payload, Mapping):
        reason = payload.get("reason") or payload.get("message")
        if isinstance(reason, str):
            return reason
    return response.reason_phrase
