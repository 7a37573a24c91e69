"""Status result documents written for external status reporters."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from maestro_cli.status.models import (
    APPLIED_CONDITION,
    AVAILABLE_CONDITION,
    Condition,
    StatusSnapshot,
)

logger = logging.getLogger(__name__)

RESULTS_PATH_ENV = "RESULTS_PATH"
STATUS_WAITING = "Waiting"
STATUS_DELETED = "Deleted"
STATUS_UNKNOWN = "Unknown"


@dataclass(slots=True)
class StatusResult:
    """Outcome of a CLI operation in the shape status reporters consume."""

    name: str
    consumer: str
    status: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    id: str = ""
    version: int = 0
    created_at: str = ""
    updated_at: str = ""
    conditions: list[dict[str, str]] = field(default_factory=list)
    resources: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.id:
            payload["id"] = self.id
        payload["name"] = self.name
        payload["consumer"] = self.consumer
        if self.version:
            payload["version"] = self.version
        if self.created_at:
            payload["createdAt"] = self.created_at
        if self.updated_at:
            payload["updatedAt"] = self.updated_at
        payload["status"] = self.status
        payload["message"] = self.message
        payload["timestamp"] = self.timestamp.isoformat()
        if self.conditions:
            payload["conditions"] = self.conditions
        if self.resources:
            payload["resources"] = self.resources
        return payload


def build_status_result(
    *,
    name: str,
    consumer: str,
    status: str,
    message: str,
    snapshot: StatusSnapshot | None = None,
) -> StatusResult:
    result = StatusResult(name=name, consumer=consumer, status=status, message=message)
    if snapshot is None:
        return result

    result.id = snapshot.id
    result.version = snapshot.version
    result.created_at = snapshot.created_at
    result.updated_at = snapshot.updated_at
    result.conditions = [condition_to_dict(condition) for condition in snapshot.conditions]
    for resource in snapshot.resource_statuses:
        entry: dict[str, Any] = {
            "name": resource.name,
            "kind": resource.kind,
            "status": summarize_resource_status(resource.conditions),
        }
        if resource.namespace:
            entry["namespace"] = resource.namespace
        if resource.group:
            entry["group"] = resource.group
        if resource.version:
            entry["version"] = resource.version
        if resource.conditions:
            entry["conditions"] = [
                condition_to_dict(condition, with_time=False) for condition in resource.conditions
            ]
        if resource.status_feedback:
            entry["statusFeedback"] = resource.feedback_as_dict()
        result.resources.append(entry)
    return result


def summarize_resource_status(conditions: tuple[Condition, ...]) -> str:
    """First of Available/Applied found True in order, else Unknown."""

    for condition in conditions:
        if condition.is_true and condition.type == AVAILABLE_CONDITION:
            return AVAILABLE_CONDITION
        if condition.is_true and condition.type == APPLIED_CONDITION:
            return APPLIED_CONDITION
    return STATUS_UNKNOWN


def write_result(results_path: Path | None, result: StatusResult) -> Path | None:
    """Write the result as JSON; falls back to $RESULTS_PATH, no-op when neither is set."""

    if results_path is None:
        env_path = os.getenv(RESULTS_PATH_ENV, "").strip()
        if not env_path:
            return None
        results_path = Path(env_path)

    data = json.dumps(result.to_dict())
    fd = os.open(results_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as handle:
        handle.write(data)
    return results_path


class ResultsFileSink:
    """Result sink that rewrites the results file on every poll."""

    def __init__(
        self,
        *,
        results_path: Path | None,
        name: str,
        consumer: str,
        expression: str,
    ) -> None:
        self.results_path = results_path
        self.name = name
        self.consumer = consumer
        self.expression = expression

    def __call__(self, snapshot: StatusSnapshot, condition_met: bool) -> None:
        if condition_met:
            status = self.expression
            message = f"Condition '{self.expression}' met"
        else:
            status = STATUS_WAITING
            message = f"Waiting for condition '{self.expression}'"
        written = write_result(
            self.results_path,
            build_status_result(
                name=self.name,
                consumer=self.consumer,
                status=status,
                message=message,
                snapshot=snapshot,
            ),
        )
        if written is not None:
            logger.debug("Wrote wait progress to %s", written)


def condition_to_dict(condition: Condition, *, with_time: bool = True) -> dict[str, str]:
    payload = {"type": condition.type, "status": condition.status.value}
    if condition.reason:
        payload["reason"] = condition.reason
    if condition.message:
        payload["message"] = condition.message
    if with_time and condition.last_transition_time:
        payload["lastTransitionTime"] = condition.last_transition_time
    return payload
