"""Text, JSON, and YAML renderings of work status for CLI output."""

from __future__ import annotations

import json
from collections.abc import Callable
from datetime import datetime
from typing import Any

import yaml

from maestro_cli.status.models import Condition, ManifestInfo, StatusSnapshot, WorkSummary
from maestro_cli.status.results import condition_to_dict

OUTPUT_FORMATS: tuple[str, ...] = ("yaml", "json", "text")


def dump_document(data: Any, output_format: str) -> str:
    if output_format == "json":
        return json.dumps(data, indent=2)
    return yaml.safe_dump(data, sort_keys=False, allow_unicode=True).rstrip("\n")


def snapshot_to_dict(snapshot: StatusSnapshot) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": snapshot.id,
        "name": snapshot.name,
        "consumerName": snapshot.consumer,
        "version": snapshot.version,
        "createdAt": snapshot.created_at,
        "updatedAt": snapshot.updated_at,
        "manifests": [_manifest_dict(info) for info in snapshot.manifests],
        "conditions": [condition_to_dict(condition) for condition in snapshot.conditions],
    }
    if snapshot.resource_statuses:
        payload["resourceStatus"] = [
            {
                "kind": resource.kind,
                "name": resource.name,
                **({"namespace": resource.namespace} if resource.namespace else {}),
                **({"group": resource.group} if resource.group else {}),
                **({"version": resource.version} if resource.version else {}),
                **({"resource": resource.resource} if resource.resource else {}),
                "conditions": [condition_to_dict(condition) for condition in resource.conditions],
                **(
                    {"statusFeedback": resource.feedback_as_dict()}
                    if resource.status_feedback
                    else {}
                ),
            }
            for resource in snapshot.resource_statuses
        ]
    if snapshot.delete_option:
        payload["deleteOption"] = snapshot.delete_option
    return payload


def work_summary_to_dict(work: WorkSummary) -> dict[str, Any]:
    return {
        "id": work.id,
        "name": work.name,
        "consumerName": work.consumer,
        "version": work.version,
        "createdAt": work.created_at,
        "updatedAt": work.updated_at,
        "manifestCount": len(work.manifests),
        "manifests": [_manifest_dict(info) for info in work.manifests],
        "conditions": [condition_to_dict(condition) for condition in work.conditions],
    }


def render_describe_lines(snapshot: StatusSnapshot) -> list[str]:
    lines = [
        f"Name:         {snapshot.name}",
        f"ID:           {snapshot.id}",
        f"Consumer:     {snapshot.consumer}",
        f"Version:      {snapshot.version}",
        f"Created:      {snapshot.created_at}",
        f"Updated:      {snapshot.updated_at}",
        "",
        "Conditions:",
    ]
    if not snapshot.conditions:
        lines.append("  (none)")
    for condition in snapshot.conditions:
        lines.append(f"  {condition.type}:")
        lines.append(f"    Status:  {condition.status.value}")
        if condition.reason:
            lines.append(f"    Reason:  {condition.reason}")
        if condition.message:
            lines.append(f"    Message: {condition.message}")
        if condition.last_transition_time:
            lines.append(f"    LastTransitionTime: {condition.last_transition_time}")

    lines.extend(["", f"Manifests ({len(snapshot.manifests)}):"])
    lines.extend(f"  [{index}] {info.key}" for index, info in enumerate(snapshot.manifests))

    if snapshot.resource_statuses:
        lines.extend(["", "Resource Status:"])
        for resource in snapshot.resource_statuses:
            lines.append(f"  {resource.display_name}:")
            if resource.namespace:
                lines.append(f"    Namespace: {resource.namespace}")
            lines.extend(
                f"    {condition.type}: {condition.status.value}"
                for condition in resource.conditions
            )
            if resource.status_feedback:
                lines.append("    Feedback:")
                lines.extend(
                    f"      {name}: {_feedback_text(value.value)}"
                    for name, value in resource.status_feedback.items()
                )

    if snapshot.delete_option:
        lines.extend(["", f"Delete Option: {snapshot.delete_option}"])
    return lines


def filter_works(works: list[WorkSummary], pattern: str) -> list[WorkSummary]:
    """Filter by ``name``, ``Kind/name`` or ``Kind/namespace/name`` substrings."""

    if not pattern:
        return works
    parts = pattern.split("/")
    kind = namespace = ""
    if len(parts) == 1:
        name = parts[0].lower()
    elif len(parts) == 2:  # noqa: PLR2004
        kind, name = parts[0], parts[1].lower()
    else:
        kind, namespace, name = parts[0], parts[1].lower(), "/".join(parts[2:]).lower()
    return [work for work in works if _matches_filter(work, kind, namespace, name)]


def _matches_filter(work: WorkSummary, kind: str, namespace: str, name: str) -> bool:
    if name and name in work.name.lower():
        return True
    for info in work.manifests:
        if kind and info.kind.casefold() != kind.casefold():
            continue
        if namespace and namespace not in info.namespace.lower():
            continue
        if name:
            if name in info.name.lower():
                return True
            continue
        if kind:
            return True
    return False


def render_work_list_lines(works: list[WorkSummary], *, consumer: str, pattern: str) -> list[str]:
    if not works:
        if pattern:
            return [f"No ManifestWorks matching '{pattern}' found for consumer {consumer}"]
        return [f"No ManifestWorks found for consumer {consumer}"]

    lines: list[str] = []
    for index, work in enumerate(works):
        if index:
            lines.append("")
        lines.extend(
            [
                f"ManifestWork: {work.name}",
                f"  ID:        {work.id}",
                f"  Version:   {work.version}",
                f"  Created:   {work.created_at}",
                f"  Updated:   {work.updated_at}",
                f"  Manifests ({len(work.manifests)}):",
            ],
        )
        lines.extend(f"    - {info.key}" for info in work.manifests)
        if work.conditions:
            lines.append("  Conditions:")
            lines.extend(
                f"    - {condition.type}: {condition.status.value}" for condition in work.conditions
            )
    lines.extend(["", "-" * 41, f"Total: {len(works)} ManifestWork(s) for consumer {consumer}"])
    return lines


class WatchPrinter:
    """Result sink that emits one status line whenever the work changes."""

    def __init__(
        self,
        emit: Callable[[str], None],
        *,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._emit = emit
        self._now = now
        self._last_key: tuple[int, str] | None = None

    def __call__(self, snapshot: StatusSnapshot, condition_met: bool) -> None:
        key = (snapshot.version, _condition_fingerprint(snapshot))
        if key == self._last_key:
            return
        self._last_key = key
        self._emit(render_watch_line(snapshot, timestamp=self._now()))


def render_watch_line(snapshot: StatusSnapshot, *, timestamp: datetime) -> str:
    parts = [f"[{timestamp:%H:%M:%S}] v{snapshot.version}"]
    parts.extend(_condition_mark(condition) for condition in snapshot.conditions)
    for resource in snapshot.resource_statuses:
        marks = " ".join(_condition_mark(condition) for condition in resource.conditions)
        parts.append(f"| {resource.display_name}: {marks}".rstrip())
    return " ".join(parts)


def _condition_fingerprint(snapshot: StatusSnapshot) -> str:
    items = [f"{condition.type}={condition.status.value}" for condition in snapshot.conditions]
    for resource in snapshot.resource_statuses:
        items.extend(
            f"{resource.display_name}:{condition.type}={condition.status.value}"
            for condition in resource.conditions
        )
    return ",".join(items)


def _condition_mark(condition: Condition) -> str:
    return f"{condition.type}{'✓' if condition.is_true else '✗'}"


def _manifest_dict(info: ManifestInfo) -> dict[str, str]:
    payload = {"kind": info.kind, "name": info.name}
    if info.namespace:
        payload["namespace"] = info.namespace
    return payload


def _feedback_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"))
    return str(value)
