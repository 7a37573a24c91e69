"""Typed point-in-time view of a ManifestWork status read from Maestro."""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

APPLIED_CONDITION = "Applied"
AVAILABLE_CONDITION = "Available"

_RFC3339 = re.compile(
    r"(?P<base>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<fraction>\d+))?"
    r"(?P<offset>Z|[+-]\d{2}:\d{2})",
    re.ASCII,
)


class ConditionStatus(str, Enum):
    """Tri-state condition status as reported by the work agent."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: object) -> ConditionStatus:
        if value == cls.TRUE.value:
            return cls.TRUE
        if value == cls.FALSE.value:
            return cls.FALSE
        return cls.UNKNOWN


class FeedbackKind(str, Enum):
    """Wire variants of a status feedback field value."""

    STRING = "string"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    JSON = "jsonRaw"


@dataclass(slots=True, frozen=True)
class FeedbackValue:
    """One status feedback value; ``value`` holds parsed data for JSON entries."""

    kind: FeedbackKind
    value: Any

    @classmethod
    def from_field_value(cls, field_value: Mapping[str, Any]) -> FeedbackValue | None:
        """Decode a wire ``fieldValue`` object, returning None when no variant is set."""

        string_value = field_value.get("string")
        if isinstance(string_value, str):
            return cls(kind=FeedbackKind.STRING, value=string_value)
        integer_value = field_value.get("integer")
        if isinstance(integer_value, (int, float)) and not isinstance(integer_value, bool):
            return cls(kind=FeedbackKind.INTEGER, value=int(integer_value))
        boolean_value = field_value.get("boolean")
        if isinstance(boolean_value, bool):
            return cls(kind=FeedbackKind.BOOLEAN, value=boolean_value)
        raw = field_value.get("jsonRaw")
        if isinstance(raw, str):
            try:
                return cls(kind=FeedbackKind.JSON, value=json.loads(raw))
            except ValueError:
                return cls(kind=FeedbackKind.STRING, value=raw)
        return None

    def to_plain(self) -> Any:
        return self.value


@dataclass(slots=True, frozen=True)
class Condition:
    """Typed status entry attached to a work item or one of its resources."""

    type: str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    reason: str = ""
    message: str = ""
    last_transition_time: str = ""

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> Condition:
        return cls(
            type=_text(payload, "type"),
            status=ConditionStatus.parse(payload.get("status")),
            reason=_text(payload, "reason"),
            message=_text(payload, "message"),
            last_transition_time=_text(payload, "lastTransitionTime"),
        )

    @property
    def is_true(self) -> bool:
        return self.status is ConditionStatus.TRUE

    @property
    def transition_time(self) -> datetime | None:
        """Parsed RFC3339 transition time, or None when absent or not RFC3339."""

        return parse_rfc3339(self.last_transition_time)

    def is_type(self, condition_type: str) -> bool:
        return self.type.casefold() == condition_type.casefold()


@dataclass(slots=True, frozen=True)
class ManifestInfo:
    """Identity of one manifest bundled in a work item."""

    kind: str
    name: str
    namespace: str = ""

    @property
    def key(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name}"
        return f"{self.kind}/{self.name}"


@dataclass(slots=True, frozen=True)
class ResourceStatus:
    """Per-manifest status: identity, conditions, and reported feedback values."""

    kind: str
    name: str
    namespace: str = ""
    group: str = ""
    version: str = ""
    resource: str = ""
    conditions: tuple[Condition, ...] = ()
    status_feedback: Mapping[str, FeedbackValue] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ResourceStatus:
        meta = payload.get("resourceMeta")
        meta = meta if isinstance(meta, Mapping) else {}
        return cls(
            kind=_text(meta, "kind"),
            name=_text(meta, "name"),
            namespace=_text(meta, "namespace"),
            group=_text(meta, "group"),
            version=_text(meta, "version"),
            resource=_text(meta, "resource"),
            conditions=_conditions(payload.get("conditions")),
            status_feedback=_status_feedback(payload.get("statusFeedback")),
        )

    @property
    def display_name(self) -> str:
        return f"{self.kind}/{self.name}"

    def resolve_feedback(self, path: str) -> Any:
        """Resolve a dot-separated path against the feedback values.

        The first segment selects a feedback entry; later segments descend into
        nested mappings of JSON values. Returns None when any key is missing.
        """

        head, *rest = path.split(".")
        entry = self.status_feedback.get(head)
        if entry is None:
            return None
        current: Any = entry.value
        for part in rest:
            if not isinstance(current, Mapping):
                return None
            current = current.get(part)
        return current

    def feedback_as_dict(self) -> dict[str, Any]:
        return {name: value.to_plain() for name, value in self.status_feedback.items()}


@dataclass(slots=True, frozen=True)
class StatusSnapshot:
    """Immutable point-in-time read of a work item's status."""

    id: str
    name: str
    consumer: str
    version: int = 0
    created_at: str = ""
    updated_at: str = ""
    conditions: tuple[Condition, ...] = ()
    resource_statuses: tuple[ResourceStatus, ...] = ()
    manifests: tuple[ManifestInfo, ...] = ()
    delete_option: str = ""

    @classmethod
    def from_resource_bundle(cls, bundle: Mapping[str, Any], *, consumer: str) -> StatusSnapshot:
        """Build a snapshot from a Maestro resource bundle document."""

        status = bundle.get("status")
        status = status if isinstance(status, Mapping) else {}
        delete_option = bundle.get("delete_option")
        propagation = ""
        if isinstance(delete_option, Mapping):
            propagation = _text(delete_option, "propagationPolicy")
        resource_statuses = status.get("resourceStatus")
        return cls(
            id=_text(bundle, "id"),
            name=bundle_name(bundle),
            consumer=consumer,
            version=_int(bundle.get("version")),
            created_at=_text(bundle, "created_at"),
            updated_at=_text(bundle, "updated_at"),
            conditions=_conditions(status.get("conditions")),
            resource_statuses=tuple(
                ResourceStatus.from_dict(item)
                for item in (resource_statuses if isinstance(resource_statuses, list) else [])
                if isinstance(item, Mapping)
            ),
            manifests=manifest_infos(bundle.get("manifests")),
            delete_option=propagation,
        )

    def find_condition(self, condition_type: str) -> Condition | None:
        """Last TRUE condition of the given type in scan order."""

        found: Condition | None = None
        for condition in self.conditions:
            if condition.is_type(condition_type) and condition.is_true:
                found = condition
        return found


@dataclass(slots=True, frozen=True)
class WorkSummary:
    """Listing view of a work item without per-resource status."""

    id: str
    name: str
    consumer: str
    version: int = 0
    created_at: str = ""
    updated_at: str = ""
    manifests: tuple[ManifestInfo, ...] = ()
    conditions: tuple[Condition, ...] = ()

    @classmethod
    def from_resource_bundle(cls, bundle: Mapping[str, Any], *, consumer: str) -> WorkSummary:
        status = bundle.get("status")
        status = status if isinstance(status, Mapping) else {}
        work_id = _text(bundle, "id")
        return cls(
            id=work_id,
            name=bundle_name(bundle) or work_id,
            consumer=consumer,
            version=_int(bundle.get("version")),
            created_at=_text(bundle, "created_at"),
            updated_at=_text(bundle, "updated_at"),
            manifests=manifest_infos(bundle.get("manifests")),
            conditions=_conditions(status.get("conditions")),
        )


def parse_rfc3339(value: str | None) -> datetime | None:
    """Parse an RFC3339 timestamp such as ``2024-05-01T10:00:00Z``.

    The ``T`` separator, seconds and a ``Z``, ``+hh:mm`` or ``-hh:mm`` offset are required;
    anything looser returns None. Fractions beyond microseconds are truncated.
    """

    if value is None:
        return None
    match = _RFC3339.fullmatch(value.strip())
    if match is None:
        return None
    offset = match["offset"]
    text = match["base"]
    if match["fraction"]:
        text += "." + match["fraction"][:6].ljust(6, "0")
    text += "+00:00" if offset == "Z" else offset
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def bundle_name(bundle: Mapping[str, Any]) -> str:
    """Original ManifestWork name stored in the bundle's metadata."""

    metadata = bundle.get("metadata")
    if isinstance(metadata, Mapping):
        return _text(metadata, "name")
    return ""


def manifest_infos(manifests: object) -> tuple[ManifestInfo, ...]:
    if not isinstance(manifests, list):
        return ()
    infos: list[ManifestInfo] = []
    for manifest in manifests:
        if not isinstance(manifest, Mapping):
            continue
        metadata = manifest.get("metadata")
        metadata = metadata if isinstance(metadata, Mapping) else {}
        infos.append(
            ManifestInfo(
                kind=_text(manifest, "kind"),
                name=_text(metadata, "name"),
                namespace=_text(metadata, "namespace"),
            ),
        )
    return tuple(infos)


def _conditions(items: object) -> tuple[Condition, ...]:
    if not isinstance(items, list):
        return ()
    return tuple(Condition.from_dict(item) for item in items if isinstance(item, Mapping))


def _status_feedback(payload: object) -> dict[str, FeedbackValue]:
    if not isinstance(payload, Mapping):
        return {}
    values = payload.get("values")
    if not isinstance(values, list):
        return {}
    feedback: dict[str, FeedbackValue] = {}
    for entry in values:
        if not isinstance(entry, Mapping):
            continue
        name = entry.get("name")
        field_value = entry.get("fieldValue")
        if not isinstance(name, str) or not isinstance(field_value, Mapping):
            continue
        decoded = FeedbackValue.from_field_value(field_value)
        if decoded is not None:
            feedback[name] = decoded
    return feedback


def _text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    return value if isinstance(value, str) else ""


def _int(value: object) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value)
    return 0
