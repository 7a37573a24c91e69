"""Deterministic classification of snapshot acquisition failures for the poll loop."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from maestro_cli.client.errors import (
    ConsumerNotFoundError,
    MaestroApiError,
    WorkNotFoundError,
)

ACQUISITION_CLASSIFIER_VERSION = 1

_NOT_FOUND_PATTERNS: tuple[str, ...] = (
    "not found",
    "does not exist",
)


class AcquisitionFailureClass(str, Enum):
    """Failure classes the poll loop reacts to."""

    NOT_FOUND = "not_found"
    TRANSIENT = "transient"


@dataclass(slots=True)
class AcquisitionFailure:
    """Normalized failure classification result."""

    failure_class: AcquisitionFailureClass
    reason_code: str
    matched_rule: str
    matched_pattern: str | None
    message: str

    @property
    def is_not_found(self) -> bool:
        return self.failure_class is AcquisitionFailureClass.NOT_FOUND

    def to_log_fields(self) -> dict[str, object]:
        return {
            "classifier_version": ACQUISITION_CLASSIFIER_VERSION,
            "failure_class": self.failure_class.value,
            "reason_code": self.reason_code,
            "matched_rule": self.matched_rule,
            "matched_pattern": self.matched_pattern,
        }


def classify_acquisition_failure(error: BaseException) -> AcquisitionFailure:
    """Classify an exception raised by an acquire callable."""

    message = str(error) or type(error).__name__

    if isinstance(error, WorkNotFoundError):
        return AcquisitionFailure(
            failure_class=AcquisitionFailureClass.NOT_FOUND,
            reason_code="work_not_found",
            matched_rule="typed_work_not_found",
            matched_pattern=None,
            message=message,
        )
    if isinstance(error, ConsumerNotFoundError):
        return AcquisitionFailure(
            failure_class=AcquisitionFailureClass.NOT_FOUND,
            reason_code="consumer_not_found",
            matched_rule="typed_consumer_not_found",
            matched_pattern=None,
            message=message,
        )
    if isinstance(error, MaestroApiError) and error.status_code == 404:  # noqa: PLR2004
        return AcquisitionFailure(
            failure_class=AcquisitionFailureClass.NOT_FOUND,
            reason_code="http_404",
            matched_rule="http_status_not_found",
            matched_pattern=None,
            message=message,
        )

    pattern = _first_match(message.lower(), _NOT_FOUND_PATTERNS)
    if pattern is not None:
        return AcquisitionFailure(
            failure_class=AcquisitionFailureClass.NOT_FOUND,
            reason_code="message_not_found",
            matched_rule="not_found_message",
            matched_pattern=pattern,
            message=message,
        )

    return AcquisitionFailure(
        failure_class=AcquisitionFailureClass.TRANSIENT,
        reason_code=(
            f"http_{error.status_code}"
            if isinstance(error, MaestroApiError) and error.status_code is not None
            else "acquisition_transient"
        ),
        matched_rule="fallback_transient",
        matched_pattern=None,
        message=message,
    )


def _first_match(haystack: str, patterns: tuple[str, ...]) -> str | None:
    for pattern in patterns:
        if pattern in haystack:
            return pattern
    return None
