"""Poll scheduler that drives snapshot acquisition until a condition holds.

One scheduler instance serves one wait invocation. It owns its backoff state,
issues at most one acquisition at a time, and sleeps on the cancellation token
so a cancel wakes it immediately.
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

from maestro_cli.status.evaluator import evaluate
from maestro_cli.status.failure_classifier import classify_acquisition_failure
from maestro_cli.status.models import StatusSnapshot

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 1.0
DEFAULT_WAIT_TIMEOUT_SECONDS = 300.0
DEFAULT_BACKOFF_CAP_SECONDS = 300.0
BACKOFF_LOG_EVERY_FAILURES = 3


class WaitState(str, Enum):
    """Lifecycle of a single wait invocation."""

    IDLE = "idle"
    POLLING = "polling"
    CONDITION_MET = "condition_met"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class WaitError(Exception):
    """Wait ended without the condition being met."""

    def __init__(self, message: str, *, description: str) -> None:
        super().__init__(message)
        self.description = description


class WaitTimeoutError(WaitError):
    """Deadline passed before the condition was met."""


class WaitCancelledError(WaitError):
    """Caller cancelled the wait."""

    def __init__(self, message: str, *, description: str, cause: str) -> None:
        super().__init__(message, description=description)
        self.cause = cause


class CancelToken:
    """Cooperative cancellation signal shared between a wait and its caller."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._cause: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def cause(self) -> str | None:
        return self._cause

    def cancel(self, cause: str = "cancelled") -> None:
        if not self._event.is_set():
            self._cause = cause
        self._event.set()

    def wait(self, timeout: float) -> bool:
        """Block up to ``timeout`` seconds; True when cancelled meanwhile."""

        return self._event.wait(timeout=max(0.0, timeout))


Acquire = Callable[[CancelToken], StatusSnapshot]
ResultSink = Callable[[StatusSnapshot, bool], None]


@dataclass(slots=True)
class PollSettings:
    """Timing knobs for one wait invocation."""

    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    timeout_seconds: float = DEFAULT_WAIT_TIMEOUT_SECONDS
    backoff_cap_seconds: float = DEFAULT_BACKOFF_CAP_SECONDS


@dataclass(slots=True)
class WaitOutcome:
    """Terminal result of a wait."""

    state: WaitState
    description: str
    polls: int
    failures: int
    last_snapshot: StatusSnapshot | None = None
    error: WaitError | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is WaitState.CONDITION_MET

    def raise_for_state(self) -> None:
        if self.error is not None:
            raise self.error


class PollScheduler:
    """Timer-driven acquisition loop with exponential backoff on failures."""

    def __init__(
        self,
        *,
        settings: PollSettings | None = None,
        cancel_token: CancelToken | None = None,
    ) -> None:
        self.settings = settings or PollSettings()
        self.cancel_token = cancel_token or CancelToken()
        self.state = WaitState.IDLE
        self.consecutive_failures = 0
        self.current_interval = self.settings.poll_interval_seconds
        self._polls = 0
        self._total_failures = 0
        self._last_snapshot: StatusSnapshot | None = None

    def record_success(self) -> None:
        if self.consecutive_failures:
            logger.debug(
                "Acquisition succeeded after %d failures, interval reset to %.1fs",
                self.consecutive_failures,
                self.settings.poll_interval_seconds,
            )
        self.consecutive_failures = 0
        self.current_interval = self.settings.poll_interval_seconds

    def record_failure(self) -> float:
        """Count a failed acquisition and return the new poll interval."""

        self.consecutive_failures += 1
        self._total_failures += 1
        new_interval = self.compute_backoff_interval(self.consecutive_failures)
        if new_interval != self.current_interval:
            self.current_interval = new_interval
            if (
                self.consecutive_failures % BACKOFF_LOG_EVERY_FAILURES == 0
                or new_interval >= self.settings.backoff_cap_seconds
            ):
                logger.info(
                    "Increased poll interval to %.1fs after %d consecutive failures (max %.1fs)",
                    new_interval,
                    self.consecutive_failures,
                    self.settings.backoff_cap_seconds,
                )
        return self.current_interval

    def compute_backoff_interval(self, failures: int) -> float:
        base = self.settings.poll_interval_seconds
        if failures <= 0:
            return base
        return min(base * (2 ** (failures - 1)), self.settings.backoff_cap_seconds)

    def wait_for_condition(
        self,
        acquire: Acquire,
        expression: str,
        *,
        sink: ResultSink | None = None,
    ) -> WaitOutcome:
        """Poll until ``expression`` holds, the deadline passes, or the token is cancelled."""

        logger.info(
            "Polling for condition %r every %.1fs (timeout %gs)",
            expression,
            self.settings.poll_interval_seconds,
            self.settings.timeout_seconds,
        )

        def cycle() -> bool:
            try:
                snapshot = acquire(self.cancel_token)
            except Exception as error:  # noqa: BLE001
                failure = classify_acquisition_failure(error)
                logger.debug("Acquisition failure classified: %s", failure.to_log_fields())
                interval = self.record_failure()
                logger.warning(
                    "Failed to poll work status (%s): %s; next poll in %.1fs",
                    failure.reason_code,
                    failure.message,
                    interval,
                )
                return False

            self.record_success()
            self._check_version(snapshot)
            self._last_snapshot = snapshot
            condition_met = evaluate(snapshot, expression)
            logger.debug(
                "Polled %s v%d: %d conditions, condition met=%s",
                snapshot.name,
                snapshot.version,
                len(snapshot.conditions),
                condition_met,
            )
            _notify(sink, snapshot, condition_met)
            return condition_met

        return self._run(cycle, description=f"condition {expression!r}")

    def wait_for_deletion(self, acquire: Acquire) -> WaitOutcome:
        """Poll until acquisition reports the work as not found.

        Errors other than not-found are logged and retried at the current
        interval; deletion waits never back off.
        """

        logger.info(
            "Polling for deletion every %.1fs (timeout %gs)",
            self.settings.poll_interval_seconds,
            self.settings.timeout_seconds,
        )

        def cycle() -> bool:
            try:
                snapshot = acquire(self.cancel_token)
            except Exception as error:  # noqa: BLE001
                failure = classify_acquisition_failure(error)
                if failure.is_not_found:
                    logger.info("Work is gone: %s", failure.message)
                    return True
                self._total_failures += 1
                logger.warning("Error polling for deletion: %s", failure.message)
                return False
            self._last_snapshot = snapshot
            logger.debug("Work %s still present at v%d", snapshot.name, snapshot.version)
            return False

        return self._run(cycle, description="deletion")

    def _run(self, cycle: Callable[[], bool], *, description: str) -> WaitOutcome:
        deadline = time.monotonic() + self.settings.timeout_seconds
        self.state = WaitState.POLLING

        while True:
            self._polls += 1
            if cycle():
                logger.info("Wait for %s finished: condition met", description)
                return self._finish(WaitState.CONDITION_MET, description)

            if self.cancel_token.cancelled:
                return self._cancelled(description)
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return self._expired(description)
            if self.cancel_token.wait(min(self.current_interval, remaining)):
                return self._cancelled(description)
            if time.monotonic() >= deadline:
                return self._expired(description)

    def _expired(self, description: str) -> WaitOutcome:
        logger.warning(
            "Timed out after %gs waiting for %s",
            self.settings.timeout_seconds,
            description,
        )
        error = WaitTimeoutError(
            f"timed out after {self.settings.timeout_seconds:g}s waiting for {description}",
            description=description,
        )
        return self._finish(WaitState.EXPIRED, description, error=error)

    def _cancelled(self, description: str) -> WaitOutcome:
        cause = self.cancel_token.cause or "cancelled"
        logger.warning("Wait for %s cancelled: %s", description, cause)
        error = WaitCancelledError(
            f"wait for {description} cancelled: {cause}",
            description=description,
            cause=cause,
        )
        return self._finish(WaitState.CANCELLED, description, error=error)

    def _finish(
        self,
        state: WaitState,
        description: str,
        *,
        error: WaitError | None = None,
    ) -> WaitOutcome:
        self.state = state
        return WaitOutcome(
            state=state,
            description=description,
            polls=self._polls,
            failures=self._total_failures,
            last_snapshot=self._last_snapshot,
            error=error,
        )

    def _check_version(self, snapshot: StatusSnapshot) -> None:
        previous = self._last_snapshot
        if previous is not None and snapshot.version < previous.version:
            logger.warning(
                "Work %s version went backwards: v%d after v%d",
                snapshot.name,
                snapshot.version,
                previous.version,
            )


def run_wait(
    acquire: Acquire,
    expression: str,
    *,
    settings: PollSettings | None = None,
    cancel_token: CancelToken | None = None,
    sink: ResultSink | None = None,
) -> WaitOutcome:
    """Wait for ``expression`` on a fresh scheduler instance."""

    scheduler = PollScheduler(settings=settings, cancel_token=cancel_token)
    return scheduler.wait_for_condition(acquire, expression, sink=sink)


def run_deletion_wait(
    acquire: Acquire,
    *,
    settings: PollSettings | None = None,
    cancel_token: CancelToken | None = None,
) -> WaitOutcome:
    scheduler = PollScheduler(settings=settings, cancel_token=cancel_token)
    return scheduler.wait_for_deletion(acquire)


@contextmanager
def cancel_on_signals(token: CancelToken) -> Iterator[None]:
    """Cancel ``token`` on SIGINT/SIGTERM while the block runs."""

    if not hasattr(signal, "SIGINT"):
        yield
        return

    original_sigint = signal.getsignal(signal.SIGINT)
    original_sigterm = signal.getsignal(signal.SIGTERM)

    def _handler(signum: int, _: object | None) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        token.cancel(cause=f"received {name}")

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except ValueError:
        # Signal handlers can only be installed in main thread.
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, original_sigint)
        signal.signal(signal.SIGTERM, original_sigterm)


def _notify(sink: ResultSink | None, snapshot: StatusSnapshot, condition_met: bool) -> None:
    if sink is None:
        return
    try:
        sink(snapshot, condition_met)
    except Exception as error:  # noqa: BLE001
        logger.warning("Result sink failed (results may not be written): %s", error)
