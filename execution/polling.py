"""Wait-for-completion loop with backoff and error budgets."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from utils.exceptions import (
    ClientDestroyedError,
    ExecutionError,
    JobClientError,
    RequestCancelledError,
    RequestTimeoutError,
)

from .lifecycle import ClientLifecycle
from .retry import Sleep, exponential_backoff


logger = logging.getLogger(__name__)


class PollState(str, Enum):
    PENDING = "pending"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_STATES = frozenset({PollState.COMPLETED, PollState.FAILED, PollState.TIMED_OUT})


@dataclass
class JobStatus:
    """One status observation of a submitted job."""

    completed: bool = False
    outputs: Optional[Dict[str, Any]] = None
    status_str: Optional[str] = None
    messages: List[Any] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.status_str == "error"

    def error_summary(self) -> str:
        """Best-effort server error text from execution messages."""
        for message in self.messages:
            if not isinstance(message, (list, tuple)) or len(message) != 2:
                continue
            event, payload = message
            if event == "execution_error" and isinstance(payload, dict):
                node = payload.get("node_type") or payload.get("node_id") or "unknown node"
                text = payload.get("exception_message") or payload.get("exception_type") or "error"
                return f"{node}: {str(text).strip()}"
        return "server reported status 'error'"


@dataclass
class PollOutcome:
    state: PollState
    outputs: Optional[Dict[str, Any]] = None
    error: Optional[JobClientError] = None
    polls: int = 0


StatusFetcher = Callable[[str], Awaitable[JobStatus]]


class PollingExecutor:
    """
    Drives one job from PENDING to exactly one terminal state.

    Healthy incomplete polls sleep the base interval and reset the
    consecutive-error counter. Failed polls count against both a consecutive
    and a total budget and back off exponentially up to the cap. The whole
    loop ends with TIMED_OUT once ``max_wait_s`` of wall-clock time passes.
    """

    def __init__(
        self,
        lifecycle: ClientLifecycle,
        fetch_status: StatusFetcher,
        *,
        poll_interval_s: float = 1.0,
        max_delay_s: float = 10.0,
        max_consecutive_errors: int = 3,
        max_total_errors: int = 10,
        sleep: Optional[Sleep] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.lifecycle = lifecycle
        self._fetch_status = fetch_status
        self.poll_interval_s = float(poll_interval_s)
        self.max_delay_s = float(max_delay_s)
        self.max_consecutive_errors = int(max_consecutive_errors)
        self.max_total_errors = int(max_total_errors)
        self._sleep = sleep or lifecycle.pause
        self._clock = clock
        self.state = PollState.PENDING

    def _finish(self, state: PollState, polls: int, **kwargs: Any) -> PollOutcome:
        self.state = state
        return PollOutcome(state=state, polls=polls, **kwargs)

    def _interrupted(self, polls: int) -> Optional[PollOutcome]:
        if self.lifecycle.is_destroyed:
            return self._finish(PollState.FAILED, polls, error=ClientDestroyedError())
        if self.lifecycle.is_cancelled:
            return self._finish(PollState.FAILED, polls, error=RequestCancelledError())
        return None

    async def run(self, job_id: str, max_wait_s: float) -> PollOutcome:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"polling for this job already finished ({self.state.value})")

        started = self._clock()
        consecutive_errors = 0
        total_errors = 0
        polls = 0
        last_status: Optional[str] = None

        while self._clock() - started < max_wait_s:
            interrupted = self._interrupted(polls)
            if interrupted is not None:
                return interrupted

            self.state = PollState.POLLING
            polls += 1
            try:
                status = await self._fetch_status(job_id)
            except RequestCancelledError:
                return self._interrupted(polls) or self._finish(
                    PollState.FAILED, polls, error=RequestCancelledError()
                )
            except JobClientError as exc:
                consecutive_errors += 1
                total_errors += 1

                if consecutive_errors >= self.max_consecutive_errors:
                    error = ExecutionError(
                        f"Workflow execution failed after {self.max_consecutive_errors} "
                        f"consecutive errors: {exc.message}",
                        {"job_id": job_id, "last_error": exc.kind},
                    )
                    error.__cause__ = exc
                    return self._finish(PollState.FAILED, polls, error=error)

                if total_errors >= self.max_total_errors:
                    error = ExecutionError(
                        f"Workflow execution failed after {self.max_total_errors} "
                        f"total errors (last: {exc.message})",
                        {"job_id": job_id, "last_error": exc.kind},
                    )
                    error.__cause__ = exc
                    return self._finish(PollState.FAILED, polls, error=error)

                delay = exponential_backoff(self.poll_interval_s, self.max_delay_s, consecutive_errors)
                logger.warning(
                    f"Polling error {consecutive_errors}/{self.max_consecutive_errors} "
                    f"(total: {total_errors}/{self.max_total_errors}), retrying in {delay:.2f}s: {exc.message}"
                )
                await self._sleep(delay)
                continue

            if status.completed:
                logger.info(f"Job {job_id} completed after {polls} polls")
                return self._finish(PollState.COMPLETED, polls, outputs=status.outputs or {})

            if status.failed:
                return self._finish(
                    PollState.FAILED,
                    polls,
                    error=ExecutionError(
                        f"Workflow execution failed on the server: {status.error_summary()}",
                        {"job_id": job_id},
                    ),
                )

            consecutive_errors = 0
            if status.status_str and status.status_str != last_status:
                logger.debug(f"Job {job_id} status: {status.status_str}")
                last_status = status.status_str
            await self._sleep(self.poll_interval_s)

        return self._finish(
            PollState.TIMED_OUT,
            polls,
            error=RequestTimeoutError(
                f"Workflow execution timeout: job {job_id} did not complete within {max_wait_s:g}s",
                {"job_id": job_id},
            ),
        )
