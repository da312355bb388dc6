"""
State machine for one indexing job.

    submitted -> pending                 first status check
    pending   -> pending                 done=false
    pending   -> succeeded               done=true, no error
    pending   -> failed                  done=true, error payload
    pending   -> timed_out               attempt budget or deadline exhausted

succeeded, failed and timed_out are terminal.
"""

from typing import Any, Dict, Optional

from ..errors import InvalidTransition
from ..models.indexing import JobHandle, JobOutcome, JobState, OperationStatus

TERMINAL_STATES = frozenset({JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT})

_TRANSITIONS = {
    JobState.SUBMITTED: frozenset({JobState.PENDING}),
    JobState.PENDING: frozenset({JobState.PENDING, JobState.SUCCEEDED, JobState.FAILED, JobState.TIMED_OUT}),
    JobState.SUCCEEDED: frozenset(),
    JobState.FAILED: frozenset(),
    JobState.TIMED_OUT: frozenset(),
}


def describe_error(error: Dict[str, Any]) -> str:
    message = error.get("message") or "operation failed"
    code = error.get("code")
    return f"{code}: {message}" if code is not None else str(message)


class IndexingJob:

    def __init__(self, handle: JobHandle):
        self.handle = handle
        self.state = JobState.SUBMITTED
        self.attempts = 0
        self.error: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def transition(self, new_state: JobState, error: Optional[str] = None):
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidTransition(f"Indexing job cannot move from {self.state.value} to {new_state.value}")
        self.state = new_state
        if error is not None:
            self.error = error

    def observe(self, status: OperationStatus):
        """Apply one status check of the external operation."""
        self.attempts += 1
        if self.state is JobState.SUBMITTED:
            self.transition(JobState.PENDING)
        if not status.done:
            self.transition(JobState.PENDING)
        elif status.error:
            self.transition(JobState.FAILED, error=describe_error(status.error))
        else:
            self.transition(JobState.SUCCEEDED)
            self.error = None

    def record_failed_check(self, reason: str):
        """A status check that could not reach the service still spends an attempt."""
        self.attempts += 1
        if self.state is JobState.SUBMITTED:
            self.transition(JobState.PENDING)
        self.error = reason

    def expire(self):
        self.transition(JobState.TIMED_OUT)

    def outcome(self) -> JobOutcome:
        return JobOutcome(state=self.state, attempts=self.attempts, error=self.error)
