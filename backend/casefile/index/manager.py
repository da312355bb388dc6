"""
Index Store Manager
Owns the one external search index per matter and drives indexing jobs to
completion. Concrete backends supply the calls to the external service; the
store bookkeeping and the polling loop live here and are shared.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional

from ..catalog import DocumentCatalog
from ..errors import IndexBackendError, IndexingCancelled
from ..models.documents import IndexStore
from ..models.indexing import JobHandle, JobOutcome, OperationStatus
from .operations import IndexingJob

logger = logging.getLogger(__name__)

# floor for the per-check timeout once the deadline has passed
MIN_CHECK_TIMEOUT = 0.001


def store_display_name(matter_id: str) -> str:
    return f"Matter-{matter_id}"


def attempt_budget(max_wait: float, poll_interval: float) -> int:
    return max(1, int(max_wait // poll_interval))


class IndexBackend(ABC):
    """The indexing capability the orchestrator and query service depend on."""

    kind = "abstract"

    def __init__(self, catalog: DocumentCatalog, poll_backoff: float = 1.0, max_poll_interval: Optional[float] = None):
        self.catalog = catalog
        self.poll_backoff = max(1.0, poll_backoff)
        self.max_poll_interval = max_poll_interval

    # ------------------------------------------------------------------
    # Hooks implemented by each backend
    # ------------------------------------------------------------------

    @abstractmethod
    def create_external_store(self, display_name: str) -> str:
        """Create the external store and return its identifier."""

    @abstractmethod
    def submit_document(self, store: IndexStore, content: bytes, display_name: str, mime_type: str) -> JobHandle:
        """Start the external indexing job for one file."""

    @abstractmethod
    def check_operation(self, handle: JobHandle, timeout: Optional[float] = None) -> OperationStatus:
        """Read the current status of the job's external operation within ``timeout`` seconds."""

    @abstractmethod
    def query(self, store: IndexStore, question: str) -> str:
        """Answer a question grounded in the store's content. Raises QueryError."""

    # ------------------------------------------------------------------
    # Store lifecycle
    # ------------------------------------------------------------------

    def get_store(self, matter_id: str) -> Optional[IndexStore]:
        return self.catalog.get_index_store(matter_id)

    def ensure_store(self, matter_id: str) -> IndexStore:
        existing = self.catalog.get_index_store(matter_id)
        if existing is not None:
            return existing

        display_name = store_display_name(matter_id)
        store_name = self.create_external_store(display_name)
        logger.info(f"Created {self.kind} store {store_name} for matter {matter_id}")

        return self.catalog.insert_index_store(
            IndexStore(
                matter_id=matter_id,
                store_name=store_name,
                display_name=display_name,
                backend=self.kind,
            )
        )

    # ------------------------------------------------------------------
    # Job completion
    # ------------------------------------------------------------------

    def await_completion(
        self,
        handle: JobHandle,
        max_wait: float,
        poll_interval: float,
        cancel_event: Optional[threading.Event] = None,
    ) -> JobOutcome:
        """
        Poll the job's operation until it finishes or the budget runs out.

        Returns a timed_out outcome rather than raising when the operation is
        still running at the deadline. Each status check is bounded by the
        time left, so one run never outlasts ``max_wait`` by more than a
        check's connection overhead. Setting ``cancel_event`` stops polling
        with IndexingCancelled between checks; the external job itself keeps
        running.
        """
        if poll_interval <= 0:
            raise ValueError("poll_interval must be positive")

        cancel_event = cancel_event or threading.Event()
        job = IndexingJob(handle)
        max_attempts = attempt_budget(max_wait, poll_interval)
        deadline = time.monotonic() + max_wait
        interval = poll_interval

        while True:
            # each check gets only what is left of the budget
            check_timeout = max(deadline - time.monotonic(), MIN_CHECK_TIMEOUT)
            try:
                status = self.check_operation(handle, timeout=check_timeout)
            except IndexBackendError as e:
                logger.warning(f"Status check for {handle.operation_name} failed: {e}")
                job.record_failed_check(str(e))
            else:
                job.observe(status)
                if job.terminal:
                    break

            remaining = deadline - time.monotonic()
            if job.attempts >= max_attempts or remaining <= 0:
                job.expire()
                break

            if cancel_event.wait(min(interval, remaining)):
                logger.info(f"Stopped polling {handle.operation_name} after {job.attempts} checks")
                raise IndexingCancelled(f"Polling of {handle.operation_name} was cancelled")

            interval = interval * self.poll_backoff
            if self.max_poll_interval:
                interval = min(interval, self.max_poll_interval)

        outcome = job.outcome()
        logger.info(
            f"Operation {handle.operation_name} finished as {outcome.state.value} after {outcome.attempts} checks"
        )
        return outcome
