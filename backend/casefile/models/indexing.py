"""
Models for indexing jobs and question answering.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel

from .documents import Document


class JobState(str, Enum):
    SUBMITTED = "submitted"
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class JobHandle(BaseModel):
    """An in-flight request to add one file to an index store."""
    operation_name: str
    store_name: str
    file_name: str
    file_uri: Optional[str] = None


class OperationStatus(BaseModel):
    """One observation of the external long-running operation."""
    done: bool
    error: Optional[Dict[str, Any]] = None


class JobOutcome(BaseModel):
    state: JobState
    attempts: int
    error: Optional[str] = None


class IndexingResult(BaseModel):
    """Result of the best-effort indexing step for one document."""
    document: Document
    state: Optional[JobState] = None
    deferred: bool = False
    detail: Optional[str] = None


class AnswerStatus(str, Enum):
    ANSWERED = "answered"
    NOT_READY = "not_ready"


class ChatAnswer(BaseModel):
    status: AnswerStatus
    answer: Optional[str] = None
    user_turn_id: Optional[str] = None
    assistant_turn_id: Optional[str] = None
    message: Optional[str] = None
