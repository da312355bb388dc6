from .documents import (
    ChatHistoryResponse,
    ChatRequest,
    ChatTurn,
    Document,
    DocumentListResponse,
    DocType,
    IndexStore,
)
from .indexing import (
    AnswerStatus,
    ChatAnswer,
    IndexingResult,
    JobHandle,
    JobOutcome,
    JobState,
    OperationStatus,
)

__all__ = [
    "AnswerStatus",
    "ChatAnswer",
    "ChatHistoryResponse",
    "ChatRequest",
    "ChatTurn",
    "Document",
    "DocumentListResponse",
    "DocType",
    "IndexStore",
    "IndexingResult",
    "JobHandle",
    "JobOutcome",
    "JobState",
    "OperationStatus",
]
