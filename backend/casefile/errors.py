"""
Exception hierarchy for the ingestion, indexing and query pipeline.

Ingestion failures carry an HTTP status and a machine code so the API layer
can render them with a single exception handler. Adapter errors (storage,
catalog, chat history, index backend) stay free of HTTP semantics and are
translated by the services that call them.
"""

from typing import Any, Dict, Optional


class CasefileError(Exception):
    """Base class for every error raised by this package."""


# ---------------------------------------------------------------------------
# Ingestion errors (surfaced to API callers)
# ---------------------------------------------------------------------------


class IngestError(CasefileError):
    status_code: int = 400
    code: str = "ingest_error"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.context = dict(context or {})

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "message": self.message, **self.context}


class InvalidInput(IngestError):
    status_code = 400
    code = "invalid_input"


class DuplicateDocument(IngestError):
    status_code = 409
    code = "duplicate"

    def __init__(self, existing_file: str, existing_document_id: Optional[str] = None) -> None:
        super().__init__(
            "This file has already been uploaded to the matter",
            context={"existing_file": existing_file},
        )
        self.existing_file = existing_file
        self.existing_document_id = existing_document_id


class StorageFailure(IngestError):
    status_code = 500
    code = "storage_failed"


class CatalogFailure(IngestError):
    status_code = 500
    code = "catalog_failed"


class MatterNotFound(IngestError):
    status_code = 404
    code = "matter_not_found"


class DocumentNotFound(IngestError):
    status_code = 404
    code = "document_not_found"


# ---------------------------------------------------------------------------
# Adapter errors
# ---------------------------------------------------------------------------


class StorageError(CasefileError):
    """Raised when the blob store cannot complete an operation."""


class BlobNotFound(StorageError):
    """Raised when no object exists at the requested path."""


class CatalogError(CasefileError):
    """Raised when the document catalog cannot be read or written."""


class FingerprintConflict(CatalogError):
    """Raised by the catalog when (matter_id, sha256) is already claimed."""

    def __init__(self, matter_id: str, sha256: str, existing=None) -> None:
        super().__init__(f"Fingerprint {sha256[:12]} already exists in matter {matter_id}")
        self.matter_id = matter_id
        self.sha256 = sha256
        self.existing = existing


class ChatHistoryError(CasefileError):
    """Raised when chat turns cannot be persisted or read."""


# ---------------------------------------------------------------------------
# Indexing and query errors
# ---------------------------------------------------------------------------


class IndexBackendError(CasefileError):
    """Raised when the external index service rejects or fails a call."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidTransition(CasefileError):
    """Raised when an indexing job is moved out of a terminal state."""


class IndexingCancelled(CasefileError):
    """Raised when polling is stopped by the caller's cancellation signal."""


class QueryError(CasefileError):
    """Raised when the external service fails to answer a question."""

    def __init__(self, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
