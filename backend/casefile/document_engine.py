"""
Document Ingestion Engine
Validates uploads, deduplicates them per matter, stores the bytes, records the
catalog row and hands the file to the matter's index store.
"""

import logging
import re
import threading
import uuid
from typing import Optional

from .catalog import DocumentCatalog
from .config import Settings
from .errors import (
    BlobNotFound,
    CasefileError,
    CatalogError,
    CatalogFailure,
    DocumentNotFound,
    DuplicateDocument,
    FingerprintConflict,
    IndexingCancelled,
    InvalidInput,
    StorageError,
    StorageFailure,
)
from .fingerprint import fingerprint
from .index.manager import IndexBackend
from .models.documents import Document, DocType
from .models.indexing import IndexingResult, JobState
from .storage.blob_store import BlobStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
_WHITESPACE = re.compile(r"\s+")

# Checked in order; the first keyword found in the lowercased name wins.
DOC_TYPE_KEYWORDS = (
    (DocType.CONTRACT, ("契約", "contract")),
    (DocType.EVIDENCE, ("証拠", "evidence")),
    (DocType.CLAIM, ("訴状", "claim")),
    (DocType.CORRESPONDENCE, ("メール", "mail", "correspondence", "letter")),
)


def upload_too_large(max_bytes: int) -> InvalidInput:
    return InvalidInput(
        f"File too large. Maximum size: {max_bytes // (1024 * 1024)}MB",
        code="too_large",
    )


def sanitize_file_name(name: str) -> str:
    """Turn an uploaded file name into a safe storage key segment."""
    cleaned = _WHITESPACE.sub("_", name.strip())
    cleaned = _UNSAFE_CHARS.sub("_", cleaned)
    return cleaned or "file"


def build_storage_path(matter_id: str, document_id: str, file_name: str) -> str:
    return f"matters/{matter_id}/{document_id}/{sanitize_file_name(file_name)}"


def classify_document(file_name: str, mime_type: str) -> DocType:
    """Guess the document type from its MIME type and file name keywords."""
    if mime_type.startswith("image/"):
        return DocType.IMAGE

    lowered = file_name.lower()
    for doc_type, keywords in DOC_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return doc_type
    return DocType.OTHER


class IngestionOrchestrator:
    """End-to-end upload pipeline for matter documents."""

    def __init__(
        self,
        settings: Settings,
        blob_store: BlobStore,
        catalog: DocumentCatalog,
        index_backend: IndexBackend,
    ):
        self.settings = settings
        self.blob_store = blob_store
        self.catalog = catalog
        self.index_backend = index_backend

    def validate(self, file_name: str, mime_type: str, content: bytes):
        if not file_name or not file_name.strip():
            raise InvalidInput("A file name is required")

        if mime_type not in self.settings.allowed_mime_types:
            raise InvalidInput(
                f"Unsupported file type: {mime_type}",
                code="invalid_mime",
                context={"allowed_types": list(self.settings.allowed_mime_types)},
            )

        if len(content) > self.settings.max_upload_bytes:
            raise upload_too_large(self.settings.max_upload_bytes)

    def ingest(
        self,
        matter_id: str,
        file_name: str,
        mime_type: str,
        content: bytes,
        uploader_id: Optional[str] = None,
        sha256: Optional[str] = None,
        defer_indexing: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> Document:
        """
        Main entry point: store and catalog one uploaded file.

        Args:
            matter_id: Owning matter
            file_name: Original file name as uploaded
            mime_type: Declared MIME type
            content: Raw file bytes
            uploader_id: Identity of the uploading user, if known
            sha256: Fingerprint already computed while reading the upload
            defer_indexing: Skip the indexing step; the caller schedules
                index_document itself
            cancel_event: Stops inline indexing polling when set

        Returns:
            The cataloged Document. Its indexing reference is null unless
            inline indexing completed.

        Raises:
            InvalidInput, DuplicateDocument, StorageFailure, CatalogFailure
        """
        # 1. Validate
        self.validate(file_name, mime_type, content)

        # 2. Deduplicate within the matter
        sha256 = sha256 or fingerprint(content)
        try:
            existing = self.catalog.find_by_fingerprint(matter_id, sha256)
        except CatalogError as e:
            raise CatalogFailure(f"Duplicate check failed: {e}") from e
        if existing is not None:
            logger.info(f"Rejected duplicate of {existing.file_name} in matter {matter_id}")
            raise DuplicateDocument(existing.file_name, existing.id)

        # 3. Persist bytes
        document_id = str(uuid.uuid4())
        bucket = self.settings.gcs_bucket
        storage_path = build_storage_path(matter_id, document_id, file_name)
        try:
            self.blob_store.put(bucket, storage_path, content, mime_type)
        except StorageError as e:
            logger.error(f"Storage upload failed for {file_name} in matter {matter_id}: {e}")
            raise StorageFailure("Failed to store the uploaded file") from e

        # 4. Classify
        doc_type = classify_document(file_name, mime_type)

        document = Document(
            id=document_id,
            matter_id=matter_id,
            file_name=file_name,
            mime_type=mime_type,
            file_size=len(content),
            sha256=sha256,
            doc_type=doc_type,
            storage_bucket=bucket,
            storage_path=storage_path,
            uploaded_by=uploader_id,
        )

        # 5. Catalog write, rolling back the blob on failure
        try:
            self.catalog.insert_document(document)
        except FingerprintConflict as e:
            self._rollback_blob(bucket, storage_path)
            existing_name = e.existing.file_name if e.existing else file_name
            existing_id = e.existing.id if e.existing else None
            logger.info(f"Lost concurrent upload race for {existing_name} in matter {matter_id}")
            raise DuplicateDocument(existing_name, existing_id) from e
        except CatalogError as e:
            logger.error(f"Document insert failed for {document_id}: {e}")
            self._rollback_blob(bucket, storage_path)
            raise CatalogFailure("Failed to save the document record") from e

        logger.info(f"Ingested {file_name} as {document_id} ({doc_type.value}) in matter {matter_id}")

        # 6. Best-effort indexing
        if defer_indexing:
            return document
        return self.index_document(document, content=content, cancel_event=cancel_event).document

    def _rollback_blob(self, bucket: str, path: str):
        try:
            self.blob_store.delete(bucket, path)
            logger.info(f"Rolled back blob {bucket}/{path}")
        except StorageError as e:
            logger.error(f"Orphaned blob {bucket}/{path}: rollback delete failed: {e}")

    def index_document(
        self,
        document: Document,
        content: Optional[bytes] = None,
        force: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> IndexingResult:
        """
        Add a cataloged document to its matter's index store.

        Never raises: every failure leaves the indexing reference null and is
        reported as a deferred result, to be retried through the indexing
        trigger.
        """
        if document.searchable and not force:
            return IndexingResult(document=document, state=JobState.SUCCEEDED, detail="already_indexed")

        try:
            if content is None:
                content = self.blob_store.get(document.storage_bucket, document.storage_path)

            store = self.index_backend.ensure_store(document.matter_id)
            handle = self.index_backend.submit_document(store, content, document.file_name, document.mime_type)
            outcome = self.index_backend.await_completion(
                handle,
                max_wait=self.settings.index_max_wait_seconds,
                poll_interval=self.settings.index_poll_interval_seconds,
                cancel_event=cancel_event,
            )

            if outcome.state is not JobState.SUCCEEDED:
                logger.warning(
                    f"Indexing of {document.id} deferred: {outcome.state.value}"
                    + (f" ({outcome.error})" if outcome.error else "")
                )
                return IndexingResult(document=document, state=outcome.state, deferred=True, detail=outcome.error)

            indexed = self.catalog.set_indexing_reference(document.id, handle.file_name, handle.file_uri)
            logger.info(f"Indexed {document.id} as {handle.file_name} in {handle.store_name}")
            return IndexingResult(document=indexed, state=JobState.SUCCEEDED)

        except IndexingCancelled as e:
            logger.warning(f"Indexing of {document.id} deferred: {e}")
            return IndexingResult(document=document, deferred=True, detail="cancelled")
        except BlobNotFound as e:
            logger.error(f"Indexing of {document.id} deferred: stored file is missing: {e}")
            return IndexingResult(document=document, deferred=True, detail=str(e))
        except CasefileError as e:
            logger.warning(f"Indexing of {document.id} deferred: {e}")
            return IndexingResult(document=document, deferred=True, detail=str(e))
        except Exception as e:
            logger.exception(f"Unexpected error while indexing {document.id}; deferred")
            return IndexingResult(document=document, deferred=True, detail=str(e))

    def reindex(
        self,
        matter_id: str,
        document_id: str,
        force: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> IndexingResult:
        """Re-run the indexing step for a document whose indexing was deferred."""
        try:
            document = self.catalog.get_document(matter_id, document_id)
        except CatalogError as e:
            raise CatalogFailure(f"Document lookup failed: {e}") from e
        if document is None:
            raise DocumentNotFound(f"Document {document_id} not found in matter {matter_id}")
        return self.index_document(document, force=force, cancel_event=cancel_event)
