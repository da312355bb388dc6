"""In-memory stand-ins for the Firestore catalog, chat history, blob faults and Gemini."""

from __future__ import annotations

import time
from datetime import timedelta
from typing import Dict, List, Optional, Tuple

from casefile.catalog import DocumentCatalog, fingerprint_claim_id
from casefile.chat_history import ChatHistory, build_turn_pair
from casefile.errors import (
    CatalogError,
    ChatHistoryError,
    FingerprintConflict,
    IndexBackendError,
    QueryError,
    StorageError,
)
from casefile.index.manager import IndexBackend
from casefile.models import ChatTurn, Document, IndexStore, JobHandle, OperationStatus
from casefile.storage.blob_store import BlobStore


class InMemoryCatalog(DocumentCatalog):
    def __init__(self, matters: Tuple[str, ...] = ()) -> None:
        self.matters = set(matters)
        self.documents: Dict[str, Document] = {}
        self.claims: Dict[str, str] = {}
        self.stores: Dict[str, IndexStore] = {}
        self.fail_insert = False
        self.hide_fingerprints = False

    def matter_exists(self, matter_id: str) -> bool:
        return matter_id in self.matters

    def find_by_fingerprint(self, matter_id: str, sha256: str) -> Optional[Document]:
        if self.hide_fingerprints:
            return None
        document_id = self.claims.get(fingerprint_claim_id(matter_id, sha256))
        return self.documents.get(document_id) if document_id else None

    def insert_document(self, document: Document) -> Document:
        if self.fail_insert:
            raise CatalogError("simulated insert failure")
        claim = fingerprint_claim_id(document.matter_id, document.sha256)
        if claim in self.claims:
            raise FingerprintConflict(document.matter_id, document.sha256, self.documents[self.claims[claim]])
        self.claims[claim] = document.id
        self.documents[document.id] = document
        return document

    def get_document(self, matter_id: str, document_id: str) -> Optional[Document]:
        document = self.documents.get(document_id)
        if document is None or document.matter_id != matter_id:
            return None
        return document

    def list_documents(self, matter_id: str) -> List[Document]:
        rows = [doc for doc in self.documents.values() if doc.matter_id == matter_id]
        return sorted(rows, key=lambda doc: doc.uploaded_at, reverse=True)

    def set_indexing_reference(self, document_id: str, file_name: str, file_uri: Optional[str]) -> Document:
        updated = self.documents[document_id].model_copy(
            update={"index_file_name": file_name, "index_file_uri": file_uri}
        )
        self.documents[document_id] = updated
        return updated

    def get_index_store(self, matter_id: str) -> Optional[IndexStore]:
        return self.stores.get(matter_id)

    def insert_index_store(self, store: IndexStore) -> IndexStore:
        return self.stores.setdefault(store.matter_id, store)


class InMemoryChatHistory(ChatHistory):
    def __init__(self) -> None:
        self.turns: List[ChatTurn] = []
        self.fail = False

    def append_turn_pair(self, matter_id, question, answer, user_id=None):
        if self.fail:
            raise ChatHistoryError("simulated chat history outage")
        pair = build_turn_pair(matter_id, question, answer, user_id)
        self.turns.extend(pair)
        return pair

    def list_turns(self, matter_id: str, limit: int = 100) -> List[ChatTurn]:
        rows = [turn for turn in self.turns if turn.matter_id == matter_id]
        return sorted(rows, key=lambda turn: turn.created_at)[:limit]


class FaultyBlobStore(BlobStore):
    """Wraps a real blob store and fails selected operations."""

    def __init__(self, inner: BlobStore, fail_put: bool = False, fail_delete: bool = False) -> None:
        self.inner = inner
        self.fail_put = fail_put
        self.fail_delete = fail_delete
        self.deleted: List[str] = []

    def put(self, bucket, path, data, content_type):
        if self.fail_put:
            raise StorageError("simulated upload failure")
        self.inner.put(bucket, path, data, content_type)

    def get(self, bucket, path):
        return self.inner.get(bucket, path)

    def delete(self, bucket, path):
        if self.fail_delete:
            raise StorageError("simulated delete failure")
        self.deleted.append(path)
        self.inner.delete(bucket, path)

    def get_signed_url(self, bucket, path, ttl: timedelta):
        return self.inner.get_signed_url(bucket, path, ttl)


class ScriptedIndexBackend(IndexBackend):
    """Index backend whose operation statuses are played back from a list.

    The last status repeats once the list is exhausted.
    """

    kind = "scripted"

    def __init__(self, catalog: DocumentCatalog) -> None:
        super().__init__(catalog)
        self.statuses: list = [OperationStatus(done=True)]
        self.fail_create = False
        self.fail_submit = False
        self.answer = "The contract sets a monthly fee of 100,000 yen."
        self.query_error: Optional[str] = None
        self.created: List[str] = []
        self.submitted: List[Tuple[str, str, bytes]] = []
        self.questions: List[Tuple[str, str]] = []
        self.checks = 0
        self.check_delay = 0.0
        self.check_timeouts: List[Optional[float]] = []

    def create_external_store(self, display_name: str) -> str:
        if self.fail_create:
            raise IndexBackendError("simulated store creation failure", status_code=503)
        name = f"fileSearchStores/{display_name.lower()}"
        self.created.append(name)
        return name

    def submit_document(self, store, content, display_name, mime_type) -> JobHandle:
        if self.fail_submit:
            raise IndexBackendError("simulated submission failure", status_code=500)
        self.submitted.append((store.store_name, display_name, content))
        number = len(self.submitted)
        return JobHandle(
            operation_name=f"{store.store_name}/operations/op-{number}",
            store_name=store.store_name,
            file_name=f"files/file-{number}",
            file_uri=f"https://generativelanguage.test/v1beta/files/file-{number}",
        )

    def check_operation(self, handle: JobHandle, timeout: Optional[float] = None) -> OperationStatus:
        self.checks += 1
        self.check_timeouts.append(timeout)
        if self.check_delay:
            # a slow status call gives up when its timeout runs out
            time.sleep(self.check_delay if timeout is None else min(self.check_delay, timeout))
            if timeout is not None and self.check_delay > timeout:
                raise IndexBackendError("status check timed out")
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        if isinstance(status, Exception):
            raise status
        return status

    def query(self, store: IndexStore, question: str) -> str:
        self.questions.append((store.store_name, question))
        if self.query_error:
            raise QueryError(self.query_error)
        return self.answer
