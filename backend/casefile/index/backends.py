"""
Gemini-backed implementations of the indexing capability.

file_search   Managed File Search store per matter. Files are uploaded
              through the Files API and imported into the store; queries
              use the fileSearch tool scoped to the store.
files_inline  Files API only. The "store" is a logical grouping; queries
              pass the matter's indexed file URIs inline to the model.
"""

import logging
from typing import Any, Dict, Optional

from ..catalog import DocumentCatalog
from ..config import Settings
from ..errors import IndexBackendError, QueryError
from ..models.documents import IndexStore
from ..models.indexing import JobHandle, OperationStatus
from .gemini_client import GeminiClient
from .manager import IndexBackend

logger = logging.getLogger(__name__)


def operation_error(error: Any) -> Optional[Dict[str, Any]]:
    """Normalize an operation error payload; anything but an object becomes its message."""
    if not error:
        return None
    if isinstance(error, dict):
        return error
    return {"message": str(error)}


class GeminiBackend(IndexBackend):

    def __init__(
        self,
        client: GeminiClient,
        catalog: DocumentCatalog,
        answer_instructions: Optional[str] = None,
        poll_backoff: float = 1.0,
        max_poll_interval: Optional[float] = None,
    ):
        super().__init__(catalog, poll_backoff=poll_backoff, max_poll_interval=max_poll_interval)
        self.client = client
        self.answer_instructions = answer_instructions

    def _answer(self, parts, tools=None) -> str:
        try:
            answer = self.client.generate_content(parts, tools=tools, system_instruction=self.answer_instructions)
        except IndexBackendError as e:
            raise QueryError(str(e), cause=e) from e
        if not answer:
            raise QueryError("The model returned no answer text")
        return answer


class FileSearchStoreBackend(GeminiBackend):
    kind = "file_search"

    def create_external_store(self, display_name: str) -> str:
        store = self.client.create_file_search_store(display_name)
        if not store.get("name"):
            raise IndexBackendError("File Search Store response had no name")
        return store["name"]

    def submit_document(self, store: IndexStore, content: bytes, display_name: str, mime_type: str) -> JobHandle:
        uploaded = self.client.upload_file(content, display_name, mime_type)
        logger.info(f"Importing {uploaded['name']} into File Search Store {store.store_name}")
        operation = self.client.import_file(store.store_name, uploaded["name"])
        if not operation.get("name"):
            raise IndexBackendError("importFile response had no operation name")
        return JobHandle(
            operation_name=operation["name"],
            store_name=store.store_name,
            file_name=uploaded["name"],
            file_uri=uploaded.get("uri"),
        )

    def check_operation(self, handle: JobHandle, timeout: Optional[float] = None) -> OperationStatus:
        operation = self.client.get_operation(handle.operation_name, timeout=timeout)
        return OperationStatus(done=bool(operation.get("done")), error=operation_error(operation.get("error")))

    def query(self, store: IndexStore, question: str) -> str:
        tools = [{"fileSearch": {"fileSearchStoreNames": [store.store_name]}}]
        return self._answer([{"text": question}], tools=tools)


class InlineFilesBackend(GeminiBackend):
    kind = "files_inline"

    def create_external_store(self, display_name: str) -> str:
        return f"inlineStores/{display_name}"

    def submit_document(self, store: IndexStore, content: bytes, display_name: str, mime_type: str) -> JobHandle:
        uploaded = self.client.upload_file(content, display_name, mime_type)
        # the file's own processing state stands in for the operation
        return JobHandle(
            operation_name=uploaded["name"],
            store_name=store.store_name,
            file_name=uploaded["name"],
            file_uri=uploaded.get("uri"),
        )

    def check_operation(self, handle: JobHandle, timeout: Optional[float] = None) -> OperationStatus:
        resource = self.client.get_file(handle.operation_name, timeout=timeout)
        state = resource.get("state")
        if state == "ACTIVE":
            return OperationStatus(done=True)
        if state == "FAILED":
            error = operation_error(resource.get("error")) or {"message": "file processing failed"}
            return OperationStatus(done=True, error=error)
        return OperationStatus(done=False)

    def query(self, store: IndexStore, question: str) -> str:
        documents = [
            document for document in self.catalog.list_documents(store.matter_id)
            if document.searchable and document.index_file_uri
        ]
        if not documents:
            raise QueryError(f"Matter {store.matter_id} has no indexed files")

        parts = [{"text": question}]
        parts.extend(
            {"fileData": {"fileUri": document.index_file_uri, "mimeType": document.mime_type}}
            for document in documents
        )
        return self._answer(parts)


BACKENDS = {
    FileSearchStoreBackend.kind: FileSearchStoreBackend,
    InlineFilesBackend.kind: InlineFilesBackend,
}


def build_index_backend(settings: Settings, client: GeminiClient, catalog: DocumentCatalog) -> IndexBackend:
    """Select the backend named by ``settings.index_backend``."""
    try:
        backend_cls = BACKENDS[settings.index_backend]
    except KeyError:
        raise ValueError(f"Unknown index backend: {settings.index_backend}") from None
    return backend_cls(
        client,
        catalog,
        answer_instructions=settings.answer_instructions,
        poll_backoff=settings.index_poll_backoff,
        max_poll_interval=settings.index_poll_max_interval_seconds,
    )
