"""
Construction of the long-lived collaborators shared by every request.
"""

import threading
from dataclasses import dataclass, field
from typing import Optional

from google.cloud import firestore

from .catalog import DocumentCatalog, FirestoreDocumentCatalog
from .chat_history import ChatHistory, FirestoreChatHistory
from .config import Settings
from .document_engine import IngestionOrchestrator
from .index.backends import build_index_backend
from .index.gemini_client import GeminiClient
from .index.manager import IndexBackend
from .query_engine import QueryAnsweringService
from .storage.blob_store import BlobStore, build_blob_store


@dataclass
class Services:
    settings: Settings
    blob_store: BlobStore
    catalog: DocumentCatalog
    chat_history: ChatHistory
    index_backend: IndexBackend
    orchestrator: IngestionOrchestrator
    query_service: QueryAnsweringService
    gemini: Optional[GeminiClient] = None
    # set on shutdown; stops in-flight indexing polls
    shutdown: threading.Event = field(default_factory=threading.Event)

    def close(self):
        self.shutdown.set()
        if self.gemini is not None:
            self.gemini.close()


def assemble_services(
    settings: Settings,
    blob_store: BlobStore,
    catalog: DocumentCatalog,
    chat_history: ChatHistory,
    index_backend: IndexBackend,
    gemini: Optional[GeminiClient] = None,
) -> Services:
    return Services(
        settings=settings,
        blob_store=blob_store,
        catalog=catalog,
        chat_history=chat_history,
        index_backend=index_backend,
        orchestrator=IngestionOrchestrator(settings, blob_store, catalog, index_backend),
        query_service=QueryAnsweringService(index_backend, catalog, chat_history),
        gemini=gemini,
    )


def build_services(settings: Settings) -> Services:
    """Build the production graph: Firestore, GCS (or local disk) and Gemini."""
    db = firestore.Client(project=settings.gcp_project_id)
    catalog = FirestoreDocumentCatalog(db, settings)
    gemini = GeminiClient.from_settings(settings)
    return assemble_services(
        settings,
        blob_store=build_blob_store(settings),
        catalog=catalog,
        chat_history=FirestoreChatHistory(db, settings),
        index_backend=build_index_backend(settings, gemini, catalog),
        gemini=gemini,
    )
