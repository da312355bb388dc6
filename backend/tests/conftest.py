from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from casefile.config import Settings
from casefile.document_engine import IngestionOrchestrator
from casefile.main import create_app
from casefile.query_engine import QueryAnsweringService
from casefile.services import Services, assemble_services
from casefile.storage.blob_store import LocalBlobStore

from fakes import InMemoryCatalog, InMemoryChatHistory, ScriptedIndexBackend

MATTERS = ("matter-1", "matter-2")


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        gemini_api_key="test-key",
        storage_backend="local",
        local_storage_path=tmp_path / "blobs",
        gcs_bucket="matter-files",
        index_poll_interval_seconds=0.001,
        index_max_wait_seconds=0.05,
        defer_indexing=False,
    )


@pytest.fixture
def catalog() -> InMemoryCatalog:
    return InMemoryCatalog(matters=MATTERS)


@pytest.fixture
def blob_store(settings: Settings) -> LocalBlobStore:
    return LocalBlobStore(settings.local_storage_path)


@pytest.fixture
def backend(catalog: InMemoryCatalog) -> ScriptedIndexBackend:
    return ScriptedIndexBackend(catalog)


@pytest.fixture
def chat_history() -> InMemoryChatHistory:
    return InMemoryChatHistory()


@pytest.fixture
def orchestrator(settings, blob_store, catalog, backend) -> IngestionOrchestrator:
    return IngestionOrchestrator(settings, blob_store, catalog, backend)


@pytest.fixture
def query_service(backend, catalog, chat_history) -> QueryAnsweringService:
    return QueryAnsweringService(backend, catalog, chat_history)


@pytest.fixture
def services(settings, blob_store, catalog, chat_history, backend) -> Services:
    return assemble_services(settings, blob_store, catalog, chat_history, backend)


@pytest.fixture
def client(services: Services):
    with TestClient(create_app(services)) as test_client:
        yield test_client
