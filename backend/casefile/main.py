"""
Casefile Backend API
FastAPI service for uploading matter documents, indexing them for search and
answering questions about them.
"""

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, FastAPI, File, Header, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from .config import get_settings
from .document_engine import upload_too_large
from .errors import (
    CatalogError,
    ChatHistoryError,
    DocumentNotFound,
    IndexBackendError,
    IngestError,
    MatterNotFound,
    QueryError,
    StorageError,
)
from .models import (
    AnswerStatus,
    ChatHistoryResponse,
    ChatRequest,
    Document,
    DocumentListResponse,
    IndexingResult,
)
from .fingerprint import fingerprint_stream
from .services import Services, build_services

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

UPLOAD_CHUNK_BYTES = 1024 * 1024

router = APIRouter()


def get_services(request: Request) -> Services:
    return request.app.state.services


def require_matter(services: Services, matter_id: str):
    if not services.catalog.matter_exists(matter_id):
        raise MatterNotFound(f"Matter {matter_id} not found")


async def read_upload(file: UploadFile, max_bytes: int) -> List[bytes]:
    """Read an upload in chunks, stopping as soon as it exceeds ``max_bytes``."""
    chunks = []
    total = 0
    while True:
        chunk = await file.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            return chunks
        total += len(chunk)
        if total > max_bytes:
            raise upload_too_large(max_bytes)
        chunks.append(chunk)


@router.get("/health")
async def health_check():
    """Health check endpoint for Cloud Run."""
    return {"status": "healthy", "service": "casefile-backend"}


# ============================================================================
# Document Endpoints
# ============================================================================


@router.post("/matters/{matter_id}/documents/upload", status_code=201, response_model=Document)
async def upload_document(
    matter_id: str,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    x_user_id: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    """
    Upload a file to a matter.

    The file is validated, deduplicated within the matter, stored and
    cataloged before this returns. Indexing for search runs afterwards; a
    document whose index reference is still null is not searchable yet.
    """
    await run_in_threadpool(require_matter, services, matter_id)

    chunks = await read_upload(file, services.settings.max_upload_bytes)
    content = b"".join(chunks)
    defer = services.settings.defer_indexing

    document = await run_in_threadpool(
        services.orchestrator.ingest,
        matter_id,
        file.filename or "",
        file.content_type or "",
        content,
        x_user_id,
        sha256=fingerprint_stream(chunks),
        defer_indexing=defer,
        cancel_event=services.shutdown,
    )

    if defer:
        background_tasks.add_task(
            services.orchestrator.index_document,
            document,
            content=content,
            cancel_event=services.shutdown,
        )

    return document


@router.post("/matters/{matter_id}/documents/{document_id}/index", response_model=IndexingResult)
def index_document(
    matter_id: str,
    document_id: str,
    force: bool = False,
    services: Services = Depends(get_services),
):
    """Re-run indexing for a document whose indexing failed or was deferred."""
    return services.orchestrator.reindex(matter_id, document_id, force=force, cancel_event=services.shutdown)


@router.get("/matters/{matter_id}/documents", response_model=DocumentListResponse)
def list_documents(matter_id: str, services: Services = Depends(get_services)):
    """List a matter's documents, newest first."""
    documents = services.catalog.list_documents(matter_id)
    return DocumentListResponse(documents=documents, count=len(documents))


@router.get("/matters/{matter_id}/documents/{document_id}", response_model=Document)
def get_document(matter_id: str, document_id: str, services: Services = Depends(get_services)):
    """Get document metadata by ID."""
    document = services.catalog.get_document(matter_id, document_id)
    if document is None:
        raise DocumentNotFound(f"Document {document_id} not found in matter {matter_id}")
    return document


@router.get("/matters/{matter_id}/documents/{document_id}/signed-url")
def get_document_signed_url(
    matter_id: str,
    document_id: str,
    expiration_minutes: Optional[int] = None,
    services: Services = Depends(get_services),
):
    """Generate a signed URL for downloading a document."""
    document = services.catalog.get_document(matter_id, document_id)
    if document is None:
        raise DocumentNotFound(f"Document {document_id} not found in matter {matter_id}")

    minutes = expiration_minutes or services.settings.signed_url_ttl_minutes
    url = services.blob_store.get_signed_url(
        document.storage_bucket, document.storage_path, timedelta(minutes=minutes)
    )
    return {"url": url, "expires_in_minutes": minutes}


# ============================================================================
# Index Store Endpoints
# ============================================================================


@router.post("/matters/{matter_id}/store")
def create_store(matter_id: str, services: Services = Depends(get_services)):
    """Create the matter's index store. Safe to call more than once."""
    require_matter(services, matter_id)

    existing = services.index_backend.get_store(matter_id)
    if existing is not None:
        return {"store": existing, "message": "Store already exists"}

    try:
        store = services.index_backend.ensure_store(matter_id)
    except IndexBackendError as e:
        logger.error(f"Store creation failed for matter {matter_id}: {e}")
        return JSONResponse(
            status_code=502,
            content={"error": "store_failed", "message": "Failed to create the index store"},
        )
    return {"store": store}


# ============================================================================
# Chat Endpoints
# ============================================================================


@router.post("/matters/{matter_id}/chat")
def chat(
    matter_id: str,
    request: ChatRequest,
    x_user_id: Optional[str] = Header(None),
    services: Services = Depends(get_services),
):
    """Ask a question about the matter's documents."""
    request_id = str(uuid.uuid4())

    try:
        result = services.query_service.ask(matter_id, request.message, user_id=x_user_id)
    except QueryError as e:
        logger.error(f"[chat] {request_id} query failed: {e.message}")
        return JSONResponse(
            status_code=502,
            content={"ok": False, "error": "query_failed", "message": e.message, "request_id": request_id},
        )

    return {
        "ok": result.status is AnswerStatus.ANSWERED,
        "status": result.status.value,
        "answer": result.answer,
        "message": result.message,
        "user_turn_id": result.user_turn_id,
        "assistant_turn_id": result.assistant_turn_id,
        "request_id": request_id,
    }


@router.get("/matters/{matter_id}/chat", response_model=ChatHistoryResponse)
def chat_history(matter_id: str, limit: int = 100, services: Services = Depends(get_services)):
    """List the matter's chat turns in the order they were asked."""
    turns = services.query_service.history(matter_id, limit=limit)
    return ChatHistoryResponse(turns=turns, count=len(turns))


# ============================================================================
# Application
# ============================================================================


async def handle_ingest_error(_: Request, exc: IngestError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def handle_catalog_error(_: Request, exc: CatalogError):
    logger.error(f"Catalog error: {exc}")
    return JSONResponse(status_code=500, content={"error": "catalog_failed", "message": "Document catalog unavailable"})


async def handle_storage_error(_: Request, exc: StorageError):
    logger.error(f"Storage error: {exc}")
    return JSONResponse(status_code=500, content={"error": "storage_failed", "message": "File storage unavailable"})


async def handle_chat_history_error(_: Request, exc: ChatHistoryError):
    logger.error(f"Chat history error: {exc}")
    return JSONResponse(status_code=500, content={"error": "chat_history_failed", "message": "Chat history unavailable"})


def create_app(services: Optional[Services] = None) -> FastAPI:
    """Build the API. Pass ``services`` to run against pre-built collaborators."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if getattr(app.state, "services", None) is None:
            app.state.services = build_services(get_settings())
        try:
            yield
        finally:
            app.state.services.close()

    app = FastAPI(
        title="Casefile API",
        description="Matter document ingestion, indexing and question answering",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(IngestError, handle_ingest_error)
    app.add_exception_handler(CatalogError, handle_catalog_error)
    app.add_exception_handler(StorageError, handle_storage_error)
    app.add_exception_handler(ChatHistoryError, handle_chat_history_error)
    app.include_router(router)
    return app


app = create_app()
