from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path
from typing import List, Optional


class Settings(BaseSettings):
    # GCP Settings
    gcp_project_id: str = "casefile-matters"

    # Object storage
    storage_backend: str = "gcs"  # "gcs" or "local"
    gcs_bucket: str = "matter-files"
    local_storage_path: Path = Path("storage/blobs")
    signed_url_ttl_minutes: int = 60

    # Firestore collections
    documents_collection: str = "documents"
    fingerprints_collection: str = "document_fingerprints"
    stores_collection: str = "matter_stores"
    matters_collection: str = "matters"
    chat_collection: str = "chat_messages"

    # Gemini
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_upload_url: str = "https://generativelanguage.googleapis.com/upload/v1beta"
    gemini_request_timeout: float = 60.0

    # Indexing
    index_backend: str = "file_search"  # "file_search" or "files_inline"
    index_poll_interval_seconds: float = 2.0
    index_max_wait_seconds: float = 60.0
    index_poll_backoff: float = 1.0
    index_poll_max_interval_seconds: float = 10.0
    defer_indexing: bool = True

    # Uploads
    max_upload_bytes: int = 200 * 1024 * 1024
    allowed_mime_types: List[str] = [
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "application/vnd.ms-excel",
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        "image/jpeg",
        "image/png",
        "image/gif",
        "image/webp",
    ]

    # Answering
    answer_instructions: str = (
        "You are an assistant at a law firm. Answer the question using only "
        "the content of the matter's documents. Be concise and accurate, and "
        "say so when the documents do not contain the answer."
    )

    class Config:
        env_file = ".env"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
