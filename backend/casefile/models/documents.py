"""
Pydantic models for matter documents, index stores and chat turns.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional, Literal

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DocType(str, Enum):
    CONTRACT = "contract"
    EVIDENCE = "evidence"
    CLAIM = "claim"
    CORRESPONDENCE = "correspondence"
    IMAGE = "image"
    OTHER = "other"


class Document(BaseModel):
    """One uploaded file version, as stored in the document catalog."""
    id: str
    matter_id: str
    file_name: str
    mime_type: str
    file_size: int
    sha256: str
    doc_type: DocType = DocType.OTHER
    storage_bucket: str
    storage_path: str
    index_file_name: Optional[str] = None
    index_file_uri: Optional[str] = None
    uploaded_by: Optional[str] = None
    uploaded_at: datetime = Field(default_factory=utcnow)

    @property
    def searchable(self) -> bool:
        return self.index_file_name is not None


class IndexStore(BaseModel):
    """The external search-index collection owned by one matter."""
    matter_id: str
    store_name: str
    display_name: str
    backend: str
    created_at: datetime = Field(default_factory=utcnow)


class ChatTurn(BaseModel):
    id: str
    matter_id: str
    role: Literal["user", "assistant"]
    content: str
    user_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class DocumentListResponse(BaseModel):
    documents: List[Document]
    count: int


class ChatRequest(BaseModel):
    message: str


class ChatHistoryResponse(BaseModel):
    turns: List[ChatTurn]
    count: int
