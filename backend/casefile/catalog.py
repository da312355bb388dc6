"""
Document Catalog
The authoritative record of documents, per-matter index stores and the
matter lookup, backed by Firestore.

The catalog owns the (matter_id, sha256) uniqueness rule: every document row
is written in the same batch as a fingerprint claim whose id is derived from
the pair, so two concurrent uploads of the same bytes cannot both land.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from google.api_core import exceptions as gcloud_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .config import Settings
from .errors import CatalogError, FingerprintConflict
from .models.documents import Document, IndexStore

logger = logging.getLogger(__name__)


class DocumentCatalog(ABC):

    @abstractmethod
    def matter_exists(self, matter_id: str) -> bool:
        ...

    @abstractmethod
    def find_by_fingerprint(self, matter_id: str, sha256: str) -> Optional[Document]:
        ...

    @abstractmethod
    def insert_document(self, document: Document) -> Document:
        """Insert a new row. Raises FingerprintConflict when the pair is taken."""

    @abstractmethod
    def get_document(self, matter_id: str, document_id: str) -> Optional[Document]:
        ...

    @abstractmethod
    def list_documents(self, matter_id: str) -> List[Document]:
        """Documents of a matter, newest first."""

    @abstractmethod
    def set_indexing_reference(self, document_id: str, file_name: str, file_uri: Optional[str]) -> Document:
        ...

    @abstractmethod
    def get_index_store(self, matter_id: str) -> Optional[IndexStore]:
        ...

    @abstractmethod
    def insert_index_store(self, store: IndexStore) -> IndexStore:
        """Create-if-absent. Returns the existing record when one is already there."""


def fingerprint_claim_id(matter_id: str, sha256: str) -> str:
    return f"{matter_id}_{sha256}"


class FirestoreDocumentCatalog(DocumentCatalog):

    def __init__(self, db: firestore.Client, settings: Settings):
        self.db = db
        self.documents = db.collection(settings.documents_collection)
        self.fingerprints = db.collection(settings.fingerprints_collection)
        self.stores = db.collection(settings.stores_collection)
        self.matters = db.collection(settings.matters_collection)

    def matter_exists(self, matter_id: str) -> bool:
        try:
            return self.matters.document(matter_id).get().exists
        except gcloud_exceptions.GoogleAPICallError as e:
            raise CatalogError(f"Matter lookup failed for {matter_id}: {e}") from e

    def find_by_fingerprint(self, matter_id: str, sha256: str) -> Optional[Document]:
        query = (
            self.documents
            .where(filter=FieldFilter("matter_id", "==", matter_id))
            .where(filter=FieldFilter("sha256", "==", sha256))
            .limit(1)
        )
        try:
            for snapshot in query.stream():
                return Document.model_validate(snapshot.to_dict())
        except gcloud_exceptions.GoogleAPICallError as e:
            raise CatalogError(f"Fingerprint lookup failed: {e}") from e
        return None

    def insert_document(self, document: Document) -> Document:
        claim_ref = self.fingerprints.document(fingerprint_claim_id(document.matter_id, document.sha256))
        doc_ref = self.documents.document(document.id)

        batch = self.db.batch()
        batch.create(claim_ref, {
            "matter_id": document.matter_id,
            "sha256": document.sha256,
            "document_id": document.id,
        })
        batch.create(doc_ref, document.model_dump(mode="json"))
        try:
            batch.commit()
        except gcloud_exceptions.Conflict as e:
            existing = self.find_by_fingerprint(document.matter_id, document.sha256)
            raise FingerprintConflict(document.matter_id, document.sha256, existing) from e
        except gcloud_exceptions.GoogleAPICallError as e:
            raise CatalogError(f"Insert of document {document.id} failed: {e}") from e

        logger.info(f"Saved catalog row for document {document.id}")
        return document

    def get_document(self, matter_id: str, document_id: str) -> Optional[Document]:
        try:
            snapshot = self.documents.document(document_id).get()
        except gcloud_exceptions.GoogleAPICallError as e:
            raise CatalogError(f"Read of document {document_id} failed: {e}") from e
        if not snapshot.exists:
            return None
        document = Document.model_validate(snapshot.to_dict())
        if document.matter_id != matter_id:
            return None
        return document

    def list_documents(self, matter_id: str) -> List[Document]:
        query = (
            self.documents
            .where(filter=FieldFilter("matter_id", "==", matter_id))
            .order_by("uploaded_at", direction=firestore.Query.DESCENDING)
        )
        try:
            return [Document.model_validate(snapshot.to_dict()) for snapshot in query.stream()]
        except gcloud_exceptions.GoogleAPICallError as e:
            raise CatalogError(f"Listing documents of matter {matter_id} failed: {e}") from e

    def set_indexing_reference(self, document_id: str, file_name: str, file_uri: Optional[str]) -> Document:
        doc_ref = self.documents.document(document_id)
        try:
            doc_ref.update({"index_file_name": file_name, "index_file_uri": file_uri})
            snapshot = doc_ref.get()
        except gcloud_exceptions.GoogleAPICallError as e:
            raise CatalogError(f"Indexing reference update for {document_id} failed: {e}") from e
        return Document.model_validate(snapshot.to_dict())

    def get_index_store(self, matter_id: str) -> Optional[IndexStore]:
        try:
            snapshot = self.stores.document(matter_id).get()
        except gcloud_exceptions.GoogleAPICallError as e:
            raise CatalogError(f"Index store lookup for {matter_id} failed: {e}") from e
        if not snapshot.exists:
            return None
        return IndexStore.model_validate(snapshot.to_dict())

    def insert_index_store(self, store: IndexStore) -> IndexStore:
        try:
            self.stores.document(store.matter_id).create(store.model_dump(mode="json"))
        except gcloud_exceptions.Conflict:
            existing = self.get_index_store(store.matter_id)
            if existing is None:
                raise CatalogError(f"Index store for {store.matter_id} conflicted but is missing")
            logger.warning(
                f"Index store for matter {store.matter_id} already recorded as "
                f"{existing.store_name}; discarding {store.store_name}"
            )
            return existing
        except gcloud_exceptions.GoogleAPICallError as e:
            raise CatalogError(f"Insert of index store for {store.matter_id} failed: {e}") from e
        logger.info(f"Saved index store {store.store_name} for matter {store.matter_id}")
        return store
