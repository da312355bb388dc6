"""
Blob storage for raw uploaded files.

Objects are addressed by (bucket, path). Writes never overwrite: the
ingestion pipeline relies on ``put`` failing when a path is already taken.
"""

import logging
from abc import ABC, abstractmethod
from datetime import timedelta
from pathlib import Path
from typing import Optional

import google.auth
from google.api_core import exceptions as gcloud_exceptions
from google.auth import compute_engine
from google.cloud import storage

from ..config import Settings
from ..errors import BlobNotFound, StorageError

logger = logging.getLogger(__name__)


class BlobStore(ABC):
    """put/get/delete of raw bytes keyed by a deterministic path."""

    @abstractmethod
    def put(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        ...

    @abstractmethod
    def get(self, bucket: str, path: str) -> bytes:
        ...

    @abstractmethod
    def delete(self, bucket: str, path: str) -> None:
        ...

    @abstractmethod
    def get_signed_url(self, bucket: str, path: str, ttl: timedelta) -> str:
        ...


class GCSBlobStore(BlobStore):
    """Google Cloud Storage backend."""

    def __init__(self, client: storage.Client):
        self.client = client

    def put(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        blob = self.client.bucket(bucket).blob(path)
        try:
            # generation 0 means "only if the object does not exist yet"
            blob.upload_from_string(data, content_type=content_type, if_generation_match=0)
        except gcloud_exceptions.PreconditionFailed as e:
            raise StorageError(f"Object already exists at gs://{bucket}/{path}") from e
        except gcloud_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Upload to gs://{bucket}/{path} failed: {e}") from e
        logger.info(f"Uploaded {len(data)} bytes to gs://{bucket}/{path}")

    def get(self, bucket: str, path: str) -> bytes:
        blob = self.client.bucket(bucket).blob(path)
        try:
            return blob.download_as_bytes()
        except gcloud_exceptions.NotFound as e:
            raise BlobNotFound(f"gs://{bucket}/{path} not found") from e
        except gcloud_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Download of gs://{bucket}/{path} failed: {e}") from e

    def delete(self, bucket: str, path: str) -> None:
        blob = self.client.bucket(bucket).blob(path)
        try:
            blob.delete()
        except gcloud_exceptions.NotFound:
            logger.info(f"gs://{bucket}/{path} already absent")
        except gcloud_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Delete of gs://{bucket}/{path} failed: {e}") from e

    def get_signed_url(self, bucket: str, path: str, ttl: timedelta) -> str:
        blob = self.client.bucket(bucket).blob(path)

        try:
            credentials, project = google.auth.default()

            # On Cloud Run/GCE the default credentials cannot sign, so sign
            # through impersonated credentials (IAM SignBlob).
            if isinstance(credentials, compute_engine.Credentials):
                from google.auth import impersonated_credentials
                from google.auth.transport import requests as auth_requests

                auth_request = auth_requests.Request()
                credentials.refresh(auth_request)
                sa_email = credentials.service_account_email

                signing_credentials = impersonated_credentials.Credentials(
                    source_credentials=credentials,
                    target_principal=sa_email,
                    target_scopes=["https://www.googleapis.com/auth/devstorage.read_only"],
                )
                return blob.generate_signed_url(
                    version="v4",
                    expiration=ttl,
                    method="GET",
                    credentials=signing_credentials,
                )

            return blob.generate_signed_url(version="v4", expiration=ttl, method="GET")

        except Exception as e:
            logger.error(f"Error generating signed URL for gs://{bucket}/{path}: {e}")
            raise StorageError(f"Could not sign URL for gs://{bucket}/{path}: {e}") from e


class LocalBlobStore(BlobStore):
    """Filesystem backend for local development; buckets are subdirectories."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, bucket: str, path: str) -> Path:
        root = self.root.resolve()
        candidate = (root / bucket / path).resolve()
        if candidate != root and root not in candidate.parents:
            raise StorageError(f"Path {bucket}/{path} escapes storage root {root}")
        return candidate

    def put(self, bucket: str, path: str, data: bytes, content_type: str) -> None:
        destination = self._resolve(bucket, path)
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            with open(destination, "xb") as handle:
                handle.write(data)
        except FileExistsError as e:
            raise StorageError(f"Object already exists at {bucket}/{path}") from e
        except OSError as e:
            raise StorageError(f"Write of {bucket}/{path} failed: {e}") from e
        logger.info(f"Stored {len(data)} bytes at {destination}")

    def get(self, bucket: str, path: str) -> bytes:
        source = self._resolve(bucket, path)
        try:
            return source.read_bytes()
        except FileNotFoundError as e:
            raise BlobNotFound(f"{bucket}/{path} not found") from e
        except OSError as e:
            raise StorageError(f"Read of {bucket}/{path} failed: {e}") from e

    def delete(self, bucket: str, path: str) -> None:
        target = self._resolve(bucket, path)
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Delete of {bucket}/{path} failed: {e}") from e

    def get_signed_url(self, bucket: str, path: str, ttl: timedelta) -> str:
        target = self._resolve(bucket, path)
        if not target.exists():
            raise BlobNotFound(f"{bucket}/{path} not found")
        return target.as_uri()


def build_blob_store(settings: Settings, client: Optional[storage.Client] = None) -> BlobStore:
    """Select the blob store backend named by ``settings.storage_backend``."""
    backend = (settings.storage_backend or "gcs").lower()
    if backend == "local":
        return LocalBlobStore(settings.local_storage_path)
    if backend == "gcs":
        return GCSBlobStore(client or storage.Client(project=settings.gcp_project_id))
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
