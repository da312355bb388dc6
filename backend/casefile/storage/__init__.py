from .blob_store import BlobStore, GCSBlobStore, LocalBlobStore, build_blob_store

__all__ = [
    "BlobStore",
    "GCSBlobStore",
    "LocalBlobStore",
    "build_blob_store",
]
