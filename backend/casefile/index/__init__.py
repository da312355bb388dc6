from .backends import FileSearchStoreBackend, InlineFilesBackend, build_index_backend
from .gemini_client import GeminiClient
from .manager import IndexBackend
from .operations import IndexingJob

__all__ = [
    "FileSearchStoreBackend",
    "GeminiClient",
    "IndexBackend",
    "IndexingJob",
    "InlineFilesBackend",
    "build_index_backend",
]
