"""
Content fingerprints used as the deduplication key for uploads.
"""

import hashlib
from typing import Iterable


def fingerprint(data: bytes) -> str:
    """Return the lowercase hex SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def fingerprint_stream(chunks: Iterable[bytes]) -> str:
    """Digest a byte stream chunk by chunk; equal to ``fingerprint`` of the joined bytes."""
    digest = hashlib.sha256()
    for chunk in chunks:
        digest.update(chunk)
    return digest.hexdigest()
