"""Remote object store adapters."""

from blobtrail.storage.base import (
    CanonicalPath,
    ObjectContent,
    ObjectInfo,
    ObjectSource,
    StorageScope,
    matches_patterns,
)

__all__ = [
    "CanonicalPath",
    "ObjectContent",
    "ObjectInfo",
    "ObjectSource",
    "StorageScope",
    "matches_patterns",
]
