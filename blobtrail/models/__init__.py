"""SQLAlchemy ORM models for Blobtrail."""

from blobtrail.models.base import Base
from blobtrail.models.tracked_file import TrackedFile
from blobtrail.models.version import Version

__all__ = [
    "Base",
    "TrackedFile",
    "Version",
]
