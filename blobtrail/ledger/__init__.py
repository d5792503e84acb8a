"""Append-only version ledger."""

from blobtrail.ledger.base import (
    ChangeType,
    FileState,
    FileSummary,
    LedgerWriter,
    NewVersion,
    TrackedFileRecord,
    VersionLedger,
    VersionRecord,
    hash_content,
)
from blobtrail.ledger.sql import SqlVersionLedger

__all__ = [
    "ChangeType",
    "FileState",
    "FileSummary",
    "LedgerWriter",
    "NewVersion",
    "SqlVersionLedger",
    "TrackedFileRecord",
    "VersionLedger",
    "VersionRecord",
    "hash_content",
]
