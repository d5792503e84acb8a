"""Ledger records and the version ledger protocol."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from contextlib import AbstractAsyncContextManager
    from datetime import datetime


class ChangeType(StrEnum):
    """Classification the scanner assigns to every new version."""

    CREATED = "created"
    MODIFIED = "modified"
    DELETED = "deleted"


def hash_content(data: bytes) -> str:
    """Compute the SHA-256 hex digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


@dataclass(frozen=True)
class FileState:
    """Desired state of a tracked file row, written by ``upsert_file``."""

    path: str
    change_token: str
    content_hash: str
    last_modified: datetime | None = None
    is_deleted: bool = False


@dataclass(frozen=True)
class TrackedFileRecord:
    """A stored tracked file row."""

    id: int
    path: str
    change_token: str
    content_hash: str
    last_modified: datetime | None
    is_deleted: bool


@dataclass(frozen=True)
class FileSummary:
    """Tracked file with aggregates derived from its versions."""

    file: TrackedFileRecord
    version_count: int
    latest_change_type: ChangeType | None
    latest_change_at: datetime | None


@dataclass(frozen=True)
class NewVersion:
    """A snapshot to append. The ledger computes the content hash itself."""

    path: str
    content: bytes
    change_type: ChangeType
    change_token: str = ""
    upstream_modified: datetime | None = None
    previous_hash: str | None = None


@dataclass(frozen=True)
class VersionRecord:
    """A stored, immutable version."""

    id: int
    file_id: int
    path: str
    content: bytes
    content_hash: str
    change_type: ChangeType
    captured_at: datetime
    change_token: str
    upstream_modified: datetime | None
    previous_hash: str | None

    def verify(self) -> bool:
        """Return True if the stored content still hashes to the recorded hash."""
        return hash_content(self.content) == self.content_hash


class LedgerWriter(Protocol):
    """Write operations available inside one ledger transaction."""

    async def upsert_file(self, state: FileState) -> int:
        """Insert or update the row for ``state.path``. Returns the file id."""
        ...

    async def mark_deleted(self, path: str) -> None:
        """Set ``is_deleted`` on ``path`` without touching its versions."""
        ...

    async def append_version(self, version: NewVersion) -> int:
        """Append ``version`` and return its monotonically increasing id."""
        ...


@runtime_checkable
class VersionLedger(Protocol):
    """Durable store of tracked files and their append-only versions."""

    async def get_file(self, path: str) -> TrackedFileRecord | None: ...

    async def list_files(self) -> list[FileSummary]: ...

    async def get_version(self, version_id: int) -> VersionRecord | None: ...

    async def list_versions(
        self, path: str, *, newest_first: bool = True
    ) -> list[VersionRecord]: ...

    async def latest_version(self, path: str) -> VersionRecord | None: ...

    def transaction(self) -> AbstractAsyncContextManager[LedgerWriter]: ...

    async def upsert_file(self, state: FileState) -> int: ...

    async def mark_deleted(self, path: str) -> None: ...

    async def append_version(self, version: NewVersion) -> int: ...

    async def verify_integrity(self) -> list[int]: ...
