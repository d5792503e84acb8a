"""Read-side queries over the ledger: files, versions, diffs and audits."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from blobtrail.exceptions import IntegrityViolationError, InvalidInputError, NotFoundError
from blobtrail.services.diff_service import compare_versions

if TYPE_CHECKING:
    from blobtrail.ledger.base import FileSummary, TrackedFileRecord, VersionLedger, VersionRecord
    from blobtrail.services.diff_service import DiffResult

logger = logging.getLogger(__name__)

# Largest value a SQLite INTEGER column holds.
MAX_VERSION_ID = 2**63 - 1


def parse_version_id(raw: str | int) -> int:
    """Parse a version id from user input. Raises InvalidInputError unless it is a positive int."""
    if isinstance(raw, int) and not isinstance(raw, bool):
        value = raw
    else:
        text = str(raw).strip()
        if not text.isascii() or not text.isdigit():
            msg = f"Invalid version id: {raw!r}"
            raise InvalidInputError(msg)
        value = int(text)
    if value <= 0 or value > MAX_VERSION_ID:
        msg = f"Invalid version id: {raw!r}"
        raise InvalidInputError(msg)
    return value


async def list_tracked_files(ledger: VersionLedger) -> list[FileSummary]:
    return await ledger.list_files()


async def get_file(ledger: VersionLedger, path: str) -> TrackedFileRecord:
    """Get a tracked file. Raises NotFoundError for unknown paths."""
    tracked = await ledger.get_file(path)
    if tracked is None:
        msg = f"File not found: {path}"
        raise NotFoundError(msg)
    return tracked


async def list_versions(ledger: VersionLedger, path: str) -> list[VersionRecord]:
    """List versions of ``path`` newest first."""
    await get_file(ledger, path)
    return await ledger.list_versions(path, newest_first=True)


async def get_version(
    ledger: VersionLedger, version_id: int, path: str | None = None
) -> VersionRecord:
    """Get a version and check its content against the recorded hash.

    When ``path`` is given the version must belong to that file.
    """
    version = await ledger.get_version(version_id)
    if version is None or (path is not None and version.path != path):
        msg = f"Version {version_id} not found"
        raise NotFoundError(msg)
    if not version.verify():
        logger.error("Version %d of %s failed its integrity check", version_id, version.path)
        msg = f"Version {version_id} content does not match its recorded hash"
        raise IntegrityViolationError(msg)
    return version


async def compute_diff(
    ledger: VersionLedger, old_id: int, new_id: int, path: str | None = None
) -> DiffResult:
    """Diff two stored versions, old side first."""
    old = await get_version(ledger, old_id, path)
    new = await get_version(ledger, new_id, path)
    return compare_versions(
        old.content,
        new.content,
        f"{old.path} (v{old.id})",
        f"{new.path} (v{new.id})",
    )


async def verify_integrity(ledger: VersionLedger) -> list[int]:
    """Return ids of every stored version whose content no longer matches its hash."""
    return await ledger.verify_integrity()
