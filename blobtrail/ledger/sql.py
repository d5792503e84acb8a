"""SQLite-backed version ledger.

Readers open their own short-lived sessions and never wait on the writer
(SQLite runs in WAL mode). Writes go through ``transaction()``, which holds a
process-wide write lock and commits everything issued inside it atomically.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager, contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import and_, func, select
from sqlalchemy.exc import SQLAlchemyError

from blobtrail.exceptions import (
    IntegrityViolationError,
    InvalidInputError,
    NotFoundError,
    PersistenceFailureError,
)
from blobtrail.ledger.base import (
    ChangeType,
    FileState,
    FileSummary,
    NewVersion,
    TrackedFileRecord,
    VersionRecord,
    hash_content,
)
from blobtrail.models.tracked_file import TrackedFile
from blobtrail.models.version import Version
from blobtrail.services.datetime_service import now_utc, to_utc

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Iterator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


@contextmanager
def _persistence_errors(action: str) -> Iterator[None]:
    """Translate SQLAlchemy errors into PersistenceFailureError."""
    try:
        yield
    except SQLAlchemyError as exc:
        logger.error("Ledger failed to %s: %s", action, exc)
        msg = f"Ledger failed to {action}"
        raise PersistenceFailureError(msg) from exc


def _file_record(row: TrackedFile) -> TrackedFileRecord:
    return TrackedFileRecord(
        id=row.id,
        path=row.path,
        change_token=row.change_token,
        content_hash=row.content_hash,
        last_modified=to_utc(row.last_modified),
        is_deleted=row.is_deleted,
    )


def _version_record(row: Version, path: str) -> VersionRecord:
    captured_at = to_utc(row.captured_at)
    assert captured_at is not None
    return VersionRecord(
        id=row.id,
        file_id=row.file_id,
        path=path,
        content=row.content,
        content_hash=row.content_hash,
        change_type=ChangeType(row.change_type),
        captured_at=captured_at,
        change_token=row.change_token,
        upstream_modified=to_utc(row.upstream_modified),
        previous_hash=row.previous_hash,
    )


class SqlLedgerWriter:
    """Write operations bound to one open transaction.

    Tracks which versions the ledger invariants still require before commit:
    a new or resurrected file needs a ``created`` version, a content change
    needs a ``modified`` version and a tombstone needs a ``deleted`` version.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._required: dict[str, ChangeType] = {}
        self._appended: set[tuple[str, ChangeType]] = set()

    async def _file_row(self, path: str) -> TrackedFile | None:
        return await self._session.scalar(select(TrackedFile).where(TrackedFile.path == path))

    async def upsert_file(self, state: FileState) -> int:
        row = await self._file_row(state.path)
        last_modified = to_utc(state.last_modified)
        if row is None:
            row = TrackedFile(
                path=state.path,
                change_token=state.change_token,
                content_hash=state.content_hash,
                last_modified=last_modified,
                is_deleted=state.is_deleted,
            )
            self._session.add(row)
            self._required[state.path] = ChangeType.CREATED
        else:
            if row.is_deleted and not state.is_deleted:
                self._required[state.path] = ChangeType.CREATED
            elif not row.is_deleted and state.is_deleted:
                self._required[state.path] = ChangeType.DELETED
            elif row.content_hash != state.content_hash and not state.is_deleted:
                self._required.setdefault(state.path, ChangeType.MODIFIED)
            row.change_token = state.change_token
            row.content_hash = state.content_hash
            row.last_modified = last_modified
            row.is_deleted = state.is_deleted
        await self._session.flush()
        return row.id

    async def mark_deleted(self, path: str) -> None:
        row = await self._file_row(path)
        if row is None:
            msg = f"File not found: {path}"
            raise NotFoundError(msg)
        if not row.is_deleted:
            row.is_deleted = True
            self._required[path] = ChangeType.DELETED
            await self._session.flush()

    async def append_version(self, version: NewVersion) -> int:
        row = await self._file_row(version.path)
        if row is None:
            msg = f"File not found: {version.path}"
            raise NotFoundError(msg)

        content_hash = hash_content(version.content)
        if version.change_type is ChangeType.DELETED:
            if version.content:
                msg = "A deleted version must have empty content"
                raise InvalidInputError(msg)
        elif (
            version.change_type is ChangeType.CREATED
            and self._required.get(version.path) is not ChangeType.CREATED
        ):
            msg = f"{version.path} is neither new nor deleted; a created version is not allowed"
            raise IntegrityViolationError(msg)
        elif row.is_deleted:
            msg = f"Cannot append a {version.change_type} version to deleted file {version.path}"
            raise IntegrityViolationError(msg)
        elif content_hash != row.content_hash:
            msg = (
                f"Version content hash {content_hash} does not match "
                f"tracked hash {row.content_hash} for {version.path}"
            )
            raise IntegrityViolationError(msg)

        new_row = Version(
            file_id=row.id,
            content=version.content,
            content_hash=content_hash,
            change_type=str(version.change_type),
            captured_at=now_utc(),
            change_token=version.change_token,
            upstream_modified=to_utc(version.upstream_modified),
            previous_hash=version.previous_hash,
        )
        self._session.add(new_row)
        await self._session.flush()
        self._appended.add((version.path, version.change_type))
        return new_row.id

    async def check_complete(self) -> None:
        """Raise IntegrityViolationError if the transaction would break a ledger invariant."""
        missing = [
            f"{path} ({change_type})"
            for path, change_type in sorted(self._required.items())
            if (path, change_type) not in self._appended
        ]
        if missing:
            msg = f"Transaction is missing required versions: {', '.join(missing)}"
            raise IntegrityViolationError(msg)

        for path, change_type in sorted(self._appended):
            if change_type is not ChangeType.DELETED:
                continue
            row = await self._file_row(path)
            if row is not None and not row.is_deleted:
                msg = f"A deleted version was appended but {path} is not marked deleted"
                raise IntegrityViolationError(msg)


class SqlVersionLedger:
    """Version ledger stored in the ``tracked_files`` and ``versions`` tables."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        write_lock: asyncio.Lock | None = None,
    ) -> None:

        self._session_factory = session_factory
        self._write_lock = write_lock or asyncio.Lock()

    # ── Writes ───────────────────────────────────────

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlLedgerWriter]:
        """Open a write transaction; everything inside commits or rolls back together."""
        async with self._write_lock:
            with _persistence_errors("commit transaction"):
                async with self._session_factory() as session, session.begin():
                    writer = SqlLedgerWriter(session)
                    yield writer
                    await writer.check_complete()

    async def upsert_file(self, state: FileState) -> int:
        """Insert or update a file row on its own.

        Only metadata updates can stand alone: inserting, resurrecting or
        changing the content hash requires a version in the same transaction.
        """
        async with self.transaction() as tx:
            return await tx.upsert_file(state)

    async def mark_deleted(self, path: str) -> None:
        """Tombstone ``path``. Requires a deleted version in the same transaction."""
        async with self.transaction() as tx:
            await tx.mark_deleted(path)

    async def append_version(self, version: NewVersion) -> int:
        """Append a version on its own and return its id."""
        async with self.transaction() as tx:
            return await tx.append_version(version)

    # ── Reads ────────────────────────────────────────

    async def get_file(self, path: str) -> TrackedFileRecord | None:
        """Get a tracked file by canonical path."""
        with _persistence_errors("get file"):
            async with self._session_factory() as session:
                row = await session.scalar(select(TrackedFile).where(TrackedFile.path == path))
                return _file_record(row) if row is not None else None

    async def list_files(self) -> list[FileSummary]:
        """List tracked files ordered by path with version aggregates."""
        counts = (
            select(Version.file_id, func.count(Version.id).label("version_count"))
            .group_by(Version.file_id)
            .subquery()
        )
        ranked = select(
            Version.file_id,
            Version.change_type,
            Version.captured_at,
            func.row_number()
            .over(
                partition_by=Version.file_id,
                order_by=(Version.captured_at.desc(), Version.id.desc()),
            )
            .label("rank"),
        ).subquery()
        stmt = (
            select(TrackedFile, counts.c.version_count, ranked.c.change_type, ranked.c.captured_at)
            .outerjoin(counts, counts.c.file_id == TrackedFile.id)
            .outerjoin(ranked, and_(ranked.c.file_id == TrackedFile.id, ranked.c.rank == 1))
            .order_by(TrackedFile.path)
        )
        with _persistence_errors("list files"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                rows = result.all()

        summaries: list[FileSummary] = []
        for file_row, version_count, change_type, captured_at in rows:
            summaries.append(
                FileSummary(
                    file=_file_record(file_row),
                    version_count=version_count or 0,
                    latest_change_type=ChangeType(change_type) if change_type else None,
                    latest_change_at=to_utc(captured_at),
                )
            )
        return summaries

    async def get_version(self, version_id: int) -> VersionRecord | None:
        """Get a version by id."""
        stmt = (
            select(Version, TrackedFile.path)
            .join(TrackedFile, Version.file_id == TrackedFile.id)
            .where(Version.id == version_id)
        )
        with _persistence_errors("get version"):
            async with self._session_factory() as session:
                row = (await session.execute(stmt)).first()
        if row is None:
            return None
        return _version_record(row[0], row[1])

    async def list_versions(self, path: str, *, newest_first: bool = True) -> list[VersionRecord]:
        """List every version of ``path`` ordered by capture time."""
        if newest_first:
            order = (Version.captured_at.desc(), Version.id.desc())
        else:
            order = (Version.captured_at.asc(), Version.id.asc())
        stmt = (
            select(Version)
            .join(TrackedFile, Version.file_id == TrackedFile.id)
            .where(TrackedFile.path == path)
            .order_by(*order)
        )
        with _persistence_errors("list versions"):
            async with self._session_factory() as session:
                rows = (await session.scalars(stmt)).all()
        return [_version_record(row, path) for row in rows]

    async def latest_version(self, path: str) -> VersionRecord | None:
        """Get the most recent version of ``path``."""
        stmt = (
            select(Version)
            .join(TrackedFile, Version.file_id == TrackedFile.id)
            .where(TrackedFile.path == path)
            .order_by(Version.captured_at.desc(), Version.id.desc())
            .limit(1)
        )
        with _persistence_errors("get latest version"):
            async with self._session_factory() as session:
                row = await session.scalar(stmt)
        return _version_record(row, path) if row is not None else None

    async def verify_integrity(self) -> list[int]:
        """Re-hash every stored version. Returns ids whose content no longer matches."""
        stmt = select(Version.id, Version.content, Version.content_hash).order_by(Version.id)
        corrupted: list[int] = []
        with _persistence_errors("verify integrity"):
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                for version_id, content, content_hash in result:
                    if hash_content(content) != content_hash:
                        corrupted.append(version_id)
        if corrupted:
            logger.error(
                "Integrity check found %d corrupted versions: %s", len(corrupted), corrupted
            )
        return corrupted
