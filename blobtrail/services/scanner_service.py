"""Change detection: periodic scan cycles that reconcile remote objects with the ledger."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from blobtrail.exceptions import BlobtrailError
from blobtrail.ledger.base import ChangeType, FileState, NewVersion, hash_content
from blobtrail.services.datetime_service import now_utc

if TYPE_CHECKING:
    from collections.abc import Sequence
    from datetime import datetime

    from blobtrail.ledger.base import TrackedFileRecord, VersionLedger
    from blobtrail.storage.base import ObjectInfo, ObjectSource, StorageScope

logger = logging.getLogger(__name__)


class Outcome(StrEnum):
    """What one cycle did with one canonical path."""

    CREATED = "created"
    RESURRECTED = "resurrected"
    MODIFIED = "modified"
    METADATA = "metadata"
    UNCHANGED = "unchanged"
    DELETED = "deleted"
    FAILED = "failed"


@dataclass
class ScanReport:
    """Summary of one scan cycle."""

    started_at: datetime
    finished_at: datetime | None = None
    scopes_total: int = 0
    failed_scopes: list[str] = field(default_factory=list)
    objects_seen: int = 0
    created: int = 0
    resurrected: int = 0
    modified: int = 0
    metadata_updated: int = 0
    unchanged: int = 0
    deleted: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def versions_written(self) -> int:
        return self.created + self.resurrected + self.modified + self.deleted

    def record(self, outcome: Outcome) -> None:
        if outcome is Outcome.CREATED:
            self.created += 1
        elif outcome is Outcome.RESURRECTED:
            self.resurrected += 1
        elif outcome is Outcome.MODIFIED:
            self.modified += 1
        elif outcome is Outcome.METADATA:
            self.metadata_updated += 1
        elif outcome is Outcome.UNCHANGED:
            self.unchanged += 1
        elif outcome is Outcome.DELETED:
            self.deleted += 1


@dataclass(frozen=True)
class _ScopeListing:
    scope: StorageScope
    objects: list[ObjectInfo] | None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.objects is not None


class Scanner:
    """Owns one source, one ledger and the scopes it is responsible for.

    Cycles never overlap: ``scan_once`` holds a cycle lock, and ``run_forever``
    waits for each cycle before scheduling the next one.
    """

    def __init__(
        self,
        source: ObjectSource,
        ledger: VersionLedger,
        scopes: Sequence[StorageScope],
        *,
        interval_seconds: float = 30.0,
        max_concurrent_listings: int = 4,
        max_concurrent_fetches: int = 8,
    ) -> None:
        if interval_seconds <= 0:
            msg = "interval_seconds must be positive"
            raise ValueError(msg)
        self._source = source
        self._ledger = ledger
        self._scopes = tuple(scopes)
        self._interval = interval_seconds
        self._max_listings = max(1, max_concurrent_listings)
        self._max_fetches = max(1, max_concurrent_fetches)
        self._cycle_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self.last_report: ScanReport | None = None
        self.cycles_completed = 0

    @property
    def scopes(self) -> tuple[StorageScope, ...]:
        return self._scopes

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_scanning(self) -> bool:
        return self._cycle_lock.locked()

    # ── Scheduling ───────────────────────────────────

    async def run_forever(self) -> None:
        """Run a cycle now, then one per interval measured from each cycle's start."""
        loop = asyncio.get_running_loop()
        logger.info(
            "Scanner started: %d scopes, interval %.1fs", len(self._scopes), self._interval
        )
        while True:
            started = loop.time()
            try:
                await self.scan_once()
            except Exception:
                logger.exception("Scan cycle failed unexpectedly")
            await asyncio.sleep(max(0.0, started + self._interval - loop.time()))

    def start(self) -> asyncio.Task[None]:
        """Start ``run_forever`` as a background task."""
        if self.is_running:
            msg = "Scanner is already running"
            raise RuntimeError(msg)
        self._task = asyncio.create_task(self.run_forever(), name="blobtrail-scanner")
        return self._task

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Scanner stopped")

    # ── Cycle ────────────────────────────────────────

    async def scan_once(self) -> ScanReport:
        """Run one full cycle and return its report."""
        async with self._cycle_lock:
            report = ScanReport(started_at=now_utc(), scopes_total=len(self._scopes))

            listings = await self._list_all_scopes()
            for listing in listings:
                if not listing.ok:
                    report.failed_scopes.append(listing.scope.name)
                    report.errors.append(f"{listing.scope.name}: {listing.error}")

            observed: dict[str, ObjectInfo] = {}
            for listing in listings:
                for info in listing.objects or ():
                    observed.setdefault(info.path, info)
            report.objects_seen = len(observed)

            semaphore = asyncio.Semaphore(self._max_fetches)

            async def classify(info: ObjectInfo) -> Outcome:
                async with semaphore:
                    return await self._classify_isolated(info, report)

            outcomes = await asyncio.gather(*(classify(info) for info in observed.values()))
            for outcome in outcomes:
                report.record(outcome)

            await self._infer_deletions(listings, set(observed), report)

            report.finished_at = now_utc()
            self.last_report = report
            self.cycles_completed += 1

        logger.info(
            "Scan cycle done: %d seen, %d created, %d resurrected, %d modified, "
            "%d metadata-only, %d deleted, %d failed scopes",
            report.objects_seen,
            report.created,
            report.resurrected,
            report.modified,
            report.metadata_updated,
            report.deleted,
            len(report.failed_scopes),
        )
        return report

    async def _list_all_scopes(self) -> list[_ScopeListing]:
        semaphore = asyncio.Semaphore(self._max_listings)

        async def list_scope(scope: StorageScope) -> _ScopeListing:
            async with semaphore:
                try:
                    objects = await self._source.list_objects(scope)
                except BlobtrailError as exc:
                    logger.warning("Skipping scope %s this cycle: %s", scope.name, exc)
                    return _ScopeListing(scope, None, str(exc))
                except Exception as exc:
                    logger.exception("Unexpected error listing scope %s", scope.name)
                    return _ScopeListing(scope, None, str(exc))
            logger.debug("Listed %d objects in scope %s", len(objects), scope.name)
            return _ScopeListing(scope, objects)

        # Every listing, successful or not, is collected before deletions are inferred.
        return list(await asyncio.gather(*(list_scope(scope) for scope in self._scopes)))

    async def _classify_isolated(self, info: ObjectInfo, report: ScanReport) -> Outcome:
        try:
            return await self.classify(info)
        except BlobtrailError as exc:
            logger.warning("Failed to process %s: %s", info.path, exc)
            report.errors.append(f"{info.path}: {exc}")
        except Exception as exc:
            logger.exception("Unexpected error processing %s", info.path)
            report.errors.append(f"{info.path}: {exc}")
        return Outcome.FAILED

    async def classify(self, info: ObjectInfo) -> Outcome:
        """Apply the per-path state transition for one listed object."""
        tracked = await self._ledger.get_file(info.path)
        if (
            tracked is not None
            and not tracked.is_deleted
            and tracked.change_token == info.change_token
        ):
            return Outcome.UNCHANGED

        fetched = await self._source.fetch_object(info.path)
        content_hash = hash_content(fetched.data)
        change_token = fetched.change_token or info.change_token
        last_modified = fetched.last_modified or info.last_modified
        state = FileState(
            path=info.path,
            change_token=change_token,
            content_hash=content_hash,
            last_modified=last_modified,
        )

        if tracked is not None and not tracked.is_deleted and tracked.content_hash == content_hash:
            await self._ledger.upsert_file(state)
            logger.debug("Metadata-only change for %s", info.path)
            return Outcome.METADATA

        if tracked is None:
            outcome, change_type = Outcome.CREATED, ChangeType.CREATED
        elif tracked.is_deleted:
            outcome, change_type = Outcome.RESURRECTED, ChangeType.CREATED
        else:
            outcome, change_type = Outcome.MODIFIED, ChangeType.MODIFIED

        async with self._ledger.transaction() as tx:
            await tx.upsert_file(state)
            version_id = await tx.append_version(
                NewVersion(
                    path=info.path,
                    content=fetched.data,
                    change_type=change_type,
                    change_token=change_token,
                    upstream_modified=last_modified,
                )
            )
        logger.info("Recorded %s version %d for %s", outcome, version_id, info.path)
        return outcome

    async def _infer_deletions(
        self, listings: list[_ScopeListing], seen: set[str], report: ScanReport
    ) -> None:
        listed_scopes = [listing.scope for listing in listings if listing.ok]
        failed_scopes = [listing.scope for listing in listings if not listing.ok]
        if not listed_scopes:
            return

        try:
            summaries = await self._ledger.list_files()
        except BlobtrailError as exc:
            logger.error("Skipping deletion inference: %s", exc)
            report.errors.append(f"deletion inference: {exc}")
            return

        for summary in summaries:
            tracked = summary.file
            if tracked.is_deleted or tracked.path in seen:
                continue
            if not is_deletion_candidate(tracked.path, listed_scopes, failed_scopes):
                continue
            try:
                await self._record_deletion(tracked)
            except BlobtrailError as exc:
                logger.warning("Failed to record deletion of %s: %s", tracked.path, exc)
                report.errors.append(f"{tracked.path}: {exc}")
                continue
            report.record(Outcome.DELETED)

    async def _record_deletion(self, tracked: TrackedFileRecord) -> None:
        async with self._ledger.transaction() as tx:
            await tx.mark_deleted(tracked.path)
            version_id = await tx.append_version(
                NewVersion(
                    path=tracked.path,
                    content=b"",
                    change_type=ChangeType.DELETED,
                    change_token=tracked.change_token,
                    upstream_modified=tracked.last_modified,
                    previous_hash=tracked.content_hash,
                )
            )
        logger.info("Recorded deleted version %d for %s", version_id, tracked.path)


def is_deletion_candidate(
    path: str,
    listed_scopes: Sequence[StorageScope],
    failed_scopes: Sequence[StorageScope],
) -> bool:
    """Return True if an unseen ``path`` may be inferred deleted.

    The path must fall inside a scope that was listed completely and inside no
    scope whose listing failed.
    """
    if any(scope.covers(path) for scope in failed_scopes):
        return False
    return any(scope.covers(path) for scope in listed_scopes)
