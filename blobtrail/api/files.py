"""Tracked file, version history, diff and restore endpoints.

Canonical paths contain slashes, so the more specific routes are declared
before the bare ``/api/files/{path}`` route.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends

from blobtrail.api.deps import get_ledger, get_object_source
from blobtrail.ledger.base import FileSummary, TrackedFileRecord, VersionLedger, VersionRecord
from blobtrail.schemas.diff import (
    DiffLineResponse,
    DiffResponse,
    DiffStatsResponse,
    SplitRowResponse,
)
from blobtrail.schemas.file import TrackedFileResponse, TrackedFileSummary
from blobtrail.schemas.version import RestoreResponse, VersionDetail, VersionSummary
from blobtrail.services import history_service
from blobtrail.services.datetime_service import format_iso
from blobtrail.services.diff_service import DiffLine, decode_content
from blobtrail.services.restore_service import restore
from blobtrail.storage.base import ObjectSource

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/files", tags=["files"])


def _iso(value: datetime | None) -> str | None:
    return format_iso(value) if value is not None else None


def _file_response(tracked: TrackedFileRecord) -> TrackedFileResponse:
    return TrackedFileResponse(
        id=tracked.id,
        path=tracked.path,
        change_token=tracked.change_token,
        content_hash=tracked.content_hash,
        last_modified=_iso(tracked.last_modified),
        is_deleted=tracked.is_deleted,
    )


def _file_summary(summary: FileSummary) -> TrackedFileSummary:
    return TrackedFileSummary(
        **_file_response(summary.file).model_dump(),
        version_count=summary.version_count,
        latest_change_type=(
            str(summary.latest_change_type) if summary.latest_change_type else None
        ),
        latest_change_at=_iso(summary.latest_change_at),
    )


def _version_summary(version: VersionRecord) -> VersionSummary:
    return VersionSummary(
        id=version.id,
        file_id=version.file_id,
        path=version.path,
        content_hash=version.content_hash,
        change_type=str(version.change_type),
        captured_at=format_iso(version.captured_at),
        change_token=version.change_token,
        upstream_modified=_iso(version.upstream_modified),
        previous_hash=version.previous_hash,
        size=len(version.content),
    )


def _diff_line(line: DiffLine | None) -> DiffLineResponse | None:
    if line is None:
        return None
    return DiffLineResponse(
        type=line.type.value,
        content=line.content,
        old_line_number=line.old_line_number,
        new_line_number=line.new_line_number,
    )


@router.get("", response_model=list[TrackedFileSummary])
async def list_files_endpoint(
    ledger: Annotated[VersionLedger, Depends(get_ledger)],
) -> list[TrackedFileSummary]:
    """List every tracked file ordered by path."""
    summaries = await history_service.list_tracked_files(ledger)
    return [_file_summary(summary) for summary in summaries]


@router.get("/{path:path}/versions/{version_id}", response_model=VersionDetail)
async def get_version_endpoint(
    path: str,
    version_id: str,
    ledger: Annotated[VersionLedger, Depends(get_ledger)],
) -> VersionDetail:
    """Get one version of a file including its content."""
    version = await history_service.get_version(
        ledger, history_service.parse_version_id(version_id), path
    )
    return VersionDetail(
        **_version_summary(version).model_dump(),
        content=decode_content(version.content),
    )


@router.get("/{path:path}/versions", response_model=list[VersionSummary])
async def list_versions_endpoint(
    path: str,
    ledger: Annotated[VersionLedger, Depends(get_ledger)],
) -> list[VersionSummary]:
    """List the versions of a file, newest first."""
    versions = await history_service.list_versions(ledger, path)
    return [_version_summary(version) for version in versions]


@router.get("/{path:path}/diff/{old_id}/{new_id}", response_model=DiffResponse)
async def diff_endpoint(
    path: str,
    old_id: str,
    new_id: str,
    ledger: Annotated[VersionLedger, Depends(get_ledger)],
) -> DiffResponse:
    """Diff two versions of a file."""
    old_version_id = history_service.parse_version_id(old_id)
    new_version_id = history_service.parse_version_id(new_id)
    result = await history_service.compute_diff(ledger, old_version_id, new_version_id, path)
    return DiffResponse(
        path=path,
        old_version_id=old_version_id,
        new_version_id=new_version_id,
        has_changes=result.has_changes,
        lines=[line for line in map(_diff_line, result.unified()) if line is not None],
        split=[
            SplitRowResponse(left=_diff_line(row.left), right=_diff_line(row.right))
            for row in result.split()
        ],
        stats=DiffStatsResponse(
            lines_added=result.stats.lines_added,
            lines_removed=result.stats.lines_removed,
            lines_changed=result.stats.lines_changed,
        ),
        unified_diff=result.unified_diff,
    )


@router.post("/{path:path}/restore/{version_id}", response_model=RestoreResponse)
async def restore_endpoint(
    path: str,
    version_id: str,
    ledger: Annotated[VersionLedger, Depends(get_ledger)],
    source: Annotated[ObjectSource, Depends(get_object_source)],
) -> RestoreResponse:
    """Upload a previous version back to the object store."""
    result = await restore(ledger, source, path, history_service.parse_version_id(version_id))
    return RestoreResponse(
        path=result.path,
        version_id=result.version_id,
        content_hash=result.content_hash,
        bytes_written=result.bytes_written,
        restored_at=format_iso(result.restored_at),
        message="Restored. The next scan cycle records it as a new version.",
    )


@router.get("/{path:path}", response_model=TrackedFileResponse)
async def get_file_endpoint(
    path: str,
    ledger: Annotated[VersionLedger, Depends(get_ledger)],
) -> TrackedFileResponse:
    """Get the ledger state of one file."""
    return _file_response(await history_service.get_file(ledger, path))
