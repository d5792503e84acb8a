"""Scan trigger, scan status and ledger integrity endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends

from blobtrail.api.deps import get_ledger, get_scanner, get_settings
from blobtrail.config import Settings
from blobtrail.ledger.base import VersionLedger
from blobtrail.schemas.scan import IntegrityResponse, ScanReportResponse, ScanStatusResponse
from blobtrail.services import history_service
from blobtrail.services.datetime_service import format_iso, now_utc
from blobtrail.services.scanner_service import ScanReport, Scanner

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["scan"])


def _report_response(report: ScanReport) -> ScanReportResponse:
    return ScanReportResponse(
        started_at=format_iso(report.started_at),
        finished_at=format_iso(report.finished_at) if report.finished_at else None,
        scopes_total=report.scopes_total,
        failed_scopes=list(report.failed_scopes),
        objects_seen=report.objects_seen,
        created=report.created,
        resurrected=report.resurrected,
        modified=report.modified,
        metadata_updated=report.metadata_updated,
        unchanged=report.unchanged,
        deleted=report.deleted,
        versions_written=report.versions_written,
        errors=list(report.errors),
    )


@router.post("/scan", response_model=ScanReportResponse)
async def scan_now(
    scanner: Annotated[Scanner, Depends(get_scanner)],
) -> ScanReportResponse:
    """Run one scan cycle now. Waits for a cycle already in progress first."""
    logger.info("Manual scan requested")
    return _report_response(await scanner.scan_once())


@router.get("/scan/status", response_model=ScanStatusResponse)
async def scan_status(
    scanner: Annotated[Scanner, Depends(get_scanner)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ScanStatusResponse:
    """Scanner state and the most recent cycle report."""
    report = scanner.last_report
    return ScanStatusResponse(
        enabled=settings.scan_enabled,
        running=scanner.is_running,
        scanning=scanner.is_scanning,
        interval_seconds=scanner.interval_seconds,
        scopes=[scope.name for scope in scanner.scopes],
        cycles_completed=scanner.cycles_completed,
        last_report=_report_response(report) if report is not None else None,
    )


@router.get("/integrity", response_model=IntegrityResponse)
async def integrity_check(
    ledger: Annotated[VersionLedger, Depends(get_ledger)],
) -> IntegrityResponse:
    """Re-hash every stored version and report mismatches."""
    corrupted = await history_service.verify_integrity(ledger)
    return IntegrityResponse(
        ok=not corrupted,
        corrupted_version_ids=corrupted,
        checked_at=format_iso(now_utc()),
    )
