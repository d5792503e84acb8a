"""Health check endpoint."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blobtrail.api.deps import get_scanner, get_session
from blobtrail.models import TrackedFile, Version
from blobtrail.services.datetime_service import format_iso
from blobtrail.services.scanner_service import Scanner

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    tracked_files: int | None = None
    versions: int | None = None
    scanner: str
    last_scan_finished_at: str | None = None
    last_scan_failed_scopes: list[str] = Field(default_factory=list)


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    session: Annotated[AsyncSession, Depends(get_session)],
    scanner: Annotated[Scanner, Depends(get_scanner)],
) -> HealthResponse:
    """Ledger size and scanner state, for monitoring and load balancers.

    A failed ledger query or a last scan with failed scopes reports ``degraded``.
    """
    tracked_files: int | None = None
    versions: int | None = None
    try:
        tracked_files = await session.scalar(select(func.count()).select_from(TrackedFile))
        versions = await session.scalar(select(func.count()).select_from(Version))
        db_status = "ok"
    except SQLAlchemyError:
        logger.warning("Health check ledger query failed", exc_info=True)
        db_status = "error"

    report = scanner.last_report
    failed_scopes = list(report.failed_scopes) if report is not None else []
    finished_at = report.finished_at if report is not None else None
    healthy = db_status == "ok" and not failed_scopes

    return HealthResponse(
        status="ok" if healthy else "degraded",
        version="0.1.0",
        database=db_status,
        tracked_files=tracked_files,
        versions=versions,
        scanner="running" if scanner.is_running else "stopped",
        last_scan_finished_at=format_iso(finished_at) if finished_at is not None else None,
        last_scan_failed_scopes=failed_scopes,
    )
