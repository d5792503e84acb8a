"""Scan and integrity schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ScanReportResponse(BaseModel):
    """Summary of one scan cycle."""

    started_at: str
    finished_at: str | None = None
    scopes_total: int = 0
    failed_scopes: list[str] = Field(default_factory=list)
    objects_seen: int = 0
    created: int = 0
    resurrected: int = 0
    modified: int = 0
    metadata_updated: int = 0
    unchanged: int = 0
    deleted: int = 0
    versions_written: int = 0
    errors: list[str] = Field(default_factory=list)


class ScanStatusResponse(BaseModel):
    """Scanner state and the report of its most recent cycle."""

    enabled: bool
    running: bool
    scanning: bool
    interval_seconds: float
    scopes: list[str] = Field(default_factory=list)
    cycles_completed: int = 0
    last_report: ScanReportResponse | None = None


class IntegrityResponse(BaseModel):
    """Result of re-hashing every stored version."""

    ok: bool
    corrupted_version_ids: list[int] = Field(default_factory=list)
    checked_at: str
