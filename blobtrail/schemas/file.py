"""Tracked file schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class TrackedFileResponse(BaseModel):
    """Current ledger state of one canonical path."""

    id: int
    path: str
    change_token: str
    content_hash: str
    last_modified: str | None = None
    is_deleted: bool = False


class TrackedFileSummary(TrackedFileResponse):
    """Tracked file with aggregates derived from its versions."""

    version_count: int = Field(default=0, ge=0)
    latest_change_type: str | None = None
    latest_change_at: str | None = None
