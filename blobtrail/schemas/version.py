"""Version schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class VersionSummary(BaseModel):
    """Version metadata without content, for history listings."""

    id: int
    file_id: int
    path: str
    content_hash: str
    change_type: str
    captured_at: str
    change_token: str = ""
    upstream_modified: str | None = None
    previous_hash: str | None = None
    size: int = Field(default=0, ge=0)


class VersionDetail(VersionSummary):
    """Version with its content decoded for display."""

    content: str


class RestoreResponse(BaseModel):
    """Outcome of pushing a version back to the object store."""

    path: str
    version_id: int
    content_hash: str
    bytes_written: int = Field(ge=0)
    restored_at: str
    message: str
