"""Diff schemas."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class DiffLineResponse(BaseModel):
    type: Literal["context", "added", "removed"]
    content: str
    old_line_number: int | None = None
    new_line_number: int | None = None


class SplitRowResponse(BaseModel):
    """Side-by-side row. A missing cell is null."""

    left: DiffLineResponse | None = None
    right: DiffLineResponse | None = None


class DiffStatsResponse(BaseModel):
    lines_added: int = Field(default=0, ge=0)
    lines_removed: int = Field(default=0, ge=0)
    lines_changed: int = Field(default=0, ge=0)


class DiffResponse(BaseModel):
    """Diff between two versions with both renderings."""

    path: str
    old_version_id: int
    new_version_id: int
    has_changes: bool
    lines: list[DiffLineResponse] = Field(default_factory=list)
    split: list[SplitRowResponse] = Field(default_factory=list)
    stats: DiffStatsResponse = Field(default_factory=DiffStatsResponse)
    unified_diff: str = ""
