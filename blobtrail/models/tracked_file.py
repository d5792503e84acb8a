"""Tracked file model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blobtrail.models.base import Base

if TYPE_CHECKING:
    from blobtrail.models.version import Version


class TrackedFile(Base):
    """Last observed state of one canonical path. Tombstoned, never deleted."""

    __tablename__ = "tracked_files"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    path: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    change_token: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    last_modified: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    versions: Mapped[list[Version]] = relationship(back_populates="file", passive_deletes="all")
