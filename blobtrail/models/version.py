"""Version ledger model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    DDL,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    LargeBinary,
    String,
    Text,
    event,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blobtrail.models.base import Base

if TYPE_CHECKING:
    from blobtrail.models.tracked_file import TrackedFile


class Version(Base):
    """Immutable snapshot of a tracked file's content."""

    __tablename__ = "versions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    file_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("tracked_files.id", ondelete="RESTRICT"), nullable=False
    )
    content: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    change_type: Mapped[str] = mapped_column(String(16), nullable=False)
    captured_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    change_token: Mapped[str] = mapped_column(Text, nullable=False, default="")
    upstream_modified: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    previous_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    file: Mapped[TrackedFile] = relationship(back_populates="versions")

    __table_args__ = (
        Index("idx_versions_file_captured", "file_id", "captured_at"),
        {"sqlite_autoincrement": True},
    )


# The ledger is append-only: SQLite refuses any rewrite of a stored version.
event.listen(
    Version.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER IF NOT EXISTS versions_no_update BEFORE UPDATE ON versions "
        "BEGIN SELECT RAISE(ABORT, 'versions are append-only'); END"
    ).execute_if(dialect="sqlite"),
)
event.listen(
    Version.__table__,
    "after_create",
    DDL(
        "CREATE TRIGGER IF NOT EXISTS versions_no_delete BEFORE DELETE ON versions "
        "BEGIN SELECT RAISE(ABORT, 'versions are append-only'); END"
    ).execute_if(dialect="sqlite"),
)
