"""Push a historical version back to the object store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from blobtrail.exceptions import IntegrityViolationError, InvalidInputError, NotFoundError
from blobtrail.ledger.base import ChangeType
from blobtrail.services.datetime_service import now_utc

if TYPE_CHECKING:
    from datetime import datetime

    from blobtrail.ledger.base import VersionLedger
    from blobtrail.storage.base import ObjectSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestoreResult:
    path: str
    version_id: int
    content_hash: str
    bytes_written: int
    restored_at: datetime


async def restore(
    ledger: VersionLedger, source: ObjectSource, path: str, version_id: int
) -> RestoreResult:
    """Upload the content of ``version_id`` to ``path``.

    The ledger is left untouched: the next scan cycle observes the uploaded
    content and records it as a new version.
    """
    version = await ledger.get_version(version_id)
    if version is None or version.path != path:
        msg = f"Version {version_id} not found for {path}"
        raise NotFoundError(msg)
    if version.change_type is ChangeType.DELETED:
        msg = f"Version {version_id} is a deletion marker and has no content to restore"
        raise InvalidInputError(msg)
    if not version.verify():
        logger.error("Refusing to restore corrupted version %d of %s", version_id, path)
        msg = f"Version {version_id} content does not match its recorded hash"
        raise IntegrityViolationError(msg)

    await source.upload_object(path, version.content)
    logger.info("Restored %s to version %d", path, version_id)
    return RestoreResult(
        path=path,
        version_id=version_id,
        content_hash=version.content_hash,
        bytes_written=len(version.content),
        restored_at=now_utc(),
    )
