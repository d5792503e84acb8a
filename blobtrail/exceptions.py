"""Application-level exception types.

Convention:
- ``NotFoundError``: unknown canonical path or version id (HTTP 404).
- ``InvalidInputError``: malformed identifiers or requests that make no sense
  for the addressed record (HTTP 400). The message is safe to show to clients.
- ``UpstreamUnavailableError``: the object store failed to enumerate, fetch or
  upload (HTTP 502).
- ``IntegrityViolationError``: a stored version no longer matches its recorded
  hash, or a ledger write would break a ledger invariant (HTTP 500).
- ``PersistenceFailureError``: the ledger database failed (HTTP 503).

The global handlers in ``blobtrail/main.py`` log the full message server-side.
For 500 and 503 responses only a generic detail reaches the client.
"""

from __future__ import annotations


class BlobtrailError(Exception):
    """Base class for all errors raised by the versioning core."""


class NotFoundError(BlobtrailError):
    """Raised when a path or version id does not exist in the ledger."""


class InvalidInputError(BlobtrailError):
    """Raised for malformed identifiers and unsupported requests."""


class UpstreamUnavailableError(BlobtrailError):
    """Raised when the remote object store cannot be reached or refuses a call."""


class IntegrityViolationError(BlobtrailError):
    """Raised when stored content fails verification or a ledger invariant would break."""


class PersistenceFailureError(BlobtrailError):
    """Raised when the ledger database cannot complete an operation."""
