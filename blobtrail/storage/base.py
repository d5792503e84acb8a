"""Object source protocol, watched scopes and canonical path handling."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from blobtrail.exceptions import InvalidInputError

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True)
class CanonicalPath:
    """Globally unique key of a remote object: account, container and blob path."""

    account: str
    container: str
    blob_path: str

    @classmethod
    def parse(cls, value: str) -> CanonicalPath:
        """Split ``account/container/blob/path`` into its parts.

        Raises InvalidInputError when any part is missing.
        """
        parts = value.strip("/").split("/", 2)
        if len(parts) != 3 or not all(parts):
            msg = f"Invalid canonical path: {value!r} (expected account/container/path)"
            raise InvalidInputError(msg)
        return cls(account=parts[0], container=parts[1], blob_path=parts[2])

    def __str__(self) -> str:
        return f"{self.account}/{self.container}/{self.blob_path}"


def matches_patterns(blob_path: str, patterns: tuple[str, ...]) -> bool:
    """Check the file name of ``blob_path`` against glob patterns. No patterns matches all."""
    if not patterns:
        return True
    filename = posixpath.basename(blob_path)
    return any(fnmatchcase(filename, pattern) for pattern in patterns)


@dataclass(frozen=True)
class StorageScope:
    """A configured region of the remote store the scanner is responsible for.

    An empty ``containers`` tuple means every container of the account.
    """

    account: str
    containers: tuple[str, ...] = ()
    prefix: str = ""
    patterns: tuple[str, ...] = field(default_factory=tuple)

    @property
    def all_containers(self) -> bool:
        return not self.containers

    @property
    def name(self) -> str:
        containers = ",".join(self.containers) if self.containers else "*"
        label = f"{self.account}/{containers}"
        if self.prefix:
            label += f"/{self.prefix}"
        return label

    def includes(self, container: str, blob_path: str) -> bool:
        """Return True if an object in ``container`` at ``blob_path`` falls inside this scope."""
        if self.containers and container not in self.containers:
            return False
        if not blob_path.startswith(self.prefix):
            return False
        return matches_patterns(blob_path, self.patterns)

    def covers(self, path: str) -> bool:
        """Return True if the canonical ``path`` would be listed by enumerating this scope."""
        try:
            canonical = CanonicalPath.parse(path)
        except InvalidInputError:
            return False
        if canonical.account != self.account:
            return False
        return self.includes(canonical.container, canonical.blob_path)


@dataclass(frozen=True)
class ObjectInfo:
    """One entry of a scope listing."""

    path: str
    change_token: str
    last_modified: datetime | None = None
    size: int = 0


@dataclass(frozen=True)
class ObjectContent:
    """Fetched bytes of an object together with the metadata observed at fetch time."""

    path: str
    data: bytes
    change_token: str
    last_modified: datetime | None = None


@runtime_checkable
class ObjectSource(Protocol):
    """Protocol for remote object stores watched by the scanner.

    Every method raises UpstreamUnavailableError when the store fails.
    """

    async def list_objects(self, scope: StorageScope) -> list[ObjectInfo]:
        """Enumerate every object inside ``scope``."""
        ...

    async def fetch_object(self, path: str) -> ObjectContent:
        """Download the object at canonical ``path``."""
        ...

    async def upload_object(self, path: str, data: bytes) -> None:
        """Write ``data`` to canonical ``path``, replacing any existing object."""
        ...
