"""Azure Blob Storage implementation of the object source."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any

from azure.core.exceptions import AzureError
from azure.identity import ClientSecretCredential, DefaultAzureCredential
from azure.storage.blob import BlobServiceClient

from blobtrail.exceptions import InvalidInputError, UpstreamUnavailableError
from blobtrail.storage.base import CanonicalPath, ObjectContent, ObjectInfo, StorageScope

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from blobtrail.config import AzureAccountSettings

logger = logging.getLogger(__name__)


def create_service_client(account: AzureAccountSettings) -> BlobServiceClient:
    """Build a service client for ``account`` using its configured authentication method.

    Raises ValueError if the account has no usable credentials.
    """
    method = account.auth_method
    if method == "connection_string":
        return BlobServiceClient.from_connection_string(account.connection_string)
    if method == "sas_token":
        return BlobServiceClient(
            account_url=account.account_url, credential=account.sas_token.lstrip("?")
        )
    credential: Any
    if method == "managed_identity":
        credential = DefaultAzureCredential()
    elif method == "service_principal":
        credential = ClientSecretCredential(
            tenant_id=account.tenant_id,
            client_id=account.client_id,
            client_secret=account.client_secret,
        )
    else:
        msg = f"No authentication method configured for account {account.name!r}"
        raise ValueError(msg)
    return BlobServiceClient(account_url=account.account_url, credential=credential)


class AzureBlobSource:
    """Object source backed by one or more Azure storage accounts.

    The Azure SDK client is synchronous; every call runs in a worker thread so
    the event loop stays free for API requests while the scanner works.
    """

    def __init__(
        self,
        accounts: Sequence[AzureAccountSettings],
        *,
        clients: Mapping[str, BlobServiceClient] | None = None,
    ) -> None:
        self._accounts = {account.name: account for account in accounts}
        self._clients: dict[str, BlobServiceClient] = dict(clients or {})
        self._clients_lock = threading.Lock()

    def _client(self, account_name: str) -> BlobServiceClient:
        with self._clients_lock:
            client = self._clients.get(account_name)
            if client is None:
                account = self._accounts.get(account_name)
                if account is None:
                    msg = f"Unknown storage account: {account_name!r}"
                    raise InvalidInputError(msg)
                client = create_service_client(account)
                self._clients[account_name] = client
                logger.info(
                    "Azure Blob client initialized for %s (%s)", account_name, account.auth_method
                )
            return client

    # ── Listing ──────────────────────────────────────

    def _containers_to_scan(self, client: BlobServiceClient, scope: StorageScope) -> list[str]:
        if not scope.all_containers:
            return list(scope.containers)
        return [container.name for container in client.list_containers()]

    def _list_sync(self, scope: StorageScope) -> list[ObjectInfo]:
        client = self._client(scope.account)
        objects: list[ObjectInfo] = []
        for container_name in self._containers_to_scan(client, scope):
            container_client = client.get_container_client(container_name)
            for blob in container_client.list_blobs(name_starts_with=scope.prefix or None):
                if not scope.includes(container_name, blob.name):
                    continue
                objects.append(
                    ObjectInfo(
                        path=str(CanonicalPath(scope.account, container_name, blob.name)),
                        change_token=str(blob.etag or ""),
                        last_modified=blob.last_modified,
                        size=blob.size or 0,
                    )
                )
        return objects

    async def list_objects(self, scope: StorageScope) -> list[ObjectInfo]:
        """Enumerate every blob inside ``scope``.

        Any failure, including one container out of many, fails the whole scope so
        that the caller never mistakes a partial listing for a complete one.
        """
        try:
            return await asyncio.to_thread(self._list_sync, scope)
        except AzureError as exc:
            msg = f"Failed to list scope {scope.name}: {exc}"
            raise UpstreamUnavailableError(msg) from exc

    # ── Content ──────────────────────────────────────

    def _fetch_sync(self, canonical: CanonicalPath) -> ObjectContent:
        blob_client = self._client(canonical.account).get_blob_client(
            container=canonical.container, blob=canonical.blob_path
        )
        downloader = blob_client.download_blob()
        data = downloader.readall()
        properties = downloader.properties
        return ObjectContent(
            path=str(canonical),
            data=data,
            change_token=str(properties.etag or ""),
            last_modified=properties.last_modified,
        )

    async def fetch_object(self, path: str) -> ObjectContent:
        """Download the blob at canonical ``path``."""
        canonical = CanonicalPath.parse(path)
        try:
            return await asyncio.to_thread(self._fetch_sync, canonical)
        except AzureError as exc:
            msg = f"Failed to download {path}: {exc}"
            raise UpstreamUnavailableError(msg) from exc

    def _upload_sync(self, canonical: CanonicalPath, data: bytes) -> None:
        blob_client = self._client(canonical.account).get_blob_client(
            container=canonical.container, blob=canonical.blob_path
        )
        blob_client.upload_blob(data, overwrite=True)

    async def upload_object(self, path: str, data: bytes) -> None:
        """Upload ``data`` to canonical ``path``, overwriting the current blob."""
        canonical = CanonicalPath.parse(path)
        try:
            await asyncio.to_thread(self._upload_sync, canonical, data)
        except AzureError as exc:
            msg = f"Failed to upload {path}: {exc}"
            raise UpstreamUnavailableError(msg) from exc
        logger.info("Uploaded %d bytes to %s", len(data), path)
