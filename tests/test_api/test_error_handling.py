"""Tests for how API endpoints map service failures to HTTP responses."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import OperationalError

from blobtrail.exceptions import (
    IntegrityViolationError,
    InvalidInputError,
    NotFoundError,
    PersistenceFailureError,
    UpstreamUnavailableError,
)
from blobtrail.ledger.sql import SqlVersionLedger
from blobtrail.main import create_app
from tests.conftest import create_test_client, make_path
from tests.fakes import InMemoryObjectSource

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from httpx import AsyncClient

    from blobtrail.config import Settings

PATH = make_path("app/settings.yaml")


@pytest.fixture
async def client(
    test_settings: Settings, source: InMemoryObjectSource
) -> AsyncGenerator[AsyncClient]:
    async with create_test_client(test_settings, source) as ac:
        yield ac


async def _tracked_versions(client: AsyncClient, source: InMemoryObjectSource) -> list[int]:
    """Create, then delete PATH. Returns version ids newest first."""
    source.put(PATH, "a: 1\n")
    await client.post("/api/scan")
    source.remove(PATH)
    await client.post("/api/scan")
    resp = await client.get(f"/api/files/{PATH}/versions")
    return [v["id"] for v in resp.json()]


class TestInvalidIdentifiers:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["abc", "0", "-3", "1.5", "99999999999999999999999"])
    async def test_malformed_version_id_is_400(self, client: AsyncClient, raw: str) -> None:
        resp = await client.get(f"/api/files/{PATH}/versions/{raw}")
        assert resp.status_code == 400
        assert "version id" in resp.json()["detail"].lower()

    @pytest.mark.asyncio
    async def test_malformed_diff_id_is_400(self, client: AsyncClient) -> None:
        resp = await client.get(f"/api/files/{PATH}/diff/1/abc")
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_malformed_restore_id_is_400(
        self, client: AsyncClient, source: InMemoryObjectSource
    ) -> None:
        resp = await client.post(f"/api/files/{PATH}/restore/x")
        assert resp.status_code == 400
        assert source.uploads == []

    @pytest.mark.asyncio
    async def test_unknown_version_is_404(self, client: AsyncClient) -> None:
        resp = await client.get(f"/api/files/{PATH}/versions/999")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_oversized_ids_are_400_on_every_route(
        self, client: AsyncClient, source: InMemoryObjectSource
    ) -> None:
        newest, _ = await _tracked_versions(client, source)
        huge = "99999999999999999999999"
        resp = await client.get(f"/api/files/{PATH}/diff/{newest}/{huge}")
        assert resp.status_code == 400
        resp = await client.post(f"/api/files/{PATH}/restore/{huge}")
        assert resp.status_code == 400
        assert source.uploads == []

    @pytest.mark.asyncio
    async def test_diff_with_unknown_version_is_404(
        self, client: AsyncClient, source: InMemoryObjectSource
    ) -> None:
        newest, _ = await _tracked_versions(client, source)
        resp = await client.get(f"/api/files/{PATH}/diff/{newest}/{newest + 50}")
        assert resp.status_code == 404


class TestRestoreErrors:
    @pytest.mark.asyncio
    async def test_deletion_marker_is_400(
        self, client: AsyncClient, source: InMemoryObjectSource
    ) -> None:
        deleted_id, _ = await _tracked_versions(client, source)
        resp = await client.post(f"/api/files/{PATH}/restore/{deleted_id}")
        assert resp.status_code == 400
        assert source.uploads == []

    @pytest.mark.asyncio
    async def test_upload_failure_is_502(
        self, client: AsyncClient, source: InMemoryObjectSource
    ) -> None:
        _, created_id = await _tracked_versions(client, source)
        source.fail_uploads = True

        resp = await client.post(f"/api/files/{PATH}/restore/{created_id}")

        assert resp.status_code == 502
        assert resp.json()["detail"] == "Object store unavailable"

    @pytest.mark.asyncio
    async def test_integrity_violation_is_500_with_generic_detail(
        self, client: AsyncClient, source: InMemoryObjectSource
    ) -> None:
        _, created_id = await _tracked_versions(client, source)
        with patch.object(
            SqlVersionLedger,
            "get_version",
            AsyncMock(side_effect=IntegrityViolationError("hash mismatch for version 1")),
        ):
            resp = await client.post(f"/api/files/{PATH}/restore/{created_id}")

        assert resp.status_code == 500
        assert "hash mismatch" not in resp.json()["detail"]
        assert source.uploads == []


class TestPersistenceErrors:
    @pytest.mark.asyncio
    async def test_persistence_failure_is_503(self, client: AsyncClient) -> None:
        with patch.object(
            SqlVersionLedger,
            "list_files",
            AsyncMock(side_effect=PersistenceFailureError("disk I/O error")),
        ):
            resp = await client.get("/api/files")

        assert resp.status_code == 503
        assert resp.json()["detail"] == "Database temporarily unavailable"

    @pytest.mark.asyncio
    async def test_operational_error_is_503(self, client: AsyncClient) -> None:
        error = OperationalError("SELECT 1", {}, Exception("database is locked"))
        with patch.object(SqlVersionLedger, "get_file", AsyncMock(side_effect=error)):
            resp = await client.get(f"/api/files/{PATH}")

        assert resp.status_code == 503


class TestScanFailures:
    @pytest.mark.asyncio
    async def test_failed_scope_degrades_health(
        self, client: AsyncClient, source: InMemoryObjectSource
    ) -> None:
        source.failing_scopes.add("acct/configs")
        await client.post("/api/scan")

        data = (await client.get("/api/health")).json()

        assert data["status"] == "degraded"
        assert data["database"] == "ok"
        assert data["last_scan_failed_scopes"] == ["acct/configs"]

    @pytest.mark.asyncio
    async def test_failed_scope_is_reported_and_nothing_is_deleted(
        self, client: AsyncClient, source: InMemoryObjectSource
    ) -> None:
        source.put(PATH, "a: 1\n")
        await client.post("/api/scan")
        source.remove(PATH)
        source.failing_scopes.add("acct/configs")

        resp = await client.post("/api/scan")

        assert resp.status_code == 200
        report = resp.json()
        assert report["failed_scopes"] == ["acct/configs"]
        assert report["deleted"] == 0
        file_resp = await client.get(f"/api/files/{PATH}")
        assert file_resp.json()["is_deleted"] is False

    @pytest.mark.asyncio
    async def test_failed_fetch_is_reported_as_error(
        self, client: AsyncClient, source: InMemoryObjectSource
    ) -> None:
        source.put(PATH, "a: 1\n")
        source.failing_fetches.add(PATH)

        report = (await client.post("/api/scan")).json()

        assert report["created"] == 0
        assert len(report["errors"]) == 1
        assert PATH in report["errors"][0]
        resp = await client.get(f"/api/files/{PATH}")
        assert resp.status_code == 404


class TestRegisteredHandlers:
    def test_request_validation_uses_framework_default(self, test_settings: Settings) -> None:
        app = create_app(test_settings, object_source=InMemoryObjectSource())
        assert app.exception_handlers[RequestValidationError] is (
            request_validation_exception_handler
        )

    @pytest.mark.parametrize(
        "exc_type",
        [
            NotFoundError,
            InvalidInputError,
            UpstreamUnavailableError,
            IntegrityViolationError,
            PersistenceFailureError,
            OperationalError,
        ],
    )
    def test_domain_errors_have_handlers(
        self, test_settings: Settings, exc_type: type[Exception]
    ) -> None:
        app = create_app(test_settings, object_source=InMemoryObjectSource())
        assert exc_type in app.exception_handlers
