"""Shared API dependencies: settings, ledger, object source and scanner."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from blobtrail.config import Settings
from blobtrail.ledger.base import VersionLedger
from blobtrail.services.scanner_service import Scanner
from blobtrail.storage.base import ObjectSource


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


async def get_session(request: Request) -> AsyncGenerator[AsyncSession]:
    """Get a database session."""
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        yield session


def get_ledger(request: Request) -> VersionLedger:
    """Get the version ledger from app state."""
    ledger: VersionLedger = request.app.state.ledger
    return ledger


def get_object_source(request: Request) -> ObjectSource:
    """Get the object source from app state."""
    source: ObjectSource = request.app.state.object_source
    return source


def get_scanner(request: Request) -> Scanner:
    """Get the scanner from app state."""
    scanner: Scanner = request.app.state.scanner
    return scanner
