"""Application configuration loaded from environment variables and an optional YAML file."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from blobtrail.storage.base import StorageScope

logger = logging.getLogger(__name__)


class AzureAccountSettings(BaseModel):
    """Credentials for one Azure storage account.

    Exactly one authentication method is used, picked in this order:
    connection string, SAS token, managed identity, service principal.
    """

    name: str = Field(min_length=1)
    connection_string: str = ""
    sas_token: str = ""
    use_managed_identity: bool = False
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""

    @property
    def auth_method(self) -> str:
        if self.connection_string:
            return "connection_string"
        if self.sas_token:
            return "sas_token"
        if self.use_managed_identity:
            return "managed_identity"
        if self.tenant_id and self.client_id and self.client_secret:
            return "service_principal"
        return "none"

    @property
    def account_url(self) -> str:
        return f"https://{self.name}.blob.core.windows.net/"


class ScopeSettings(BaseModel):
    """A watched region of an account: containers, prefix and filename patterns."""

    account: str = Field(min_length=1)
    containers: list[str] = Field(default_factory=list)
    prefix: str = ""
    patterns: list[str] = Field(default_factory=lambda: ["*.yaml", "*.yml"])

    def to_scope(self) -> StorageScope:
        # "*" in the container list is the same as listing no container at all.
        containers = () if "*" in self.containers else tuple(self.containers)
        return StorageScope(
            account=self.account,
            containers=containers,
            prefix=self.prefix,
            patterns=tuple(self.patterns),
        )


class Settings(BaseSettings):
    """Blobtrail application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Core
    debug: bool = False
    expose_docs: bool = False
    config_file: Path | None = None

    # Database
    database_url: str = "sqlite+aiosqlite:///data/blobtrail.db"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Scanner
    scan_enabled: bool = True
    scan_interval_seconds: float = Field(default=30.0, gt=0)
    max_concurrent_listings: int = Field(default=4, ge=1)
    max_concurrent_fetches: int = Field(default=8, ge=1)

    # Object store
    azure_accounts: list[AzureAccountSettings] = Field(default_factory=list)
    scopes: list[ScopeSettings] = Field(default_factory=list)

    def storage_scopes(self) -> list[StorageScope]:
        """Return the configured scopes as immutable scanner scopes."""
        return [scope.to_scope() for scope in self.scopes]

    def validate_runtime(self) -> None:
        """Validate that every scope points at a usable account."""
        violations: list[str] = []
        accounts = {account.name: account for account in self.azure_accounts}
        if len(accounts) != len(self.azure_accounts):
            violations.append("azure account names must be unique")
        for account in self.azure_accounts:
            if account.auth_method == "none":
                violations.append(
                    f"account {account.name!r} has no authentication method "
                    "(connection_string, sas_token, use_managed_identity or service principal)"
                )
        for scope in self.scopes:
            if scope.account not in accounts:
                violations.append(f"scope references unknown account {scope.account!r}")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Invalid configuration: {joined}")


def _read_config_file(path: Path) -> dict[str, Any]:
    """Load a YAML config file, expanding ``$VAR`` and ``${VAR}`` references."""
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(os.path.expandvars(raw))
    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Config file {path} must contain a mapping at the top level"
        raise ValueError(msg)
    return data


def load_settings(config_file: Path | None = None) -> Settings:
    """Build settings from the environment, overlaid with a YAML config file if one is set.

    Values from the file take precedence over environment variables.
    """
    base = Settings()
    path = config_file or base.config_file
    if path is None:
        return base

    logger.info("Loading configuration from %s", path)
    data = _read_config_file(path)
    data.setdefault("config_file", path)
    return Settings(**data)
