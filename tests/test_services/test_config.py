"""Tests for application configuration."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from blobtrail.config import AzureAccountSettings, ScopeSettings, Settings, load_settings
from blobtrail.storage.base import StorageScope


class TestSettings:
    def test_default_settings(self) -> None:
        s = Settings(_env_file=None)
        assert s.debug is False
        assert s.port == 8080
        assert s.scan_interval_seconds == 30.0
        assert s.scopes == []

    def test_settings_from_fixture(self, test_settings: Settings) -> None:
        assert test_settings.debug is True
        assert test_settings.scan_enabled is False
        assert test_settings.storage_scopes() == [
            StorageScope("acct", ("configs",), "", ("*.yaml", "*.yml"))
        ]

    def test_nested_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SCAN_INTERVAL_SECONDS", "5")
        monkeypatch.setenv("PORT", "9000")
        s = Settings(_env_file=None)
        assert s.scan_interval_seconds == 5.0
        assert s.port == 9000


class TestScopes:
    def test_wildcard_container_means_all(self) -> None:
        scope = ScopeSettings(account="acct", containers=["*"]).to_scope()
        assert scope.all_containers

    def test_patterns_default_to_yaml(self) -> None:
        scope = ScopeSettings(account="acct", containers=["c"]).to_scope()
        assert scope.patterns == ("*.yaml", "*.yml")


class TestAccounts:
    @pytest.mark.parametrize(
        ("kwargs", "method"),
        [
            ({"connection_string": "cs"}, "connection_string"),
            ({"sas_token": "sv=1"}, "sas_token"),
            ({"use_managed_identity": True}, "managed_identity"),
            ({"tenant_id": "t", "client_id": "c", "client_secret": "s"}, "service_principal"),
            ({"tenant_id": "t", "client_id": "c"}, "none"),
            ({}, "none"),
        ],
    )
    def test_auth_method(self, kwargs: dict[str, object], method: str) -> None:
        assert AzureAccountSettings(name="acct", **kwargs).auth_method == method

    def test_connection_string_wins(self) -> None:
        account = AzureAccountSettings(name="acct", connection_string="cs", sas_token="sv=1")
        assert account.auth_method == "connection_string"


class TestValidateRuntime:
    def test_valid(self, test_settings: Settings) -> None:
        test_settings.validate_runtime()

    def test_unknown_account(self) -> None:
        s = Settings(_env_file=None, scopes=[ScopeSettings(account="ghost")])
        with pytest.raises(ValueError, match="unknown account 'ghost'"):
            s.validate_runtime()

    def test_account_without_credentials(self) -> None:
        s = Settings(_env_file=None, azure_accounts=[AzureAccountSettings(name="acct")])
        with pytest.raises(ValueError, match="no authentication method"):
            s.validate_runtime()

    def test_duplicate_account_names(self) -> None:
        account = AzureAccountSettings(name="acct", connection_string="cs")
        s = Settings(_env_file=None, azure_accounts=[account, account])
        with pytest.raises(ValueError, match="unique"):
            s.validate_runtime()


class TestLoadSettings:
    def test_without_file_uses_environment(self) -> None:
        with patch.dict("os.environ", {"DEBUG": "true"}, clear=False):
            s = load_settings()
        assert s.debug is True

    def test_yaml_file_with_env_expansion(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TEST_CONN", "DefaultEndpointsProtocol=https;AccountName=acct")
        config = tmp_path / "blobtrail.yaml"
        config.write_text(
            "scan_interval_seconds: 10\n"
            "azure_accounts:\n"
            "  - name: acct\n"
            "    connection_string: ${TEST_CONN}\n"
            "scopes:\n"
            "  - account: acct\n"
            "    containers: ['*']\n"
            "    prefix: app/\n"
            "    patterns: ['*.json']\n",
            encoding="utf-8",
        )

        s = load_settings(config)

        assert s.config_file == config
        assert s.scan_interval_seconds == 10.0
        assert s.azure_accounts[0].connection_string.startswith("DefaultEndpointsProtocol")
        assert s.storage_scopes() == [StorageScope("acct", (), "app/", ("*.json",))]
        s.validate_runtime()

    def test_file_values_override_environment(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("PORT", "9000")
        config = tmp_path / "blobtrail.yaml"
        config.write_text("port: 9100\n", encoding="utf-8")
        assert load_settings(config).port == 9100

    def test_empty_file(self, tmp_path: Path) -> None:
        config = tmp_path / "empty.yaml"
        config.write_text("", encoding="utf-8")
        assert load_settings(config).config_file == config

    def test_non_mapping_file_is_rejected(self, tmp_path: Path) -> None:
        config = tmp_path / "list.yaml"
        config.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError, match="mapping"):
            load_settings(config)


class TestCliEntry:
    def test_cli_entry_runs_app_factory(self) -> None:
        from blobtrail.main import cli_entry

        settings = Settings(_env_file=None, host="127.0.0.1", port=9999, debug=True)
        with (
            patch("blobtrail.main.load_settings", return_value=settings),
            patch("uvicorn.run") as mock_run,
        ):
            cli_entry()

        mock_run.assert_called_once_with(
            "blobtrail.main:create_app",
            factory=True,
            host="127.0.0.1",
            port=9999,
            reload=True,
        )
