"""Tests for the command-line interface."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from vault_cloudsync.cli import cli
from vault_cloudsync.config.settings import CloudSyncSettings, ProviderType
from vault_cloudsync.errors import AuthError
from vault_cloudsync.sync.coordinator import ProviderResult
from vault_cloudsync.sync.models import OperationKind, SyncOperation, SyncReport


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def config_file(tmp_path, azure_settings):
    path = tmp_path / "cloudsync.yaml"
    azure_settings.to_yaml(path)
    return path


class TestInitConfig:
    """Configuration scaffolding."""

    def test_creates_loadable_config(self, runner, tmp_path, vault_dir):
        path = tmp_path / "config" / "cloudsync.yaml"
        result = runner.invoke(cli, ["init-config", "-c", str(path), "-p", "aws_s3", "-v", str(vault_dir)])

        assert result.exit_code == 0
        settings = CloudSyncSettings.from_yaml(path)
        assert settings.aws.enabled
        assert settings.enabled_providers == [ProviderType.AWS_S3]
        assert settings.vault_path == vault_dir.resolve()

    def test_enables_several_providers(self, runner, tmp_path, vault_dir):
        path = tmp_path / "cloudsync.yaml"
        result = runner.invoke(cli, ["init-config", "-c", str(path), "-p", "azure_blob",
                                     "-p", "gcp_storage", "-v", str(vault_dir)])

        assert result.exit_code == 0
        settings = CloudSyncSettings.from_yaml(path)
        assert settings.enabled_providers == [ProviderType.AZURE_BLOB, ProviderType.GCP_STORAGE]


class TestSyncCommand:
    """The sync command's error reporting."""

    def test_auth_error_exits_without_traceback(self, runner, config_file):
        with patch("vault_cloudsync.cli.ProviderSyncRunner") as runner_cls:
            runner_cls.return_value.run = AsyncMock(return_value=[
                ProviderResult(ProviderType.AZURE_BLOB, error=AuthError("Azure", "HTTP 403")),
            ])
            runner_cls.return_value.cancel = MagicMock()
            result = runner.invoke(cli, ["sync", "-c", str(config_file)])

        assert result.exit_code == 1
        assert "Authentication failed for Azure" in result.output
        assert "Traceback" not in result.output

    def test_one_failed_provider_fails_the_run(self, runner, config_file):
        with patch("vault_cloudsync.cli.ProviderSyncRunner") as runner_cls:
            runner_cls.return_value.run = AsyncMock(return_value=[
                ProviderResult(ProviderType.AZURE_BLOB, report=SyncReport()),
                ProviderResult(ProviderType.AWS_S3, error=AuthError("AWS")),
            ])
            runner_cls.return_value.cancel = MagicMock()
            result = runner.invoke(cli, ["sync", "-c", str(config_file)])

        assert result.exit_code == 1
        assert "Sync Results: azure_blob" in result.output
        assert "Authentication failed for AWS" in result.output

    def test_successful_run_exits_zero(self, runner, config_file):
        with patch("vault_cloudsync.cli.ProviderSyncRunner") as runner_cls:
            runner_cls.return_value.run = AsyncMock(return_value=[
                ProviderResult(ProviderType.AZURE_BLOB, report=SyncReport()),
            ])
            runner_cls.return_value.cancel = MagicMock()
            result = runner.invoke(cli, ["sync", "-c", str(config_file)])

        assert result.exit_code == 0

    def test_dry_run_only_plans(self, runner, config_file):
        operations = [SyncOperation(OperationKind.UPLOAD, "a.md", reason="new local")]
        with patch("vault_cloudsync.cli.ProviderSyncRunner") as runner_cls:
            runner_cls.return_value.plan = AsyncMock(return_value=[(ProviderType.AZURE_BLOB, operations)])
            runner_cls.return_value.run = AsyncMock(return_value=[])
            result = runner.invoke(cli, ["sync", "-c", str(config_file), "--dry-run"])

        assert result.exit_code == 0
        assert "a.md" in result.output
        runner_cls.return_value.run.assert_not_called()

    def test_plan_error_exits_without_traceback(self, runner, config_file):
        with patch("vault_cloudsync.cli.ProviderSyncRunner") as runner_cls:
            runner_cls.return_value.plan = AsyncMock(side_effect=AuthError("Azure", "HTTP 403"))
            result = runner.invoke(cli, ["plan", "-c", str(config_file)])

        assert result.exit_code == 1
        assert "Authentication failed for Azure" in result.output


class TestConnectionCommand:
    """Connectivity reporting."""

    def test_failed_connection_exits_nonzero(self, runner, config_file):
        with patch("vault_cloudsync.cli.create_manager") as create:
            create.return_value.name = "Azure"
            create.return_value.test_connectivity.return_value = {'success': False, 'message': "denied"}
            result = runner.invoke(cli, ["test-connection", "-c", str(config_file)])

        assert result.exit_code == 1
        assert "denied" in result.output
        create.assert_called_once()
        assert create.call_args.args[1] == ProviderType.AZURE_BLOB
