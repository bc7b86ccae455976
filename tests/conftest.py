"""Shared fixtures for the sync tests."""

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from vault_cloudsync.config.settings import AWSSettings, AzureSettings, CloudSyncSettings, GCPSettings
from vault_cloudsync.sync import path_codec
from vault_cloudsync.sync.models import FileRecord

BASE_TIME = datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)
SAS_TOKEN = "sv=2020-04-08&ss=b&srt=sco&sp=rwdlac&sig=test"

CREDENTIAL_ENV_VARS = (
    "AZURE_STORAGE_ACCOUNT",
    "AZURE_STORAGE_ACCOUNT_KEY",
    "AZURE_STORAGE_SAS_TOKEN",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "GCP_CLIENT_EMAIL",
    "GCP_PRIVATE_KEY",
)


@pytest.fixture(autouse=True)
def clean_credential_env(monkeypatch):
    """Keep the developer's real credentials out of every test."""
    for name in CREDENTIAL_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def vault_dir(tmp_path: Path) -> Path:
    path = tmp_path / "My Vault"
    path.mkdir()
    return path


@pytest.fixture
def azure_settings(vault_dir: Path) -> CloudSyncSettings:
    return CloudSyncSettings(
        vault_path=vault_dir,
        azure=AzureSettings(enabled=True, account="testaccount", sas_token=SAS_TOKEN, container="test-container"),
    )


@pytest.fixture
def s3_settings(vault_dir: Path) -> CloudSyncSettings:
    return CloudSyncSettings(
        vault_path=vault_dir,
        vault_name="vault",
        aws=AWSSettings(enabled=True, bucket="notes-bucket", access_key_id="AKIATEST", secret_access_key="secret"),
    )


@pytest.fixture
def gcp_settings(vault_dir: Path) -> CloudSyncSettings:
    return CloudSyncSettings(
        vault_path=vault_dir,
        vault_name="vault",
        gcp=GCPSettings(enabled=True, bucket="notes-bucket", project="notes-project"),
    )


@pytest.fixture
def make_record():
    """Factory for file records with sensible defaults."""

    def _make(name: str, md5: str = "", size: int = 10, minutes: float = 0,
              is_directory: bool = False, last_modified=BASE_TIME) -> FileRecord:
        if last_modified is not None:
            last_modified = last_modified + timedelta(minutes=minutes)
        return FileRecord(
            name=name,
            remote_name=path_codec.encode(name),
            last_modified=last_modified,
            size=0 if is_directory else size,
            md5=md5,
            is_directory=is_directory,
        )

    return _make

