"""Configuration settings and models for the sync application."""

import os
from enum import Enum
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator


class ProviderType(str, Enum):
    """Supported remote backends, in the order a run syncs them."""
    AZURE_BLOB = "azure_blob"
    AWS_S3 = "aws_s3"
    GCP_STORAGE = "gcp_storage"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class AzureSettings(BaseModel):
    """Azure Blob Storage account and credential."""
    enabled: bool = False
    account: Optional[str] = None
    account_key: Optional[str] = None
    sas_token: Optional[str] = None  # used as-is when set, otherwise generated from account_key
    container: Optional[str] = None  # derived from the vault name when omitted

    @field_validator('account')
    @classmethod
    def strip_account(cls, v):
        return v.strip() if v else v


class AWSSettings(BaseModel):
    """AWS S3 bucket and credentials."""
    enabled: bool = False
    bucket: Optional[str] = None
    region: str = "us-east-1"
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    session_token: Optional[str] = None
    endpoint_url: Optional[str] = None  # S3-compatible services


class GCPSettings(BaseModel):
    """Google Cloud Storage bucket and service account."""
    enabled: bool = False
    bucket: Optional[str] = None
    project: Optional[str] = None
    client_email: Optional[str] = None
    private_key: Optional[str] = None  # PEM, or the whole service account JSON
    credentials_file: Optional[Path] = None  # service account key file


class SyncOptions(BaseModel):
    """Synchronization options."""
    parallel_transfers: int = Field(default=4, ge=1)
    retry_attempts: int = Field(default=3, ge=0)
    retry_delay: float = Field(default=1.0, ge=0)  # seconds
    sync_ignore: List[str] = Field(default_factory=list)
    include_hidden: bool = False
    include_directories: bool = False
    mtime_tolerance_seconds: float = 2.0
    state_dir: Optional[Path] = None  # defaults to <vault>/.obsidian
    request_timeout: float = 60.0

    @field_validator('sync_ignore', mode='before')
    @classmethod
    def split_ignore_string(cls, v):
        # Accept the comma-separated form used by the plugin settings
        if isinstance(v, str):
            return [item.strip() for item in v.split(',') if item.strip()]
        return v


class CloudSyncSettings(BaseModel):
    """Main configuration class."""
    vault_path: Path
    vault_name: Optional[str] = None
    azure: AzureSettings = Field(default_factory=AzureSettings)
    aws: AWSSettings = Field(default_factory=AWSSettings)
    gcp: GCPSettings = Field(default_factory=GCPSettings)
    sync_options: SyncOptions = Field(default_factory=SyncOptions)
    log_level: LogLevel = LogLevel.INFO
    log_file: Optional[Path] = None

    model_config = {"frozen": True}

    @model_validator(mode='after')
    def validate_provider_settings(self):
        if not self.enabled_providers:
            raise ValueError('at least one of azure, aws or gcp must be enabled')
        if self.azure.enabled and not self.azure.account:
            raise ValueError('azure.account is required for Azure Blob')
        if self.aws.enabled and not self.aws.bucket:
            raise ValueError('aws.bucket is required for AWS S3')
        if self.gcp.enabled and not self.gcp.bucket:
            raise ValueError('gcp.bucket is required for Google Cloud Storage')
        return self

    @property
    def enabled_providers(self) -> List[ProviderType]:
        sections = {
            ProviderType.AZURE_BLOB: self.azure,
            ProviderType.AWS_S3: self.aws,
            ProviderType.GCP_STORAGE: self.gcp,
        }
        return [provider for provider in ProviderType if sections[provider].enabled]

    @property
    def resolved_vault_name(self) -> str:
        return self.vault_name or Path(self.vault_path).name

    def state_file_for(self, provider: ProviderType) -> Path:
        """Sync-state cache file of one provider; every provider keeps its own."""
        state_dir = self.sync_options.state_dir or Path(self.vault_path) / ".obsidian"
        return Path(state_dir) / f"cloudsync-{provider.value}.json"

    @classmethod
    def from_yaml(cls, config_path: Union[str, Path], use_env: bool = True) -> "CloudSyncSettings":
        """Load configuration from YAML file.

        Args:
            config_path: Path to the YAML file
            use_env: Let credential environment variables override the file

        Returns:
            Validated settings
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        if use_env:
            config_data = apply_env_credentials(config_data)

        return cls(**config_data)

    def to_yaml(self, config_path: Union[str, Path]) -> None:
        """Save configuration to YAML file."""
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(self.model_dump(mode='json', exclude_none=True), f, default_flow_style=False, indent=2)


_ENV_CREDENTIALS = {
    ('azure', 'account'): 'AZURE_STORAGE_ACCOUNT',
    ('azure', 'account_key'): 'AZURE_STORAGE_ACCOUNT_KEY',
    ('azure', 'sas_token'): 'AZURE_STORAGE_SAS_TOKEN',
    ('aws', 'access_key_id'): 'AWS_ACCESS_KEY_ID',
    ('aws', 'secret_access_key'): 'AWS_SECRET_ACCESS_KEY',
    ('aws', 'session_token'): 'AWS_SESSION_TOKEN',
    ('gcp', 'client_email'): 'GCP_CLIENT_EMAIL',
    ('gcp', 'private_key'): 'GCP_PRIVATE_KEY',
}


def apply_env_credentials(config_data: dict) -> dict:
    """Overlay credentials found in environment variables onto raw config data."""
    merged = dict(config_data)
    for (section, key), env_name in _ENV_CREDENTIALS.items():
        value = os.getenv(env_name)
        if value:
            section_data = dict(merged.get(section) or {})
            section_data[key] = value
            merged[section] = section_data
    return merged
