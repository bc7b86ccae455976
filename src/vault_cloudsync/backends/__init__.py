"""Cloud storage backends sharing the CloudManager contract."""

import logging
from typing import Optional

from ..config.settings import CloudSyncSettings, ProviderType
from ..utils.logging import Notifier
from .aws_s3 import S3Manager
from .azure_blob import AzureBlobManager
from .base import CloudManager, ManagerState
from .gcp_storage import GCSManager

MANAGERS = {
    ProviderType.AZURE_BLOB: AzureBlobManager,
    ProviderType.AWS_S3: S3Manager,
    ProviderType.GCP_STORAGE: GCSManager,
}


def create_manager(settings: CloudSyncSettings, provider: ProviderType, vault_name: Optional[str] = None,
                   log: Optional[logging.Logger] = None,
                   notify: Optional[Notifier] = None) -> CloudManager:
    """Instantiate the backend of one provider."""
    manager_cls = MANAGERS[provider]
    return manager_cls(settings, vault_name or settings.resolved_vault_name, log=log, notify=notify)


__all__ = ["CloudManager", "ManagerState", "AzureBlobManager", "S3Manager", "GCSManager", "create_manager"]
