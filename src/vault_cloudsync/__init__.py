"""
Vault Cloud Sync

Bidirectional synchronization of a local notes vault with Azure Blob Storage,
AWS S3 and Google Cloud Storage, with three-way change detection and conflict
copies.
"""

__version__ = "1.0.0"
__author__ = "Vault Cloud Sync"
__description__ = "Synchronize a local notes vault with cloud object storage"

from .config.settings import CloudSyncSettings
from .sync.coordinator import ProviderSyncRunner, SyncCoordinator

__all__ = ["CloudSyncSettings", "SyncCoordinator", "ProviderSyncRunner"]
