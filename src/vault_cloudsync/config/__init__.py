"""Configuration management for the sync application."""

from .settings import AWSSettings, AzureSettings, CloudSyncSettings, GCPSettings, ProviderType, SyncOptions

__all__ = ["CloudSyncSettings", "AzureSettings", "AWSSettings", "GCPSettings", "ProviderType", "SyncOptions"]
