"""Authentication for cloud storage backends."""

from .cloud_auth import AWSAuth, AzureAuth, GCPAuth

__all__ = ["AWSAuth", "AzureAuth", "GCPAuth"]
