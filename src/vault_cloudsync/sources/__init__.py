"""Local vault source."""

from .local_vault import LocalVault

__all__ = ["LocalVault"]
