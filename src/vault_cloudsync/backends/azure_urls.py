"""Azure Blob Storage address assembly.

Blob names are passed in their logical form and quoted as a single URL
component, so ``notes/a.md`` becomes ``notes%2Fa.md``. The SDK clients
built from these addresses unquote the name again, which keeps the blob
name identical whether it was written through this URL or listed back.
"""

from typing import Optional
from urllib.parse import quote

BLOB_HOST = "blob.core.windows.net"


def _credential_suffix(credential: str, separator: str) -> str:
    token = credential.lstrip('?')
    return f"{separator}{token}" if token else ""


class AzureUrlBuilder:
    """Builds blob and container addresses for one container."""

    def __init__(self, container_name: str):
        self.container_name = container_name

    def account_root(self, account: str) -> str:
        return f"https://{account}.{BLOB_HOST}"

    def blob_url(self, account: str, blob_name: str, credential: str) -> str:
        """Address of a single blob.

        Args:
            account: Storage account name
            blob_name: Logical blob name (canonical path)
            credential: SAS query string, with or without leading ``?``

        Returns:
            Absolute URL
        """
        url = (f"{self.account_root(account)}/{quote(self.container_name, safe='')}"
               f"/{quote(blob_name, safe='')}")
        return url + _credential_suffix(credential, '?')

    def container_url(self, account: str, credential: str, operation: Optional[str] = None) -> str:
        """Address of the container, optionally for a listing request.

        Args:
            account: Storage account name
            credential: SAS query string, with or without leading ``?``
            operation: ``"list"`` to enumerate blobs

        Returns:
            Absolute URL
        """
        url = f"{self.account_root(account)}/{quote(self.container_name, safe='')}"
        if operation == 'list':
            url += '?restype=container&comp=list'
            return url + _credential_suffix(credential, '&')
        return url + _credential_suffix(credential, '?')
