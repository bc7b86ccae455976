"""Azure Blob Storage backend on the azure-storage-blob SDK with SAS addressing."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from azure.core.exceptions import (AzureError, ClientAuthenticationError, HttpResponseError,
                                   ResourceExistsError, ResourceNotFoundError)
from azure.storage.blob import BlobClient, BlobProperties, ContainerClient, ContentSettings

from ..auth.cloud_auth import AzureAuth
from ..config.settings import CloudSyncSettings
from ..errors import AuthError, ConfigurationError, ContainerNotFoundError, RemoteRequestError
from ..sync import path_codec
from ..sync.models import FileRecord
from ..utils.file_utils import DEFAULT_MIME_TYPE, md5_hex
from ..utils.logging import Notifier
from .azure_urls import AzureUrlBuilder
from .base import DIRECTORY_MARKER, CloudManager, ManagerState, directory_record

logger = logging.getLogger(__name__)

AUTH_FAILURE_CODES = (401, 403)
CONTAINER_NOT_FOUND = "ContainerNotFound"


def _is_missing_container(error: ResourceNotFoundError) -> bool:
    return getattr(error, 'error_code', None) == CONTAINER_NOT_FOUND


class AzureBlobManager(CloudManager):
    """Azure Blob Storage container holding one vault."""

    name = "Azure"

    def __init__(self, settings: CloudSyncSettings, vault_name: str,
                 log: Optional[logging.Logger] = None, notify: Optional[Notifier] = None):
        """Initialize the Azure backend.

        Args:
            settings: Sync settings, ``settings.azure`` holds the account
            vault_name: Vault name, used for the container name unless one is configured
            log: Logger to use instead of the module logger
            notify: Notification collaborator
        """
        super().__init__(settings, vault_name, log=log or logger, notify=notify)
        azure = settings.azure
        self.account = (azure.account or "").strip()
        self.container_name = azure.container or path_codec.container_name_for(vault_name)
        self.urls = AzureUrlBuilder(self.container_name)
        self.auth = AzureAuth(self.account, azure.account_key, azure.sas_token)
        self.timeout = settings.sync_options.request_timeout
        self.logger.debug(f"Azure manager initialized for container: {self.container_name}")

    def _sas(self) -> str:
        return self.auth.get_sas_token()

    def _container_client(self) -> ContainerClient:
        return ContainerClient.from_container_url(self.urls.container_url(self.account, self._sas()),
                                                  connection_timeout=self.timeout)

    def _blob_client(self, record: FileRecord) -> BlobClient:
        # Upload and list both address blobs by the logical object name
        url = self.urls.blob_url(self.account, self.object_name(record), self._sas())
        return BlobClient.from_blob_url(url, connection_timeout=self.timeout)

    @contextmanager
    def _request(self, operation: str):
        """Translate SDK failures into the sync error types."""
        try:
            yield
        except ClientAuthenticationError as e:
            raise AuthError(self.name, f"{operation}: {e.reason or e}") from e
        except HttpResponseError as e:
            if e.status_code in AUTH_FAILURE_CODES:
                raise AuthError(self.name, f"{operation}: HTTP {e.status_code}") from e
            raise RemoteRequestError(operation, e.status_code or 0, getattr(e, 'error_code', None)) from e

    def authenticate(self) -> None:
        """Validate credentials and make sure the container exists.

        A missing container is created; the first listing will then be empty.
        """
        self.logger.debug("Azure authentication")
        try:
            self.auth.validate()
            self._ensure_container()
        except ConfigurationError as e:
            self.state = ManagerState.ERROR
            raise AuthError(self.name, str(e)) from e
        except Exception:
            self.state = ManagerState.ERROR
            raise
        self.state = ManagerState.READY
        self.logger.info(f"Azure authenticated for {self.account}/{self.container_name}")

    def _ensure_container(self) -> None:
        container = self._container_client()
        with self._request("Check container"):
            try:
                container.get_container_properties()
                return
            except ResourceNotFoundError as e:
                if not _is_missing_container(e):
                    raise

            self.logger.debug("Container not found, creating new container")
            try:
                container.create_container()
            except ResourceExistsError:
                self.logger.debug("Container created concurrently by another client")
        self.logger.info(f"New Azure container {self.container_name} created, will perform fresh sync")
        self._notify(f"Created container {self.container_name}")

    def _record_from_blob(self, blob: BlobProperties) -> FileRecord:
        if blob.name.endswith(DIRECTORY_MARKER):
            return directory_record(path_codec.normalize(blob.name))

        name = path_codec.normalize(blob.name)
        content_settings = blob.content_settings
        md5 = content_settings.content_md5 if content_settings else None
        return FileRecord(
            name=name,
            remote_name=path_codec.encode(name),
            mime=(content_settings.content_type if content_settings else None) or "",
            last_modified=blob.last_modified,
            size=blob.size or 0,
            md5=bytes(md5).hex() if md5 else "",
        )

    def _list_records(self) -> List[FileRecord]:
        records: List[FileRecord] = []
        self.logger.debug(f"Listing {self.urls.container_url(self.account, '', 'list')}")
        with self._request("List blobs"):
            try:
                for page in self._container_client().list_blobs().by_page():
                    for blob in page:
                        if getattr(blob, 'deleted', False):
                            continue
                        records.append(self._record_from_blob(blob))
            except ResourceNotFoundError as e:
                if _is_missing_container(e):
                    raise ContainerNotFoundError(self.container_name) from e
                raise
        return records

    def read_file(self, record: FileRecord) -> bytes:
        self._require_auth()
        with self._request(f"Read {record.name}"):
            return self._blob_client(record).download_blob().readall()

    def write_file(self, record: FileRecord, content: bytes) -> FileRecord:
        self._require_auth()
        md5 = md5_hex(content)
        mime = record.mime or DEFAULT_MIME_TYPE
        with self._request(f"Write {record.name}"):
            result = self._blob_client(record).upload_blob(
                content,
                blob_type="BlockBlob",
                overwrite=True,
                content_settings=ContentSettings(content_type=mime, content_md5=bytearray.fromhex(md5)),
            )

        if record.is_directory:
            return directory_record(record.name)
        return FileRecord(
            name=record.name,
            local_name=record.local_name,
            remote_name=path_codec.encode(record.name),
            mime=mime,
            last_modified=result.get('last_modified') or record.last_modified,
            size=len(content),
            md5=md5,
        )

    def delete_file(self, record: FileRecord) -> None:
        self._require_auth()
        with self._request(f"Delete {record.name}"):
            try:
                self._blob_client(record).delete_blob()
            except ResourceNotFoundError:
                self.logger.debug(f"{record.name} already absent from Azure")

    def test_connectivity(self) -> Dict[str, Any]:
        try:
            self.auth.validate()
            self._container_client().get_container_properties()
            return {'success': True, 'message': "Successfully connected to Azure Storage"}
        except ResourceNotFoundError as e:
            if _is_missing_container(e):
                return {'success': True,
                        'message': "Connected to Azure Storage (container will be created during sync)"}
            return {'success': False, 'message': f"HTTP status: {e.status_code} ({e.error_code})"}
        except ClientAuthenticationError:
            return {'success': False,
                    'message': "Permission denied. Please verify the storage account key or SAS token"}
        except HttpResponseError as e:
            if e.status_code in AUTH_FAILURE_CODES:
                return {'success': False,
                        'message': "Permission denied. Please verify the storage account key or SAS token"}
            return {'success': False, 'message': f"HTTP status: {e.status_code}"}
        except (AzureError, ConfigurationError) as e:
            self.logger.error(f"Azure connectivity test failed: {e}")
            return {'success': False, 'message': f"Azure connection failed: {e}"}
