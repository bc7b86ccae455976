"""Google Cloud Storage backend. Like S3, each vault lives under its own key prefix."""

import base64
import binascii
import logging
from typing import Any, Dict, List, Optional

from google.api_core.exceptions import Forbidden, GoogleAPIError, NotFound, Unauthorized
from google.auth.exceptions import GoogleAuthError

from ..auth.cloud_auth import GCPAuth
from ..config.settings import CloudSyncSettings
from ..errors import AuthError, ConfigurationError, ContainerNotFoundError
from ..sync import path_codec
from ..sync.models import FileRecord
from ..utils.file_utils import DEFAULT_MIME_TYPE, md5_hex
from ..utils.logging import Notifier
from .base import DIRECTORY_MARKER, CloudManager, ManagerState, directory_record

logger = logging.getLogger(__name__)


def _md5_from_hash(value: Optional[str]) -> str:
    """GCS reports md5Hash base64 encoded; composite objects have none."""
    if not value:
        return ""
    try:
        return base64.b64decode(value).hex()
    except (binascii.Error, ValueError):
        return ""


class GCSManager(CloudManager):
    """Cloud Storage bucket holding vaults under ``<vault>/`` prefixes."""

    name = "GCP"

    def __init__(self, settings: CloudSyncSettings, vault_name: str, auth: Optional[GCPAuth] = None,
                 log: Optional[logging.Logger] = None, notify: Optional[Notifier] = None):
        super().__init__(settings, vault_name, log=log or logger, notify=notify)
        gcp = settings.gcp
        self.bucket_name = (gcp.bucket or "").strip()
        self.prefix = path_codec.normalize(vault_name).strip(path_codec.SEPARATOR)
        self.auth = auth or GCPAuth(
            client_email=gcp.client_email,
            private_key=gcp.private_key,
            project=gcp.project,
            credentials_file=gcp.credentials_file,
        )
        self.timeout = settings.sync_options.request_timeout
        self._bucket = None
        self.logger.debug(f"GCP manager initialized for gs://{self.bucket_name}/{self.prefix}/")

    def _key(self, record: FileRecord) -> str:
        return f"{self.prefix}/{self.object_name(record).lstrip(path_codec.SEPARATOR)}"

    def _name_from_key(self, key: str) -> str:
        prefix = f"{self.prefix}/"
        return key[len(prefix):] if key.startswith(prefix) else key

    def authenticate(self) -> None:
        self.logger.debug("GCP authentication")
        try:
            if not self.bucket_name:
                raise ConfigurationError("gcp.bucket", "GCP bucket name is required")
            self.auth.validate()
            bucket = self.auth.get_storage_client().bucket(self.bucket_name)
            bucket.reload(timeout=self.timeout)
        except NotFound:
            # Listing reports the bootstrap condition, nothing to create here
            self.logger.info(f"Bucket {self.bucket_name} not found, remote treated as empty")
        except (ConfigurationError, GoogleAuthError, Forbidden, Unauthorized) as e:
            self.state = ManagerState.ERROR
            raise AuthError(self.name, str(e)) from e
        except Exception:
            self.state = ManagerState.ERROR
            raise
        self._bucket = self.auth.get_storage_client().bucket(self.bucket_name)
        self.state = ManagerState.READY
        self.logger.info(f"GCP authenticated for gs://{self.bucket_name}/{self.prefix}/")

    def _list_records(self) -> List[FileRecord]:
        records: List[FileRecord] = []
        blobs = self.auth.get_storage_client().list_blobs(self.bucket_name, prefix=f"{self.prefix}/",
                                                          timeout=self.timeout)
        try:
            for page in blobs.pages:
                for blob in page:
                    name = self._name_from_key(blob.name)
                    if blob.name.endswith(DIRECTORY_MARKER):
                        if name:
                            records.append(directory_record(name))
                        continue
                    records.append(FileRecord(
                        name=name,
                        remote_name=path_codec.encode(name),
                        mime=blob.content_type or "",
                        last_modified=blob.updated,
                        size=blob.size or 0,
                        md5=_md5_from_hash(blob.md5_hash),
                    ))
        except NotFound as e:
            raise ContainerNotFoundError(self.bucket_name) from e
        return records

    def read_file(self, record: FileRecord) -> bytes:
        self._require_auth()
        return self._bucket.blob(self._key(record)).download_as_bytes(timeout=self.timeout)

    def write_file(self, record: FileRecord, content: bytes) -> FileRecord:
        self._require_auth()
        md5 = md5_hex(content)
        mime = record.mime or DEFAULT_MIME_TYPE
        blob = self._bucket.blob(self._key(record))
        blob.md5_hash = base64.b64encode(bytes.fromhex(md5)).decode('ascii')
        if record.last_modified:
            blob.metadata = {'source-modified-time': record.last_modified.isoformat()}
        blob.upload_from_string(content, content_type=mime, timeout=self.timeout)

        if record.is_directory:
            return directory_record(record.name)
        return FileRecord(
            name=record.name,
            local_name=record.local_name,
            remote_name=path_codec.encode(record.name),
            mime=mime,
            last_modified=blob.updated or record.last_modified,
            size=len(content),
            md5=md5,
        )

    def delete_file(self, record: FileRecord) -> None:
        self._require_auth()
        try:
            self._bucket.blob(self._key(record)).delete(timeout=self.timeout)
        except NotFound:
            self.logger.debug(f"{record.name} already absent from GCP")

    def test_connectivity(self) -> Dict[str, Any]:
        try:
            self.auth.validate()
            self.auth.get_storage_client().bucket(self.bucket_name).reload(timeout=self.timeout)
            return {'success': True, 'message': "Successfully connected to Google Cloud Storage"}
        except NotFound:
            return {'success': False, 'message': f"Bucket {self.bucket_name} does not exist"}
        except (Forbidden, Unauthorized):
            return {'success': False,
                    'message': "Permission denied. Please verify the service account and its bucket role"}
        except (GoogleAPIError, GoogleAuthError, ConfigurationError) as e:
            self.logger.error(f"GCP connectivity test failed: {e}")
            return {'success': False, 'message': f"GCP connection failed: {e}"}
