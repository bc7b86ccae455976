"""AWS S3 backend. Each vault lives under its own key prefix in the bucket."""

import logging
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError

from ..auth.cloud_auth import AWSAuth
from ..config.settings import CloudSyncSettings
from ..errors import AuthError, ConfigurationError, ContainerNotFoundError
from ..sync import path_codec
from ..sync.models import FileRecord
from ..utils.file_utils import DEFAULT_MIME_TYPE, md5_hex
from ..utils.logging import Notifier
from .base import DIRECTORY_MARKER, CloudManager, ManagerState, directory_record

logger = logging.getLogger(__name__)

AUTH_ERROR_CODES = {'AccessDenied', 'InvalidAccessKeyId', 'SignatureDoesNotMatch', 'ExpiredToken', '403'}
MISSING_BUCKET_CODES = {'NoSuchBucket', '404'}


def _error_code(error: ClientError) -> str:
    return error.response.get('Error', {}).get('Code', '')


def _md5_from_etag(etag: str) -> str:
    """Single-part uploads carry the content MD5 as ETag; multipart ETags do not."""
    etag = (etag or '').strip('"')
    if '-' in etag or len(etag) != 32:
        return ""
    return etag.lower()


class S3Manager(CloudManager):
    """S3 bucket holding vaults under ``<vault>/`` prefixes."""

    name = "AWS"

    def __init__(self, settings: CloudSyncSettings, vault_name: str, auth: Optional[AWSAuth] = None,
                 log: Optional[logging.Logger] = None, notify: Optional[Notifier] = None):
        super().__init__(settings, vault_name, log=log or logger, notify=notify)
        aws = settings.aws
        self.bucket = (aws.bucket or "").strip()
        self.prefix = path_codec.normalize(vault_name).strip(path_codec.SEPARATOR)
        self.auth = auth or AWSAuth(
            access_key_id=aws.access_key_id,
            secret_access_key=aws.secret_access_key,
            session_token=aws.session_token,
            region=aws.region,
            endpoint_url=aws.endpoint_url,
        )
        self._client = None
        self.logger.debug(f"AWS manager initialized for s3://{self.bucket}/{self.prefix}/")

    def _key(self, record: FileRecord) -> str:
        # directory markers keep their trailing separator
        return f"{self.prefix}/{self.object_name(record).lstrip(path_codec.SEPARATOR)}"

    def _name_from_key(self, key: str) -> str:
        prefix = f"{self.prefix}/"
        return key[len(prefix):] if key.startswith(prefix) else key

    def authenticate(self) -> None:
        self.logger.debug("AWS authentication")
        try:
            if not self.bucket:
                raise ConfigurationError("aws.bucket", "AWS bucket name is required")
            client = self.auth.get_s3_client()
            client.head_bucket(Bucket=self.bucket)
        except ConfigurationError as e:
            self.state = ManagerState.ERROR
            raise AuthError(self.name, str(e)) from e
        except NoCredentialsError as e:
            self.state = ManagerState.ERROR
            raise AuthError(self.name, str(e)) from e
        except ClientError as e:
            code = _error_code(e)
            if code in MISSING_BUCKET_CODES:
                # Listing reports the bootstrap condition, nothing to create here
                self.logger.info(f"Bucket {self.bucket} not found, remote treated as empty")
            elif code in AUTH_ERROR_CODES:
                self.state = ManagerState.ERROR
                raise AuthError(self.name, code) from e
            else:
                self.state = ManagerState.ERROR
                raise
        self._client = self.auth.get_s3_client()
        self.state = ManagerState.READY
        self.logger.info(f"AWS authenticated for s3://{self.bucket}/{self.prefix}/")

    def _list_records(self) -> List[FileRecord]:
        paginator = self._client.get_paginator('list_objects_v2')
        records: List[FileRecord] = []
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=f"{self.prefix}/"):
                for item in page.get('Contents', []):
                    key = item['Key']
                    name = self._name_from_key(key)
                    if key.endswith(DIRECTORY_MARKER):
                        if name:
                            records.append(directory_record(name))
                        continue
                    records.append(FileRecord(
                        name=name,
                        remote_name=path_codec.encode(name),
                        last_modified=item.get('LastModified'),
                        size=item.get('Size', 0),
                        md5=_md5_from_etag(item.get('ETag', '')),
                    ))
        except ClientError as e:
            if _error_code(e) in MISSING_BUCKET_CODES:
                raise ContainerNotFoundError(self.bucket) from e
            raise
        return records

    def read_file(self, record: FileRecord) -> bytes:
        self._require_auth()
        response = self._client.get_object(Bucket=self.bucket, Key=self._key(record))
        return response['Body'].read()

    def write_file(self, record: FileRecord, content: bytes) -> FileRecord:
        self._require_auth()
        mime = record.mime or DEFAULT_MIME_TYPE
        metadata = {}
        if record.last_modified:
            metadata['source-modified-time'] = record.last_modified.isoformat()
        self._client.put_object(
            Bucket=self.bucket,
            Key=self._key(record),
            Body=content,
            ContentType=mime,
            Metadata=metadata,
        )
        if record.is_directory:
            return directory_record(record.name)
        head = self._client.head_object(Bucket=self.bucket, Key=self._key(record))
        return FileRecord(
            name=record.name,
            local_name=record.local_name,
            remote_name=path_codec.encode(record.name),
            mime=mime,
            last_modified=head.get('LastModified', record.last_modified),
            size=len(content),
            md5=md5_hex(content),
        )

    def delete_file(self, record: FileRecord) -> None:
        self._require_auth()
        self._client.delete_object(Bucket=self.bucket, Key=self._key(record))

    def test_connectivity(self) -> Dict[str, Any]:
        try:
            self.auth.get_s3_client().head_bucket(Bucket=self.bucket)
            return {'success': True, 'message': "Successfully connected to AWS S3"}
        except ClientError as e:
            if _error_code(e) in MISSING_BUCKET_CODES:
                return {'success': False, 'message': f"Bucket {self.bucket} does not exist"}
            return {'success': False, 'message': f"AWS connection failed: {e}"}
        except BotoCoreError as e:
            self.logger.error(f"AWS connectivity test failed: {e}")
            return {'success': False, 'message': f"AWS connection failed: {e}"}
