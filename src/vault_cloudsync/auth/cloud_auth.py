"""Cloud storage authentication handling."""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import boto3
from azure.storage.blob import AccountSasPermissions, ResourceTypes, generate_account_sas
from google.cloud import storage
from google.oauth2 import service_account

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

SAS_LIFETIME = timedelta(hours=1)
# Regenerate a little before expiry so a long pass never signs with a dead token
SAS_REFRESH_MARGIN = timedelta(minutes=5)

GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


def mask_secret(secret: Optional[str]) -> str:
    if not secret:
        return "not set"
    if len(secret) <= 8:
        return "***"
    return f"{secret[:4]}...{secret[-4:]}"


class AzureAuth:
    """Supplies the SAS credential appended to every Azure Blob request."""

    def __init__(
        self,
        account_name: str,
        account_key: Optional[str] = None,
        sas_token: Optional[str] = None,
    ):
        """Initialize Azure Blob Storage authentication.

        Args:
            account_name: Storage account name
            account_key: Storage account key, used to generate an account SAS
            sas_token: Pre-issued SAS token, used as-is when given
        """
        self.account_name = account_name
        self.account_key = account_key
        self.sas_token = sas_token.lstrip('?') if sas_token else None
        self._generated_token: Optional[str] = None
        self._expires_on: Optional[datetime] = None

    def validate(self) -> None:
        """Check that the settings can produce a credential."""
        logger.debug(f"Azure account: {self.account_name or 'not set'}, "
                     f"access key: {mask_secret(self.account_key)}")

        if not self.account_name or not self.account_name.strip():
            raise ConfigurationError("azure.account", "Azure Storage account name is required")
        if not self.sas_token and not (self.account_key and self.account_key.strip()):
            raise ConfigurationError("azure.account_key", "Azure Storage access key or SAS token is required")

    def generate_sas_token(self) -> str:
        """Generate an account SAS from the account key.

        Returns:
            SAS query string without a leading ``?``
        """
        logger.debug("Generating Azure SAS token")
        starts_on = datetime.now(timezone.utc)
        expires_on = starts_on + SAS_LIFETIME

        token = generate_account_sas(
            account_name=self.account_name,
            account_key=self.account_key.strip(),
            resource_types=ResourceTypes(service=True, container=True, object=True),
            permission=AccountSasPermissions(read=True, write=True, delete=True, list=True, create=True),
            expiry=expires_on,
            start=starts_on,
        )

        self._generated_token = token
        self._expires_on = expires_on
        return token

    def get_sas_token(self) -> str:
        if self.sas_token:
            return self.sas_token
        if (self._generated_token is None or self._expires_on is None
                or datetime.now(timezone.utc) >= self._expires_on - SAS_REFRESH_MARGIN):
            return self.generate_sas_token()
        return self._generated_token


class AWSAuth:
    """Handle AWS authentication and S3 client creation."""

    def __init__(
        self,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        session_token: Optional[str] = None,
        region: str = "us-east-1",
        endpoint_url: Optional[str] = None
    ):
        """Initialize AWS authentication.

        Args:
            access_key_id: AWS access key ID
            secret_access_key: AWS secret access key
            session_token: AWS session token (for temporary credentials)
            region: AWS region
            endpoint_url: Custom endpoint for S3-compatible services
        """
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.session_token = session_token
        self.region = region
        self.endpoint_url = endpoint_url
        self._s3_client = None

    def get_s3_client(self):
        """Get authenticated S3 client.

        Returns:
            boto3 S3 client
        """
        if self._s3_client is None:
            # Use provided credentials or fall back to default credential chain
            if self.access_key_id and self.secret_access_key:
                self._s3_client = boto3.client(
                    's3',
                    aws_access_key_id=self.access_key_id,
                    aws_secret_access_key=self.secret_access_key,
                    aws_session_token=self.session_token,
                    region_name=self.region,
                    endpoint_url=self.endpoint_url
                )
            else:
                # Use default credential chain (environment, instance profile, etc.)
                self._s3_client = boto3.client('s3', region_name=self.region, endpoint_url=self.endpoint_url)

        return self._s3_client


def normalize_private_key(private_key: str) -> str:
    """Accept a PEM key, a PEM with escaped newlines, or a pasted service account JSON."""
    key = private_key.strip()
    if key.startswith('{'):
        try:
            key = json.loads(key).get('private_key', key)
        except ValueError:
            logger.debug("Private key is not JSON, treating as PEM")
    return key.replace('\\n', '\n')


class GCPAuth:
    """Handle Google service account credentials and storage client creation."""

    def __init__(
        self,
        client_email: Optional[str] = None,
        private_key: Optional[str] = None,
        project: Optional[str] = None,
        credentials_file: Optional[str] = None
    ):
        """Initialize Google Cloud Storage authentication.

        Args:
            client_email: Service account e-mail
            private_key: Service account private key (PEM or key JSON)
            project: Project id, taken from the credentials when omitted
            credentials_file: Service account key file, used instead of the inline key
        """
        self.client_email = client_email
        self.private_key = private_key
        self.project = project
        self.credentials_file = credentials_file
        self._storage_client = None

    def validate(self) -> None:
        """Inline credentials need both the e-mail and the key."""
        logger.debug(f"GCP service account: {self.client_email or 'not set'}, "
                     f"private key: {mask_secret(self.private_key)}")

        if bool(self.client_email) != bool(self.private_key):
            raise ConfigurationError("gcp.private_key", "client_email and private_key must be set together")

    def get_credentials(self):
        """Service account credentials, or None for the application default chain."""
        if self.credentials_file:
            return service_account.Credentials.from_service_account_file(str(self.credentials_file))
        if self.client_email and self.private_key:
            return service_account.Credentials.from_service_account_info({
                'type': 'service_account',
                'client_email': self.client_email,
                'private_key': normalize_private_key(self.private_key),
                'token_uri': GOOGLE_TOKEN_URI,
                'project_id': self.project,
            })
        return None

    def get_storage_client(self) -> storage.Client:
        """Get authenticated storage client.

        Returns:
            google-cloud-storage client
        """
        if self._storage_client is None:
            credentials = self.get_credentials()
            project = self.project or getattr(credentials, 'project_id', None)
            self._storage_client = storage.Client(project=project, credentials=credentials)
        return self._storage_client
