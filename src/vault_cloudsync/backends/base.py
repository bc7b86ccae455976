"""Contract shared by every cloud backend."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from ..config.settings import CloudSyncSettings
from ..errors import AuthError, ContainerNotFoundError
from ..sync import path_codec
from ..sync.models import FileListing, FileRecord, listing_from_records
from ..utils.logging import Notifier, safe_notify

logger = logging.getLogger(__name__)

# Object names ending with the separator stand for directories
DIRECTORY_MARKER = path_codec.SEPARATOR


class ManagerState(str, Enum):
    OFFLINE = "offline"
    READY = "ready"
    ERROR = "error"


class CloudManager(ABC):
    """Uniform facade over one remote container.

    The reconciler and executor only ever talk to this interface. Subclasses
    implement the ``_list_records`` and object operations; listing retention
    and the first-sync bootstrap are handled here.
    """

    name = "cloud"

    def __init__(self, settings: CloudSyncSettings, vault_name: str,
                 log: Optional[logging.Logger] = None, notify: Optional[Notifier] = None):
        self.settings = settings
        self.vault_name = vault_name
        self.logger = log or logger
        self.notify = notify
        self.files: FileListing = {}
        self.state = ManagerState.OFFLINE
        self.last_sync: Optional[datetime] = None

    @property
    def is_authenticated(self) -> bool:
        return self.state == ManagerState.READY

    def _require_auth(self) -> None:
        if not self.is_authenticated:
            raise AuthError(self.name, "authenticate() must succeed before file operations")

    @abstractmethod
    def authenticate(self) -> None:
        """Validate settings and build the backend client."""

    @abstractmethod
    def _list_records(self) -> List[FileRecord]:
        """Enumerate every object of the container, all pages drained."""

    @abstractmethod
    def read_file(self, record: FileRecord) -> bytes:
        ...

    @abstractmethod
    def write_file(self, record: FileRecord, content: bytes) -> FileRecord:
        """Store content under the record's path and return the stored record."""

    @abstractmethod
    def delete_file(self, record: FileRecord) -> None:
        ...

    @abstractmethod
    def test_connectivity(self) -> Dict[str, Any]:
        """Return ``{'success': bool, 'message': str}`` without raising."""

    def object_name(self, record: FileRecord) -> str:
        """Logical object name of a record; directories carry a trailing separator."""
        name = path_codec.decode(record.remote_name) if record.remote_name else record.name
        if record.is_directory:
            return name.rstrip(DIRECTORY_MARKER) + DIRECTORY_MARKER
        return name

    def ensure_directory(self, record: FileRecord) -> FileRecord:
        """Make a directory exist remotely by storing its empty marker object."""
        self._require_auth()
        return self.write_file(record, b"")

    def get_files(self) -> FileListing:
        """List the container and retain the result.

        A missing container means nothing was synced yet and yields an empty
        listing. Any other error propagates and leaves ``files`` untouched.
        Directory markers are only listed when directories are synchronized;
        then every member also implies its parent directories.

        Returns:
            Listing keyed by canonical path
        """
        self._require_auth()
        try:
            records = self._list_records()
        except ContainerNotFoundError as e:
            self.logger.info(f"{e}; treating remote as empty for first sync")
            records = []

        if self.settings.sync_options.include_directories:
            records = _with_parent_directories(records)
        else:
            records = [record for record in records if not record.is_directory]

        files = listing_from_records(records)
        self.files = files
        self.logger.debug(f"{self.name}: {len(files)} remote files")
        return files

    def mark_synced(self) -> None:
        self.last_sync = datetime.now()

    def _notify(self, message: str) -> None:
        safe_notify(self.notify, message, self.logger)


def directory_record(name: str) -> FileRecord:
    name = name.rstrip(DIRECTORY_MARKER)
    return FileRecord(name=name, remote_name=path_codec.encode(name), is_directory=True)


def _with_parent_directories(records: List[FileRecord]) -> List[FileRecord]:
    """Add the directories implied by member paths, keeping listed markers."""
    listed = {record.name for record in records}
    implied = {}
    for record in records:
        parent = path_codec.parent(record.name)
        while parent and parent not in listed and parent not in implied:
            implied[parent] = directory_record(parent)
            parent = path_codec.parent(parent)
    return [*implied.values(), *records]
