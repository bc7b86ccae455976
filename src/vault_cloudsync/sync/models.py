"""Records, listings and operations shared by the sync engine and backends."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..errors import TransferError

FileListing = Dict[str, "FileRecord"]


@dataclass
class FileRecord:
    """Canonical description of one file or directory on either side."""
    name: str  # canonical forward-slash path relative to the vault root
    local_name: str = ""
    remote_name: str = ""
    mime: str = ""
    last_modified: Optional[datetime] = None
    size: int = 0
    md5: str = ""
    is_directory: bool = False

    def renamed(self, name: str, local_name: str = "", remote_name: str = "") -> "FileRecord":
        """Copy of this record under a different logical path."""
        return replace(self, name=name, local_name=local_name, remote_name=remote_name)


def listing_from_records(records: Iterable[FileRecord]) -> FileListing:
    """Key records by logical path. A later duplicate replaces an earlier one."""
    return {record.name: record for record in records}


class OperationKind(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    DELETE_LOCAL = "delete_local"
    DELETE_REMOTE = "delete_remote"
    SKIP = "skip"
    CONFLICT = "conflict"


class Side(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class OperationPhase(int, Enum):
    """Execution phases. Every operation of one phase finishes before the next starts."""
    DIRECTORIES = 0
    TRANSFERS = 1
    DELETES = 2
    DIRECTORY_DELETES = 3


@dataclass
class ConflictResolution:
    winner: Side
    conflict_copy_name: str

    @property
    def loser(self) -> Side:
        return Side.REMOTE if self.winner == Side.LOCAL else Side.LOCAL


@dataclass
class SyncOperation:
    """One planned step of a sync pass."""
    kind: OperationKind
    path: str
    local: Optional[FileRecord] = None
    remote: Optional[FileRecord] = None
    reason: str = ""
    resolution: Optional[ConflictResolution] = None

    @property
    def record(self) -> Optional[FileRecord]:
        """The record the operation acts on, preferring the source side."""
        if self.kind in (OperationKind.DOWNLOAD, OperationKind.DELETE_REMOTE):
            return self.remote or self.local
        return self.local or self.remote

    @property
    def is_directory(self) -> bool:
        record = self.record
        return bool(record and record.is_directory)

    @property
    def phase(self) -> OperationPhase:
        if self.kind in (OperationKind.DELETE_LOCAL, OperationKind.DELETE_REMOTE):
            return OperationPhase.DIRECTORY_DELETES if self.is_directory else OperationPhase.DELETES
        if self.is_directory:
            return OperationPhase.DIRECTORIES
        return OperationPhase.TRANSFERS

    def describe(self) -> str:
        text = f"{self.kind.value}: {self.path}"
        if self.reason:
            text += f" ({self.reason})"
        return text


class OutcomeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass
class OperationOutcome:
    operation: SyncOperation
    status: OutcomeStatus
    error: Optional[TransferError] = None


@dataclass
class SyncReport:
    """Per-item results of one executed plan."""
    outcomes: List[OperationOutcome] = field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def _count(self, status: OutcomeStatus) -> int:
        return len([o for o in self.outcomes if o.status == status])

    @property
    def succeeded(self) -> int:
        return self._count(OutcomeStatus.SUCCEEDED)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def cancelled(self) -> int:
        return self._count(OutcomeStatus.CANCELLED)

    @property
    def failures(self) -> List[OperationOutcome]:
        return [o for o in self.outcomes if o.status == OutcomeStatus.FAILED]

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.cancelled == 0

    @property
    def duration(self) -> float:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    def summary(self) -> str:
        text = f"{self.succeeded} succeeded, {self.failed} failed, {self.skipped} skipped"
        if self.cancelled:
            text += f", {self.cancelled} cancelled"
        return text
