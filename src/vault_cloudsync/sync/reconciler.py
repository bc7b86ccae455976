"""Diff a local and a remote listing into an ordered operation plan.

Planning is pure and synchronous: it never touches the network or the disk,
and the same inputs always produce the same plan.

Without a sync-state cache the two listings are compared directly: files
missing on one side are copied over, files present on both sides with
different content are conflicts. With the cache of the previous pass the
comparison becomes three-way, which lets deletions and one-sided edits be
told apart from new files and real conflicts.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from ..errors import ConflictUnresolvableError
from . import path_codec
from .models import (ConflictResolution, FileListing, FileRecord, OperationKind, OperationPhase,
                     Side, SyncOperation)
from .state_cache import SyncStateCache

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _timestamp(record: FileRecord) -> datetime:
    ts = record.last_modified
    if ts is None:
        return _OLDEST
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


def _sort_key(op: SyncOperation):
    phase = op.phase
    depth = path_codec.depth(op.path)
    if phase in (OperationPhase.DELETES, OperationPhase.DIRECTORY_DELETES):
        # children before parents
        return (phase, -depth, op.path)
    return (phase, depth if phase == OperationPhase.DIRECTORIES else 0, op.path)


class Reconciler:
    """Computes the operations that converge a local vault and a container."""

    def __init__(self, mtime_tolerance_seconds: float = 2.0, log: Optional[logging.Logger] = None):
        """Initialize the reconciler.

        Args:
            mtime_tolerance_seconds: Timestamp slack used when content hashes are missing
            log: Logger to use instead of the module logger
        """
        self.mtime_tolerance_seconds = mtime_tolerance_seconds
        self.logger = log or logger

    def content_identical(self, path: str, local: FileRecord, remote: FileRecord) -> bool:
        """Decide whether two records hold the same content.

        Hashes and sizes decide when both hashes are known. Otherwise equal
        sizes plus timestamps within the tolerance count as identical.

        Raises:
            ConflictUnresolvableError: sizes match but hashes and timestamps are unavailable
        """
        if local.md5 and remote.md5:
            return local.md5 == remote.md5 and local.size == remote.size

        if local.size != remote.size:
            return False

        if local.last_modified is None or remote.last_modified is None:
            raise ConflictUnresolvableError(path)

        delta = abs((_timestamp(local) - _timestamp(remote)).total_seconds())
        return delta <= self.mtime_tolerance_seconds

    def resolve_conflict(self, path: str, local: FileRecord, remote: FileRecord) -> ConflictResolution:
        """Pick the surviving copy: newest, then largest, then remote."""
        local_key = (_timestamp(local), local.size)
        remote_key = (_timestamp(remote), remote.size)
        winner = Side.LOCAL if local_key > remote_key else Side.REMOTE
        loser_record = remote if winner == Side.LOCAL else local
        loser_side = Side.REMOTE if winner == Side.LOCAL else Side.LOCAL
        copy_name = path_codec.conflict_copy_name(path, loser_side.value, loser_record.md5)
        return ConflictResolution(winner=winner, conflict_copy_name=copy_name)

    def plan(self, local: FileListing, remote: FileListing,
             cache: Optional[SyncStateCache] = None) -> List[SyncOperation]:
        """Build the ordered operation plan for one pass.

        Args:
            local: Local listing keyed by canonical path
            remote: Remote listing keyed by canonical path
            cache: State of the previous pass, enables deletion detection

        Returns:
            Operations, directory creations first and deletions last
        """
        operations = []
        for path in sorted(set(local) | set(remote)):
            operations.append(self._decide(path, local.get(path), remote.get(path), cache))

        operations.sort(key=_sort_key)

        counts = {}
        for op in operations:
            counts[op.kind.value] = counts.get(op.kind.value, 0) + 1
        self.logger.info(f"Planned {len(operations)} operations: {counts}")
        return operations

    def _decide(self, path: str, local: Optional[FileRecord], remote: Optional[FileRecord],
                cache: Optional[SyncStateCache]) -> SyncOperation:
        if local is not None and remote is None:
            return self._local_only(path, local, cache)
        if remote is not None and local is None:
            return self._remote_only(path, remote, cache)
        return self._both(path, local, remote, cache)

    def _local_only(self, path: str, local: FileRecord, cache: Optional[SyncStateCache]) -> SyncOperation:
        if cache is not None and cache.has_file(path):
            cached_md5 = cache.get_md5(path)
            if local.is_directory or (cached_md5 and cached_md5 == local.md5):
                self.logger.debug(f"Deleted remotely, deleting locally: {path}")
                return SyncOperation(OperationKind.DELETE_LOCAL, path, local=local,
                                     reason="deleted remotely")
            self.logger.debug(f"Deleted remotely but modified locally, re-uploading: {path}")
            return SyncOperation(OperationKind.UPLOAD, path, local=local, reason="modified locally")
        self.logger.debug(f"New local entry, uploading: {path}")
        return SyncOperation(OperationKind.UPLOAD, path, local=local, reason="new local")

    def _remote_only(self, path: str, remote: FileRecord, cache: Optional[SyncStateCache]) -> SyncOperation:
        if cache is not None and cache.has_file(path):
            cached_md5 = cache.get_md5(path)
            if remote.is_directory or not cached_md5 or cached_md5 == remote.md5:
                self.logger.debug(f"Deleted locally, removing from remote: {path}")
                return SyncOperation(OperationKind.DELETE_REMOTE, path, remote=remote,
                                     reason="deleted locally")
            self.logger.debug(f"Deleted locally but modified remotely, downloading: {path}")
            return SyncOperation(OperationKind.DOWNLOAD, path, remote=remote, reason="modified remotely")
        self.logger.debug(f"New remote entry, downloading: {path}")
        return SyncOperation(OperationKind.DOWNLOAD, path, remote=remote, reason="new remote")

    def _both(self, path: str, local: FileRecord, remote: FileRecord,
              cache: Optional[SyncStateCache]) -> SyncOperation:
        if local.is_directory or remote.is_directory:
            if local.is_directory and remote.is_directory:
                return SyncOperation(OperationKind.SKIP, path, local=local, remote=remote,
                                     reason="directory exists")
            self.logger.warning(f"{path} is a directory on one side and a file on the other")
            return SyncOperation(OperationKind.SKIP, path, local=local, remote=remote,
                                 reason="type mismatch")

        try:
            identical = self.content_identical(path, local, remote)
        except ConflictUnresolvableError as e:
            self.logger.warning(str(e))
            return SyncOperation(OperationKind.SKIP, path, local=local, remote=remote,
                                 reason="unresolvable")

        if identical:
            return SyncOperation(OperationKind.SKIP, path, local=local, remote=remote, reason="unchanged")

        cached_md5 = cache.get_md5(path) if cache is not None else None
        if cached_md5 and remote.md5 and cached_md5 == remote.md5:
            self.logger.debug(f"Local changes detected, uploading: {path}")
            return SyncOperation(OperationKind.UPLOAD, path, local=local, remote=remote,
                                 reason="modified locally")
        if cached_md5 and local.md5 and cached_md5 == local.md5:
            self.logger.debug(f"Remote changes detected, downloading: {path}")
            return SyncOperation(OperationKind.DOWNLOAD, path, local=local, remote=remote,
                                 reason="modified remotely")

        resolution = self.resolve_conflict(path, local, remote)
        self.logger.debug(f"Conflict on {path}, {resolution.winner.value} wins, "
                          f"other copy kept as {resolution.conflict_copy_name}")
        return SyncOperation(OperationKind.CONFLICT, path, local=local, remote=remote,
                             reason=f"{resolution.winner.value} newer", resolution=resolution)
