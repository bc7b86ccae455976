"""Apply a planned operation list against the local vault and a cloud manager."""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from itertools import groupby
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

import requests
from azure.core.exceptions import ServiceRequestError, ServiceResponseError
from botocore.exceptions import ConnectTimeoutError, EndpointConnectionError, ReadTimeoutError

from ..errors import AuthError, TransferError
from ..utils.logging import Notifier, safe_notify
from . import path_codec
from .models import (FileListing, FileRecord, OperationKind, OperationOutcome, OutcomeStatus, Side,
                     SyncOperation, SyncReport)

if TYPE_CHECKING:
    from ..backends.base import CloudManager
    from ..sources.local_vault import LocalVault

logger = logging.getLogger(__name__)

# Connection failures and timeouts of every backend's transport
RETRYABLE_ERRORS = (
    requests.ConnectionError,
    requests.Timeout,
    EndpointConnectionError,
    ConnectTimeoutError,
    ReadTimeoutError,
    ServiceRequestError,
    ServiceResponseError,
)


class TransferExecutor:
    """Runs operations phase by phase on a bounded worker pool.

    Phases run strictly one after another. Inside a phase, operations run
    concurrently, except that two operations on the same path never overlap.
    Per-item failures are collected in the report and never stop the batch.
    """

    def __init__(self, local: "LocalVault", manager: "CloudManager", max_workers: int = 4,
                 retry_attempts: int = 3, retry_delay: float = 1.0,
                 log: Optional[logging.Logger] = None, notify: Optional[Notifier] = None):
        """Initialize the executor.

        Args:
            local: Local vault collaborator
            manager: Authenticated cloud manager
            max_workers: Size of the transfer thread pool
            retry_attempts: Extra attempts for transient network failures
            retry_delay: Base delay in seconds, multiplied by the attempt number
            log: Logger to use instead of the module logger
            notify: Status line callback
        """
        self.local = local
        self.manager = manager
        self.max_workers = max(1, max_workers)
        self.retry_attempts = max(0, retry_attempts)
        self.retry_delay = retry_delay
        self.logger = log or logger
        self.notify = notify

    async def execute(self, operations: List[SyncOperation], listing: FileListing,
                      cancel_event: Optional[asyncio.Event] = None) -> SyncReport:
        """Execute a plan.

        Args:
            operations: Ordered plan as produced by the reconciler
            listing: Remote-view listing, updated in place as items succeed
            cancel_event: Once set, items that have not started are cancelled

        Returns:
            Report with one outcome per operation, in input order
        """
        report = SyncReport(started_at=datetime.now())
        outcomes: List[Optional[OperationOutcome]] = [None] * len(operations)
        path_locks: Dict[str, asyncio.Lock] = {}
        semaphore = asyncio.Semaphore(self.max_workers)
        loop = asyncio.get_running_loop()

        indexed = list(enumerate(operations))
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            for phase, group in groupby(indexed, key=lambda item: item[1].phase):
                group = list(group)
                self.logger.debug(f"Running phase {phase.name} with {len(group)} operations")

                async def run(index: int, op: SyncOperation):
                    lock = path_locks.setdefault(op.path, asyncio.Lock())
                    async with lock, semaphore:
                        outcomes[index] = await self._run_one(loop, pool, op, listing, cancel_event)

                await asyncio.gather(*(run(index, op) for index, op in group))

        report.outcomes = outcomes
        report.finished_at = datetime.now()
        self.logger.info(f"Execution finished: {report.summary()}")
        return report

    async def _run_one(self, loop, pool, op: SyncOperation, listing: FileListing,
                       cancel_event: Optional[asyncio.Event]) -> OperationOutcome:
        if cancel_event is not None and cancel_event.is_set():
            return OperationOutcome(op, OutcomeStatus.CANCELLED)

        if op.kind == OperationKind.SKIP:
            return OperationOutcome(op, OutcomeStatus.SKIPPED)

        try:
            stored = await loop.run_in_executor(pool, self._with_retry, op)
        except Exception as e:
            error = TransferError(op.path, e, op.record)
            self.logger.error(str(error))
            safe_notify(self.notify, f"Failed to {op.kind.value} {op.path}", self.logger)
            return OperationOutcome(op, OutcomeStatus.FAILED, error)

        # Listing updates happen on the event loop thread only
        for record in stored:
            listing[record.name] = record
        if op.kind == OperationKind.DELETE_REMOTE:
            listing.pop(op.path, None)

        self.logger.info(f"Completed {op.describe()}")
        return OperationOutcome(op, OutcomeStatus.SUCCEEDED)

    def _with_retry(self, op: SyncOperation) -> List[FileRecord]:
        attempt = 0
        while True:
            try:
                return self._apply(op)
            except AuthError:
                raise
            except RETRYABLE_ERRORS as e:
                attempt += 1
                if attempt > self.retry_attempts:
                    raise
                delay = self.retry_delay * attempt
                self.logger.warning(f"Transient error on {op.path} ({e}), "
                                    f"retry {attempt}/{self.retry_attempts} in {delay:.1f}s")
                time.sleep(delay)

    def _apply(self, op: SyncOperation) -> List[FileRecord]:
        """Perform one operation. Returns remote records to add to the listing."""
        handlers: Dict[OperationKind, Callable[[SyncOperation], List[FileRecord]]] = {
            OperationKind.UPLOAD: self._upload,
            OperationKind.DOWNLOAD: self._download,
            OperationKind.DELETE_LOCAL: self._delete_local,
            OperationKind.DELETE_REMOTE: self._delete_remote,
            OperationKind.CONFLICT: self._resolve_conflict,
        }
        return handlers[op.kind](op)

    def _upload(self, op: SyncOperation) -> List[FileRecord]:
        if op.local.is_directory:
            return [self.manager.ensure_directory(op.local)]
        content = self.local.read_local(op.path)
        return [self.manager.write_file(op.local, content)]

    def _download(self, op: SyncOperation) -> List[FileRecord]:
        if op.remote.is_directory:
            self.local.make_directory(op.path)
            return []
        content = self.manager.read_file(op.remote)
        self.local.write_local(op.path, content, modified=op.remote.last_modified)
        return []

    def _delete_local(self, op: SyncOperation) -> List[FileRecord]:
        self.local.delete_local(op.path)
        return []

    def _delete_remote(self, op: SyncOperation) -> List[FileRecord]:
        self.manager.delete_file(op.remote)
        return []

    def _resolve_conflict(self, op: SyncOperation) -> List[FileRecord]:
        """Keep the losing copy under its conflict name on both sides, then copy the winner over it."""
        resolution = op.resolution
        copy_name = resolution.conflict_copy_name
        stored: List[FileRecord] = []

        if resolution.loser == Side.LOCAL:
            loser = op.local
            loser_content = self.local.read_local(op.path)
        else:
            loser = op.remote
            loser_content = self.manager.read_file(op.remote)

        self.local.write_local(copy_name, loser_content, modified=loser.last_modified)
        copy_record = loser.renamed(copy_name, remote_name=path_codec.encode(copy_name))
        stored.append(self.manager.write_file(copy_record, loser_content))

        if resolution.winner == Side.LOCAL:
            content = self.local.read_local(op.path)
            stored.append(self.manager.write_file(op.local, content))
        else:
            content = self.manager.read_file(op.remote)
            self.local.write_local(op.path, content, modified=op.remote.last_modified)

        self.logger.info(f"Conflict on {op.path}: kept {resolution.loser.value} copy as {copy_name}")
        return stored
