"""Sync engine: path codec, reconciliation, execution and state cache."""

from .executor import TransferExecutor
from .models import (FileListing, FileRecord, OperationKind, OperationOutcome, OutcomeStatus,
                     SyncOperation, SyncReport)
from .reconciler import Reconciler
from .state_cache import SyncStateCache

__all__ = [
    "FileListing",
    "FileRecord",
    "OperationKind",
    "OperationOutcome",
    "OutcomeStatus",
    "SyncOperation",
    "SyncReport",
    "Reconciler",
    "TransferExecutor",
    "SyncStateCache",
]
