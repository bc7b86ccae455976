"""Sync pass coordinator: list, plan, execute, remember."""

import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..backends import create_manager
from ..backends.base import CloudManager
from ..config.settings import CloudSyncSettings, ProviderType
from ..errors import ConflictUnresolvableError
from ..sources.local_vault import LocalVault
from ..utils.logging import Notifier, TimedOperation, safe_notify
from .executor import TransferExecutor
from .models import FileListing, FileRecord, SyncOperation, SyncReport
from .reconciler import Reconciler
from .state_cache import SyncStateCache

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Runs complete sync passes between one vault and one provider."""

    def __init__(self, settings: CloudSyncSettings, provider: Optional[ProviderType] = None,
                 manager: Optional[CloudManager] = None, local: Optional[LocalVault] = None,
                 cache: Optional[SyncStateCache] = None, log: Optional[logging.Logger] = None,
                 notify: Optional[Notifier] = None):
        """Initialize the coordinator.

        Args:
            settings: Loaded settings
            provider: Provider to sync, the first enabled one when omitted
            manager: Cloud manager, built from settings when omitted
            local: Local vault, built from settings when omitted
            cache: Sync-state cache, the provider's own cache file when omitted
            log: Logger to use instead of the module logger
            notify: Status line callback shared with the collaborators
        """
        self.settings = settings
        self.provider = provider or settings.enabled_providers[0]
        self.logger = log or logger
        self.notify = notify
        options = settings.sync_options

        self.manager = manager or create_manager(settings, self.provider, log=self.logger, notify=notify)
        self.local = local or LocalVault(
            settings.vault_path,
            ignore=options.sync_ignore,
            include_hidden=options.include_hidden,
            include_directories=options.include_directories,
            log=self.logger,
        )
        self.cache = cache or SyncStateCache(settings.state_file_for(self.provider))
        self.reconciler = Reconciler(options.mtime_tolerance_seconds, log=self.logger)
        self.executor = TransferExecutor(
            self.local,
            self.manager,
            max_workers=options.parallel_transfers,
            retry_attempts=options.retry_attempts,
            retry_delay=options.retry_delay,
            log=self.logger,
            notify=notify,
        )
        self.cancel_event: Optional[asyncio.Event] = None

    def cancel(self) -> None:
        """Stop starting new operations. In-flight operations complete."""
        if self.cancel_event is not None:
            self.cancel_event.set()

    async def _list_both(self) -> Tuple[FileListing, FileListing]:
        loop = asyncio.get_running_loop()
        with TimedOperation(self.logger, "listing"):
            local, remote = await asyncio.gather(
                loop.run_in_executor(None, self.local.list_local),
                loop.run_in_executor(None, self.manager.get_files),
            )
        return local, remote

    async def plan(self) -> List[SyncOperation]:
        """Authenticate, list both sides and compute the plan without applying it.

        Raises:
            AuthError: credentials rejected
            CacheError: the sync-state cache is unreadable
        """
        loop = asyncio.get_running_loop()
        if not self.manager.is_authenticated:
            await loop.run_in_executor(None, self.manager.authenticate)

        local, remote = await self._list_both()
        self.cache.read()
        return self.reconciler.plan(local, remote, self.cache)

    async def run(self) -> SyncReport:
        """Run one full sync pass.

        Listing errors abort the pass before anything is planned. Per-item
        transfer failures are reported and never abort it.

        Returns:
            Report of the executed plan
        """
        self.cancel_event = asyncio.Event()
        safe_notify(self.notify, f"Syncing {self.local.vault_name} with {self.manager.name}", self.logger)

        operations = await self.plan()
        with TimedOperation(self.logger, f"executing {len(operations)} operations"):
            report = await self.executor.execute(operations, self.manager.files, self.cancel_event)

        if report.cancelled:
            self.logger.warning(f"Sync cancelled, {report.cancelled} operations not started")
        else:
            local, remote = await self._list_both()
            self.cache.write(self._agreed_records(local, remote))
            self.manager.mark_synced()

        safe_notify(self.notify, f"Sync finished: {report.summary()}", self.logger)
        return report

    def _agreed_records(self, local: FileListing, remote: FileListing) -> List[FileRecord]:
        """Entries present with the same content on both sides.

        Records whose equality cannot be decided are left out, so the next
        pass treats them as unsynced rather than as agreed.
        """
        agreed = []
        for name, record in local.items():
            other = remote.get(name)
            if other is None:
                continue
            if record.is_directory or other.is_directory:
                if record.is_directory and other.is_directory:
                    agreed.append(record)
                continue
            try:
                if self.reconciler.content_identical(name, record, other):
                    agreed.append(record)
            except ConflictUnresolvableError:
                self.logger.debug(f"Not caching {name}: equality undecidable")
        return agreed


@dataclass
class ProviderResult:
    """Outcome of one provider's pass within a run."""
    provider: ProviderType
    report: Optional[SyncReport] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.report is not None and self.report.ok


class ProviderSyncRunner:
    """Syncs the vault with every enabled provider, one provider after another.

    Each provider keeps its own manager and sync-state cache. A provider whose
    pass fails is reported and the run moves on to the next one.
    """

    def __init__(self, settings: CloudSyncSettings, log: Optional[logging.Logger] = None,
                 notify: Optional[Notifier] = None,
                 coordinators: Optional[List[SyncCoordinator]] = None):
        self.logger = log or logger
        self.notify = notify
        self.coordinators = coordinators or [
            SyncCoordinator(settings, provider, log=self.logger, notify=notify)
            for provider in settings.enabled_providers
        ]
        self._cancelled = False

    def cancel(self) -> None:
        """Cancel the running pass and skip the providers not started yet."""
        self._cancelled = True
        for coordinator in self.coordinators:
            coordinator.cancel()

    async def plan(self) -> List[Tuple[ProviderType, List[SyncOperation]]]:
        """Plan every provider. Errors abort, since nothing has been changed yet."""
        plans = []
        for coordinator in self.coordinators:
            plans.append((coordinator.provider, await coordinator.plan()))
        return plans

    async def run(self) -> List[ProviderResult]:
        results = []
        for coordinator in self.coordinators:
            if self._cancelled:
                self.logger.warning(f"Sync cancelled, {coordinator.provider.value} not started")
                break
            result = ProviderResult(coordinator.provider)
            try:
                result.report = await coordinator.run()
            except Exception as e:
                self.logger.error(f"{coordinator.manager.name} sync failed: {e}")
                safe_notify(self.notify, f"{coordinator.manager.name} sync failed: {e}", self.logger)
                result.error = e
            results.append(result)
        return results
