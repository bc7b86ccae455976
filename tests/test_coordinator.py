"""End-to-end sync passes against an in-memory backend."""

import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Tuple

import pytest

from vault_cloudsync.backends.base import DIRECTORY_MARKER, CloudManager, ManagerState, directory_record
from vault_cloudsync.config.settings import ProviderType
from vault_cloudsync.errors import AuthError, ContainerNotFoundError, RemoteRequestError
from vault_cloudsync.sync import path_codec
from vault_cloudsync.sync.coordinator import ProviderSyncRunner, SyncCoordinator
from vault_cloudsync.sync.models import FileRecord, OperationKind
from vault_cloudsync.utils.file_utils import md5_hex


class InMemoryManager(CloudManager):
    """Container kept in a dict: object name -> (content, last modified)."""

    name = "memory"

    def __init__(self, settings, vault_name="vault", **kwargs):
        super().__init__(settings, vault_name, **kwargs)
        self.objects: Dict[str, Tuple[bytes, datetime]] = {}
        self.list_error = None
        self.reject_auth = False

    def put(self, name: str, content: bytes) -> None:
        self.objects[name] = (content, datetime.now(timezone.utc))

    def authenticate(self) -> None:
        if self.reject_auth:
            raise AuthError(self.name, "rejected")
        self.state = ManagerState.READY

    def _record(self, name: str) -> FileRecord:
        content, modified = self.objects[name]
        return FileRecord(name=name, remote_name=path_codec.encode(name), last_modified=modified,
                          size=len(content), md5=md5_hex(content))

    def _list_records(self) -> List[FileRecord]:
        if self.list_error:
            raise self.list_error
        return [directory_record(name) if name.endswith(DIRECTORY_MARKER) else self._record(name)
                for name in sorted(self.objects)]

    def read_file(self, record: FileRecord) -> bytes:
        return self.objects[self.object_name(record)][0]

    def write_file(self, record: FileRecord, content: bytes) -> FileRecord:
        name = self.object_name(record)
        self.put(name, content)
        if record.is_directory:
            return directory_record(name)
        return self._record(name)

    def delete_file(self, record: FileRecord) -> None:
        self.objects.pop(self.object_name(record), None)

    def test_connectivity(self) -> Dict[str, Any]:
        return {'success': True, 'message': "ok"}


class HashlessManager(InMemoryManager):
    """Backend that reports no content hashes and can be made to reject writes."""

    def __init__(self, settings, **kwargs):
        super().__init__(settings, **kwargs)
        self.fail_writes = False

    def _record(self, name: str) -> FileRecord:
        record = super()._record(name)
        record.md5 = ""
        return record

    def write_file(self, record: FileRecord, content: bytes) -> FileRecord:
        if self.fail_writes:
            raise RemoteRequestError(f"Write {record.name}", 500)
        return super().write_file(record, content)


@pytest.fixture
def manager(azure_settings) -> InMemoryManager:
    return InMemoryManager(azure_settings)


@pytest.fixture
def coordinator(azure_settings, manager) -> SyncCoordinator:
    return SyncCoordinator(azure_settings, manager=manager)


@pytest.fixture
def directory_settings(azure_settings):
    options = azure_settings.sync_options.model_copy(update={"include_directories": True})
    return azure_settings.model_copy(update={"sync_options": options})


def _write(root: Path, name: str, content: bytes) -> None:
    path = root / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)


def _touch_future(path: Path) -> None:
    future = time.time() + 3600
    os.utime(path, (future, future))


class TestSyncPass:
    """Full passes converge both sides."""

    @pytest.mark.asyncio
    async def test_first_pass_copies_both_ways(self, coordinator, manager, vault_dir):
        _write(vault_dir, "local.md", b"from disk")
        manager.put("remote/note.md", b"from cloud")

        report = await coordinator.run()

        assert report.ok
        assert manager.objects["local.md"][0] == b"from disk"
        assert (vault_dir / "remote" / "note.md").read_bytes() == b"from cloud"
        assert manager.last_sync is not None

    @pytest.mark.asyncio
    async def test_second_pass_only_skips(self, coordinator, manager, vault_dir):
        _write(vault_dir, "a.md", b"a")
        manager.put("b.md", b"b")
        await coordinator.run()

        operations = await coordinator.plan()

        assert operations
        assert all(op.kind == OperationKind.SKIP for op in operations)

    @pytest.mark.asyncio
    async def test_local_delete_propagates(self, coordinator, manager, vault_dir):
        _write(vault_dir, "a.md", b"a")
        await coordinator.run()

        (vault_dir / "a.md").unlink()
        report = await coordinator.run()

        assert report.ok
        assert "a.md" not in manager.objects

    @pytest.mark.asyncio
    async def test_remote_delete_propagates(self, coordinator, manager, vault_dir):
        manager.put("a.md", b"a")
        await coordinator.run()

        manager.objects.clear()
        await coordinator.run()

        assert not (vault_dir / "a.md").exists()

    @pytest.mark.asyncio
    async def test_conflict_keeps_both_versions(self, coordinator, manager, vault_dir):
        _write(vault_dir, "n.md", b"base")
        await coordinator.run()

        _write(vault_dir, "n.md", b"local edit")
        manager.put("n.md", b"remote edit, newer and longer")
        report = await coordinator.run()

        assert report.ok
        assert (vault_dir / "n.md").read_bytes() == b"remote edit, newer and longer"
        copies = [p.name for p in vault_dir.iterdir() if "conflict local" in p.name]
        assert len(copies) == 1
        assert (vault_dir / copies[0]).read_bytes() == b"local edit"
        assert copies[0] in manager.objects

    @pytest.mark.asyncio
    async def test_cache_written_per_provider(self, coordinator, azure_settings, vault_dir):
        _write(vault_dir, "a.md", b"a")
        await coordinator.run()
        assert azure_settings.state_file_for(ProviderType.AZURE_BLOB).exists()
        assert not azure_settings.state_file_for(ProviderType.AWS_S3).exists()
        assert coordinator.cache.has_file("a.md")


class TestHashlessRemote:
    """Remotes that report no content hash."""

    @pytest.mark.asyncio
    async def test_failed_upload_does_not_cache_local_edit(self, azure_settings, vault_dir):
        manager = HashlessManager(azure_settings)
        coordinator = SyncCoordinator(azure_settings, manager=manager)
        _write(vault_dir, "n.md", b"v1")
        await coordinator.run()
        assert manager.objects["n.md"][0] == b"v1"

        _write(vault_dir, "n.md", b"v2, edited locally")
        _touch_future(vault_dir / "n.md")
        manager.fail_writes = True
        report = await coordinator.run()
        assert report.failed
        assert not coordinator.cache.has_file("n.md")

        manager.fail_writes = False
        await coordinator.run()

        assert (vault_dir / "n.md").read_bytes() == b"v2, edited locally"
        assert manager.objects["n.md"][0] == b"v2, edited locally"

    def test_size_mismatch_is_not_agreed(self, coordinator, make_record):
        local = {"n.md": make_record("n.md", md5="aa", size=10)}
        remote = {"n.md": make_record("n.md", md5="", size=4)}
        assert coordinator._agreed_records(local, remote) == []

    def test_undecidable_equality_is_not_agreed(self, coordinator, make_record):
        local = {"n.md": make_record("n.md", md5="aa", size=4, last_modified=None)}
        remote = {"n.md": make_record("n.md", md5="", size=4, last_modified=None)}
        assert coordinator._agreed_records(local, remote) == []

    def test_matching_size_and_time_is_agreed(self, coordinator, make_record):
        local = {"n.md": make_record("n.md", md5="aa", size=4)}
        remote = {"n.md": make_record("n.md", md5="", size=4)}
        assert [r.name for r in coordinator._agreed_records(local, remote)] == ["n.md"]


class TestDirectories:
    """Directory entries when directories are synchronized."""

    @pytest.mark.asyncio
    async def test_local_directory_converges(self, directory_settings, vault_dir):
        manager = InMemoryManager(directory_settings)
        coordinator = SyncCoordinator(directory_settings, manager=manager)
        _write(vault_dir, "folder/a.md", b"a")

        report = await coordinator.run()

        assert report.ok
        assert "folder/" in manager.objects
        operations = await coordinator.plan()
        assert {op.path for op in operations} == {"folder", "folder/a.md"}
        assert all(op.kind == OperationKind.SKIP for op in operations)

    @pytest.mark.asyncio
    async def test_implied_remote_directory_converges(self, directory_settings, vault_dir):
        manager = InMemoryManager(directory_settings)
        coordinator = SyncCoordinator(directory_settings, manager=manager)
        manager.put("docs/b.md", b"b")

        await coordinator.run()

        assert (vault_dir / "docs" / "b.md").read_bytes() == b"b"
        assert coordinator.cache.has_file("docs")
        operations = await coordinator.plan()
        assert all(op.kind == OperationKind.SKIP for op in operations)

    @pytest.mark.asyncio
    async def test_markers_ignored_by_default(self, coordinator, manager, vault_dir):
        manager.put("folder/", b"")
        manager.put("folder/a.md", b"a")

        operations = await coordinator.plan()

        assert [op.path for op in operations] == ["folder/a.md"]

    @pytest.mark.asyncio
    async def test_deleted_local_directory_removes_marker(self, directory_settings, vault_dir):
        manager = InMemoryManager(directory_settings)
        coordinator = SyncCoordinator(directory_settings, manager=manager)
        _write(vault_dir, "folder/a.md", b"a")
        await coordinator.run()

        (vault_dir / "folder" / "a.md").unlink()
        (vault_dir / "folder").rmdir()
        report = await coordinator.run()

        assert report.ok
        assert manager.objects == {}


class TestPassErrors:
    """Errors that abort a pass."""

    @pytest.mark.asyncio
    async def test_auth_error_aborts(self, coordinator, manager):
        manager.reject_auth = True
        with pytest.raises(AuthError):
            await coordinator.run()

    @pytest.mark.asyncio
    async def test_listing_error_aborts_before_planning(self, coordinator, manager, vault_dir,
                                                        azure_settings):
        _write(vault_dir, "a.md", b"a")
        manager.list_error = RemoteRequestError("List blobs", 503)

        with pytest.raises(RemoteRequestError):
            await coordinator.run()

        assert manager.objects == {}
        assert not azure_settings.state_file_for(ProviderType.AZURE_BLOB).exists()

    @pytest.mark.asyncio
    async def test_missing_container_is_first_sync(self, coordinator, manager, vault_dir):
        _write(vault_dir, "a.md", b"a")
        manager.list_error = ContainerNotFoundError("vault")
        operations = await coordinator.plan()
        assert [op.kind for op in operations] == [OperationKind.UPLOAD]


class TestProviderSyncRunner:
    """Sequential passes over several providers."""

    @pytest.fixture
    def managers(self, azure_settings):
        return InMemoryManager(azure_settings), InMemoryManager(azure_settings)

    def _coordinators(self, settings, managers, notify=None):
        return [
            SyncCoordinator(settings, ProviderType.AZURE_BLOB, manager=managers[0], notify=notify),
            SyncCoordinator(settings, ProviderType.AWS_S3, manager=managers[1], notify=notify),
        ]

    @pytest.mark.asyncio
    async def test_failing_provider_does_not_stop_the_next(self, azure_settings, managers, vault_dir):
        _write(vault_dir, "a.md", b"a")
        managers[0].reject_auth = True
        runner = ProviderSyncRunner(azure_settings, coordinators=self._coordinators(azure_settings, managers))

        results = await runner.run()

        assert [r.provider for r in results] == [ProviderType.AZURE_BLOB, ProviderType.AWS_S3]
        assert isinstance(results[0].error, AuthError)
        assert not results[0].ok
        assert results[1].ok
        assert managers[1].objects["a.md"][0] == b"a"
        assert azure_settings.state_file_for(ProviderType.AWS_S3).exists()
        assert not azure_settings.state_file_for(ProviderType.AZURE_BLOB).exists()

    @pytest.mark.asyncio
    async def test_plan_covers_every_provider(self, azure_settings, managers, vault_dir):
        _write(vault_dir, "a.md", b"a")
        managers[1].put("a.md", b"a")
        runner = ProviderSyncRunner(azure_settings, coordinators=self._coordinators(azure_settings, managers))

        plans = await runner.plan()

        assert [provider for provider, _ in plans] == [ProviderType.AZURE_BLOB, ProviderType.AWS_S3]
        assert [op.kind for op in plans[0][1]] == [OperationKind.UPLOAD]
        assert managers[0].objects == {}

    @pytest.mark.asyncio
    async def test_cancel_skips_remaining_providers(self, azure_settings, managers, vault_dir):
        _write(vault_dir, "a.md", b"a")
        runner = None

        def notify(message):
            if message.startswith("Sync finished"):
                runner.cancel()

        runner = ProviderSyncRunner(azure_settings,
                                    coordinators=self._coordinators(azure_settings, managers, notify))
        results = await runner.run()

        assert [r.provider for r in results] == [ProviderType.AZURE_BLOB]
        assert managers[1].objects == {}
