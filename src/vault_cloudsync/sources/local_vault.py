"""Local vault access: listing, reading, writing and deleting vault files."""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from ..sync import path_codec
from ..sync.models import FileListing, FileRecord, listing_from_records
from ..utils.file_utils import FileHelper, calculate_file_hash

logger = logging.getLogger(__name__)


class LocalVault:
    """File-system side of a sync pass, rooted at the vault directory."""

    def __init__(self, base_path: Path, ignore: Iterable[str] = (), include_hidden: bool = False,
                 include_directories: bool = False, log: Optional[logging.Logger] = None):
        """Initialize the local vault.

        Args:
            base_path: Vault root directory
            ignore: Entry names skipped wherever they appear
            include_hidden: Whether dot-files are synchronized
            include_directories: Also list directories as records
            log: Logger to use instead of the module logger
        """
        self.base_path = Path(base_path)
        self.ignore = list(ignore)
        self.include_hidden = include_hidden
        self.include_directories = include_directories
        self.logger = log or logger
        self.files: FileListing = {}
        # path -> (mtime_ns, size, md5)
        self._hash_cache: Dict[str, Tuple[int, int, str]] = {}

    @property
    def vault_name(self) -> str:
        return self.base_path.name

    def resolve(self, name: str) -> Path:
        """Absolute local path for a canonical vault path."""
        relative = path_codec.normalize(name).strip(path_codec.SEPARATOR)
        return self.base_path.joinpath(*relative.split(path_codec.SEPARATOR))

    def _hash(self, file_path: Path, stat: os.stat_result) -> str:
        key = str(file_path)
        cached = self._hash_cache.get(key)
        if cached and cached[0] == stat.st_mtime_ns and cached[1] == stat.st_size:
            return cached[2]
        md5 = calculate_file_hash(file_path)
        self._hash_cache[key] = (stat.st_mtime_ns, stat.st_size, md5)
        return md5

    def _record(self, file_path: Path) -> FileRecord:
        stat = file_path.stat()
        name = path_codec.normalize(str(file_path.relative_to(self.base_path)))
        is_directory = file_path.is_dir()
        return FileRecord(
            name=name,
            local_name=str(file_path),
            remote_name=path_codec.encode(name),
            mime="" if is_directory else FileHelper.guess_mime_type(name),
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            size=0 if is_directory else stat.st_size,
            md5="" if is_directory else self._hash(file_path, stat),
            is_directory=is_directory,
        )

    def list_local(self) -> FileListing:
        """Walk the vault and describe every synchronized entry.

        Returns:
            Listing keyed by canonical path
        """
        self.logger.debug(f"Listing local vault at {self.base_path}")
        records: List[FileRecord] = []

        for root, dirs, files in os.walk(self.base_path):
            root_path = Path(root)
            dirs[:] = sorted(
                d for d in dirs
                if not FileHelper.should_exclude(root_path / d, self.ignore, self.include_hidden)
            )
            if self.include_directories:
                records.extend(self._record(root_path / d) for d in dirs)

            for name in sorted(files):
                file_path = root_path / name
                if FileHelper.should_exclude(file_path, self.ignore, self.include_hidden):
                    continue
                records.append(self._record(file_path))

        self.files = listing_from_records(records)
        self.logger.debug(f"Found {len(self.files)} local entries")
        return self.files

    def read_local(self, name: str) -> bytes:
        return self.resolve(name).read_bytes()

    def write_local(self, name: str, content: bytes, modified: Optional[datetime] = None) -> FileRecord:
        """Write a file, creating parent directories as needed.

        Args:
            name: Canonical vault path
            content: File content
            modified: Timestamp to stamp on the file, typically the remote one

        Returns:
            Record describing the written file
        """
        target = self.resolve(name)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(content)
        if modified is not None:
            ts = modified.timestamp()
            os.utime(target, (ts, ts))
        self.logger.debug(f"Wrote {len(content):,} bytes to {target}")
        return self._record(target)

    def make_directory(self, name: str) -> FileRecord:
        target = self.resolve(name)
        target.mkdir(parents=True, exist_ok=True)
        return self._record(target)

    def delete_local(self, name: str) -> None:
        """Delete a file, or an empty directory."""
        target = self.resolve(name)
        if target.is_dir():
            target.rmdir()
        else:
            target.unlink()
        self._hash_cache.pop(str(target), None)
        self.logger.debug(f"Deleted {target}")
