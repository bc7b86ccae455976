"""Remembered state of the last completed sync pass."""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, Optional, Set

from ..errors import CacheError
from .models import FileRecord

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """What a file looked like when both sides last agreed on it."""
    md5: str
    utc_timestamp: Optional[str] = None  # ISO format timestamp


class SyncStateCache:
    """Per-provider JSON file mapping vault paths to their last synced hash."""

    def __init__(self, cache_file: Path):
        """Initialize the cache.

        Args:
            cache_file: Path to the JSON cache file
        """
        self.cache_file = Path(cache_file)
        self.last_sync: Optional[datetime] = None
        self._entries: Dict[str, CacheEntry] = {}

    def read(self) -> None:
        """Load the cache from disk. A missing file means no previous sync.

        Raises:
            CacheError: the file exists but cannot be parsed
        """
        if not self.cache_file.exists():
            logger.debug(f"No cache file at {self.cache_file}, starting with empty cache")
            self._entries = {}
            self.last_sync = None
            return

        try:
            with open(self.cache_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            last_sync = data.get('last_sync')
            self.last_sync = datetime.fromisoformat(last_sync) if last_sync else None
            self._entries = {
                path: CacheEntry(**entry) for path, entry in data.get('file_cache', {}).items()
            }
        except (OSError, ValueError, TypeError, AttributeError) as e:
            raise CacheError('read', f"{self.cache_file}: {e}") from e

        logger.debug(f"Cache loaded with {len(self._entries)} entries")

    def write(self, files: Iterable[FileRecord]) -> None:
        """Replace the cache with the given listing and save it.

        Args:
            files: Records both sides agree on after the pass
        """
        self._entries = {
            record.name: CacheEntry(
                md5=record.md5,
                utc_timestamp=record.last_modified.isoformat() if record.last_modified else None,
            )
            for record in files
        }
        self.last_sync = datetime.now()

        data = {
            'last_sync': self.last_sync.isoformat(),
            'file_cache': {path: asdict(entry) for path, entry in self._entries.items()},
        }
        try:
            self.cache_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.cache_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise CacheError('write', f"{self.cache_file}: {e}") from e

        logger.debug(f"Cache updated with {len(self._entries)} entries")

    def has_file(self, path: str) -> bool:
        return path in self._entries

    def get_md5(self, path: str) -> Optional[str]:
        entry = self._entries.get(path)
        return entry.md5 if entry else None

    def tracked_files(self) -> Set[str]:
        return set(self._entries.keys())

    def __len__(self) -> int:
        return len(self._entries)
