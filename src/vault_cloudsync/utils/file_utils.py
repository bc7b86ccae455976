"""File utility functions."""

import hashlib
import mimetypes
import os
from pathlib import Path
from typing import Iterable

DEFAULT_MIME_TYPE = "application/octet-stream"

# Obsidian keeps its own configuration here; it never leaves the machine
ALWAYS_IGNORED = (".obsidian",)


class FileHelper:
    """Helper class for file operations."""

    @staticmethod
    def guess_mime_type(file_path: str) -> str:
        mime_type = mimetypes.guess_type(file_path)[0]
        if mime_type is None and file_path.lower().endswith('.md'):
            return "text/markdown"
        return mime_type or DEFAULT_MIME_TYPE

    @staticmethod
    def format_file_size(size_bytes: int) -> str:
        """Format file size in human readable format.

        Args:
            size_bytes: Size in bytes

        Returns:
            Formatted size string
        """
        if size_bytes == 0:
            return "0 B"

        size_names = ["B", "KB", "MB", "GB", "TB", "PB"]
        i = 0
        size = float(size_bytes)

        while size >= 1024 and i < len(size_names) - 1:
            size /= 1024.0
            i += 1

        return f"{size:.1f} {size_names[i]}"

    @staticmethod
    def is_hidden_file(file_path: Path) -> bool:
        """Check if a file is hidden.

        Args:
            file_path: Path to check

        Returns:
            True if file is hidden
        """
        # On Windows, check file attributes
        if os.name == 'nt':
            try:
                attrs = os.stat(str(file_path)).st_file_attributes
                if attrs & 0x02:  # FILE_ATTRIBUTE_HIDDEN
                    return True
            except (AttributeError, OSError):
                pass

        return file_path.name.startswith('.')

    @staticmethod
    def is_system_file(file_path: Path) -> bool:
        """Check if a file is a system file.

        Args:
            file_path: Path to check

        Returns:
            True if file is a system file
        """
        system_names = {'thumbs.db', 'desktop.ini', '.ds_store'}
        system_suffixes = ('.tmp', '.temp', '.lock', '.pid')

        file_name_lower = file_path.name.lower()

        if file_name_lower in system_names:
            return True

        if file_name_lower.endswith(system_suffixes):
            return True

        # Office temp files
        if file_name_lower.startswith('~$'):
            return True

        return False

    @staticmethod
    def should_exclude(file_path: Path, ignore: Iterable[str] = (),
                       include_hidden: bool = False) -> bool:
        """Check if a vault entry should be left out of the sync.

        Args:
            file_path: Path to check
            ignore: Entry names to skip wherever they appear
            include_hidden: Whether to include hidden files

        Returns:
            True if the entry should be excluded
        """
        if file_path.name in ALWAYS_IGNORED or file_path.name in set(ignore):
            return True

        if not include_hidden and FileHelper.is_hidden_file(file_path):
            return True

        return FileHelper.is_system_file(file_path)


def calculate_file_hash(file_path: Path, chunk_size: int = 8192) -> str:
    """Calculate MD5 hash of a file.

    Args:
        file_path: Path to the file
        chunk_size: Size of chunks to read

    Returns:
        MD5 hash as hex string
    """
    hash_md5 = hashlib.md5()

    with open(file_path, 'rb') as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            hash_md5.update(chunk)

    return hash_md5.hexdigest()


def md5_hex(content: bytes) -> str:
    return hashlib.md5(content).hexdigest()
