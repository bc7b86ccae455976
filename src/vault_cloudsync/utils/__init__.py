"""Utility functions and helpers."""

from .file_utils import FileHelper, calculate_file_hash
from .logging import TimedOperation, get_logger, setup_logging

__all__ = ["setup_logging", "get_logger", "TimedOperation", "FileHelper", "calculate_file_hash"]
