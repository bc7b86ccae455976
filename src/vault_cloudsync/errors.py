"""Exception types raised by the sync core and its backends."""

from typing import Optional


class CloudSyncError(Exception):
    """Base exception for all sync errors."""
    pass


class ConfigurationError(CloudSyncError):
    """Invalid or missing settings, detected before any network I/O."""

    def __init__(self, setting: str, details: Optional[str] = None):
        self.setting = setting
        message = f"Invalid configuration for {setting}"
        if details:
            message += f": {details}"
        super().__init__(message)


class AuthError(CloudSyncError):
    """Credential or authentication failure. Fatal to the whole pass."""

    def __init__(self, provider: str, details: Optional[str] = None):
        self.provider = provider
        message = f"Authentication failed for {provider}"
        if details:
            message += f": {details}"
        super().__init__(message)


class RemoteRequestError(CloudSyncError):
    """A backend request returned a non-success status."""

    def __init__(self, operation: str, status_code: int, details: Optional[str] = None):
        self.operation = operation
        self.status_code = status_code
        message = f"{operation} failed with HTTP {status_code}"
        if details:
            message += f": {details}"
        super().__init__(message)


class ContainerNotFoundError(CloudSyncError):
    """The remote container does not exist yet (first sync)."""

    def __init__(self, container: str):
        self.container = container
        super().__init__(f"Container not found: {container}")


class TransferError(CloudSyncError):
    """A single planned operation failed.

    Carries the record the operation was working on and the underlying cause,
    so the batch can report it without aborting.
    """

    def __init__(self, path: str, cause: BaseException, record=None):
        self.path = path
        self.cause = cause
        self.record = record
        super().__init__(f"Transfer failed for {path}: {cause}")


class ConflictUnresolvableError(CloudSyncError):
    """Two records cannot be compared: no hashes and no usable timestamps."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Cannot decide whether {path} differs: content hashes and timestamps unavailable")


class CacheError(CloudSyncError):
    """The sync-state cache could not be read or written."""

    def __init__(self, operation: str, details: Optional[str] = None):
        self.operation = operation
        message = f"Cache {operation} failed"
        if details:
            message += f": {details}"
        super().__init__(message)
