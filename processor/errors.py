"""Exceptions raised by the sync core."""
from typing import Optional


class SyncError(Exception):
    """Base class for sync core errors."""


class TransportError(SyncError):
    """Network or HTTP failure while talking to a remote API."""

    def __init__(self, message: str, status_code: Optional[int] = None, url: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class ConfigurationError(SyncError):
    """Required remote-service configuration or credentials are missing."""


class ValidationError(SyncError):
    """Malformed input supplied by a caller."""


class StorageError(SyncError):
    """Cache write that did not persist every record it was given."""
