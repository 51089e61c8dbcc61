"""Exception hierarchy shared by stores, the lifecycle manager and the sync engine."""

from datetime import datetime, timezone
from typing import Optional


class SecretSyncError(Exception):
    """Base exception for all secretsync errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.original_error = original_error
        self.timestamp = datetime.now(timezone.utc)


class ConfigError(SecretSyncError):
    """Malformed or missing repository configuration."""

    pass


class AuthError(SecretSyncError):
    """Login or unlock was rejected by a store."""

    pass


class TokenRenewalError(SecretSyncError):
    """A leased token could not be renewed or no valid token is available."""

    pass


class NotFoundError(SecretSyncError):
    """No secret matched the requested path or search."""

    pass


class AmbiguousMatchError(SecretSyncError):
    """More than one item matched where exactly one was expected."""

    def __init__(self, message: str, matches: int = 0, **kwargs):
        super().__init__(message, **kwargs)
        self.matches = matches


class MappingError(SecretSyncError):
    """A native item lacks a field required to build a SecretRecord."""

    def __init__(self, message: str, missing_field: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.missing_field = missing_field


class TransportError(SecretSyncError):
    """Network, HTTP or malformed-response failure talking to a store."""

    pass
