"""Domain models for secret synchronization."""

from .repo import RepoType, SyncDirection
from .secret_record import PASSWORD_KEY, USERNAME_KEY, Credential, SecretRecord
from .sync_report import PathResult, SyncOutcome, SyncReport

__all__ = [
    "RepoType",
    "SyncDirection",
    "SecretRecord",
    "Credential",
    "USERNAME_KEY",
    "PASSWORD_KEY",
    "PathResult",
    "SyncOutcome",
    "SyncReport",
]
