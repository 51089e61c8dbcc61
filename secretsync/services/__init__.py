"""Secret store integrations, token lifecycle and synchronization services."""

from .bitwarden_client import BitwardenStore
from .bw_serve import BitwardenServeProcess
from .mapper import BitwardenItemMapper, Mapper, VaultSecretMapper
from .secret_store import SecretStore
from .sync_service import SyncEngine
from .token_lifecycle import (
    CredentialLifecycleManager,
    LifecycleEvent,
    LifecycleEventType,
    LifecycleState,
    TokenAuthenticator,
)
from .vault_client import VaultStore, VaultTokenAuth

__all__ = [
    "BitwardenStore",
    "BitwardenServeProcess",
    "Mapper",
    "BitwardenItemMapper",
    "VaultSecretMapper",
    "SecretStore",
    "SyncEngine",
    "CredentialLifecycleManager",
    "LifecycleEvent",
    "LifecycleEventType",
    "LifecycleState",
    "TokenAuthenticator",
    "VaultStore",
    "VaultTokenAuth",
]
