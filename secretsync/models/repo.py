"""Repository type and sync direction enumerations."""

from enum import Enum

from ..errors import ConfigError


class RepoType(Enum):
    """Enumeration of supported secret store types."""

    VAULT = "vault"
    BITWARDEN = "bitwarden"


class SyncDirection(Enum):
    """Enumeration of supported transfer directions."""

    STRUCTURED_TO_ITEM = "vault_to_bitwarden"
    ITEM_TO_STRUCTURED = "bitwarden_to_vault"

    @classmethod
    def between(cls, source: RepoType, destination: RepoType) -> "SyncDirection":
        """Derive the direction from the source and destination repo types."""
        if source is RepoType.VAULT and destination is RepoType.BITWARDEN:
            return cls.STRUCTURED_TO_ITEM
        if source is RepoType.BITWARDEN and destination is RepoType.VAULT:
            return cls.ITEM_TO_STRUCTURED
        raise ConfigError(
            f"Unsupported sync direction: {source.value} -> {destination.value}",
            error_code="unsupported_direction",
        )
