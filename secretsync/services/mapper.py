"""Conversion between store-native items and the canonical SecretRecord."""

import posixpath
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from ..errors import MappingError
from ..models.secret_record import PASSWORD_KEY, USERNAME_KEY, SecretRecord
from ..schemas.bitwarden import BitwardenItem
from ..schemas.vault import VaultSecret


def record_name_for_path(path: str) -> str:
    """Name a record after the last segment of its store path."""
    return posixpath.basename(path.rstrip("/")) or path


class Mapper(ABC):
    """Abstract base class for store-specific item mappers."""

    @abstractmethod
    def from_native(self, item: Any) -> SecretRecord:
        """
        Convert a native store item into a SecretRecord.

        Raises:
            MappingError: If the item lacks a username or password
        """
        pass

    @abstractmethod
    def to_native(self, record: SecretRecord, name: Optional[str] = None) -> Any:
        """
        Convert a SecretRecord into the store's native write payload.

        Raises:
            MappingError: If the record violates the username/password invariant
        """
        pass


class BitwardenItemMapper(Mapper):
    """Maps Bitwarden login items."""

    def from_native(self, item: BitwardenItem) -> SecretRecord:
        if item.login is None:
            raise MappingError(
                f"Bitwarden item '{item.name}' has no login section",
                missing_field="login",
            )
        return SecretRecord.from_credentials(
            item.name, item.login.username, item.login.password
        )

    def to_native(
        self, record: SecretRecord, name: Optional[str] = None
    ) -> BitwardenItem:
        record.validate()
        return BitwardenItem.for_login(
            name=name or record.name,
            username=record.username,
            password=record.password,
        )


class VaultSecretMapper(Mapper):
    """Maps KV v2 field maps using the configured user/pass field names."""

    def __init__(self, user_field: str = USERNAME_KEY, pass_field: str = PASSWORD_KEY):
        self.user_field = user_field
        self.pass_field = pass_field

    def _field(self, secret: VaultSecret, key: str) -> str:
        value = secret.data.get(key)
        if not isinstance(value, str) or not value:
            raise MappingError(
                f"Vault secret '{secret.path}' has no string value for '{key}'",
                missing_field=key,
            )
        return value

    def from_native(self, secret: VaultSecret) -> SecretRecord:
        return SecretRecord(
            name=record_name_for_path(secret.path),
            fields={
                USERNAME_KEY: self._field(secret, self.user_field),
                PASSWORD_KEY: self._field(secret, self.pass_field),
            },
        )

    def to_native(self, record: SecretRecord, name: Optional[str] = None) -> Dict[str, str]:
        record.validate()
        return {self.user_field: record.username, self.pass_field: record.password}
