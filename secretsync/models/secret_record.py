"""Canonical secret record and leased credential models."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from types import MappingProxyType
from typing import Mapping, Optional

from ..errors import MappingError

USERNAME_KEY = "username"
PASSWORD_KEY = "password"


@dataclass(frozen=True)
class SecretRecord:
    """Store-agnostic username/password record.

    Records are immutable; transformations return a new instance.
    """

    name: str
    fields: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def __eq__(self, other) -> bool:
        if not isinstance(other, SecretRecord):
            return NotImplemented
        return self.name == other.name and dict(self.fields) == dict(other.fields)

    def __hash__(self) -> int:
        return hash((self.name, tuple(sorted(self.fields.items()))))

    def __repr__(self) -> str:
        # Values are secrets; only expose the keys.
        return f"SecretRecord(name={self.name!r}, fields={sorted(self.fields)!r})"

    @classmethod
    def from_credentials(
        cls, name: str, username: Optional[str], password: Optional[str]
    ) -> "SecretRecord":
        """Build a record from a username/password pair, enforcing the invariant."""
        if not username:
            raise MappingError(
                f"Secret '{name}' has no username", missing_field=USERNAME_KEY
            )
        if not password:
            raise MappingError(
                f"Secret '{name}' has no password", missing_field=PASSWORD_KEY
            )
        return cls(name=name, fields={USERNAME_KEY: username, PASSWORD_KEY: password})

    @property
    def username(self) -> Optional[str]:
        return self.fields.get(USERNAME_KEY)

    @property
    def password(self) -> Optional[str]:
        return self.fields.get(PASSWORD_KEY)

    def validate(self) -> "SecretRecord":
        """Raise MappingError unless both username and password are non-empty."""
        for key in (USERNAME_KEY, PASSWORD_KEY):
            if not self.fields.get(key):
                raise MappingError(
                    f"Secret '{self.name}' has no {key}", missing_field=key
                )
        return self


@dataclass(frozen=True)
class Credential:
    """An access token with its lease window.

    A Credential is never modified; renewal produces a new instance that
    replaces the old one atomically inside the lifecycle manager.
    """

    token: str = field(repr=False)
    issued_at: datetime
    expires_at: Optional[datetime]
    renewable: bool
    lease_duration: float = 0

    @classmethod
    def issue(
        cls, token: str, lease_duration: float, renewable: bool, issued_at: datetime
    ) -> "Credential":
        """Create a credential from a lease duration in seconds.

        A lease duration of zero means the token does not expire.
        """
        expires_at = None
        if lease_duration and lease_duration > 0:
            expires_at = issued_at + timedelta(seconds=lease_duration)
        return cls(
            token=token,
            issued_at=issued_at,
            expires_at=expires_at,
            renewable=renewable,
            lease_duration=lease_duration or 0,
        )

    def is_expired(self, now: datetime) -> bool:
        """Check if the lease has run out."""
        return self.expires_at is not None and now >= self.expires_at

    def renew_at(self, fraction: float) -> Optional[datetime]:
        """Point in time at which `fraction` of the lease has elapsed."""
        if self.expires_at is None:
            return None
        return self.issued_at + timedelta(seconds=self.lease_duration * fraction)
