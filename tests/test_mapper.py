"""Test conversion between store-native items and SecretRecord."""

import pytest

from secretsync.errors import MappingError
from secretsync.models.secret_record import SecretRecord
from secretsync.schemas.bitwarden import BitwardenItem, BitwardenLogin
from secretsync.schemas.vault import VaultSecret
from secretsync.services.mapper import (
    BitwardenItemMapper,
    VaultSecretMapper,
    record_name_for_path,
)


@pytest.mark.mapper
class TestSecretRecord:
    """Test SecretRecord invariants."""

    def test_from_credentials(self):
        """Test building a record from a username/password pair."""
        record = SecretRecord.from_credentials("db", "alice", "wonderland")

        assert record.name == "db"
        assert record.username == "alice"
        assert record.password == "wonderland"

    def test_missing_password_rejected(self):
        """Test that an empty password violates the record invariant."""
        with pytest.raises(MappingError) as exc_info:
            SecretRecord.from_credentials("db", "alice", "")

        assert exc_info.value.missing_field == "password"

    def test_fields_are_read_only(self):
        """Test that record fields cannot be mutated after creation."""
        record = SecretRecord.from_credentials("db", "alice", "wonderland")

        with pytest.raises(TypeError):
            record.fields["password"] = "changed"

    def test_repr_hides_values(self):
        """Test that the repr never contains credential values."""
        record = SecretRecord.from_credentials("db", "alice", "wonderland")

        assert "wonderland" not in repr(record)
        assert "alice" not in repr(record)


@pytest.mark.mapper
class TestBitwardenItemMapper:
    """Test Bitwarden login item mapping."""

    def test_round_trip(self):
        """Test to_native then from_native gives back an equal record."""
        mapper = BitwardenItemMapper()
        record = SecretRecord.from_credentials("x", "alice", "wonderland")

        assert mapper.from_native(mapper.to_native(record)) == record

    def test_to_native_builds_login_item(self):
        """Test the write payload shape for a new login item."""
        record = SecretRecord.from_credentials("x", "alice", "wonderland")
        payload = BitwardenItemMapper().to_native(record, name="prefix/x").to_payload()

        assert payload["folderId"] is None
        assert payload["type"] == 1
        assert payload["name"] == "prefix/x"
        assert payload["login"] == {"username": "alice", "password": "wonderland"}

    def test_missing_login_section(self):
        """Test that an item without a login section cannot be mapped."""
        item = BitwardenItem(name="note", type=2)

        with pytest.raises(MappingError) as exc_info:
            BitwardenItemMapper().from_native(item)

        assert exc_info.value.missing_field == "login"

    def test_missing_password(self):
        """Test that a login without a password cannot be mapped."""
        item = BitwardenItem(name="x", login=BitwardenLogin(username="alice"))

        with pytest.raises(MappingError) as exc_info:
            BitwardenItemMapper().from_native(item)

        assert exc_info.value.missing_field == "password"

    def test_to_native_rejects_invalid_record(self):
        """Test that a record without a username is not written."""
        record = SecretRecord(name="x", fields={"password": "wonderland"})

        with pytest.raises(MappingError):
            BitwardenItemMapper().to_native(record)


@pytest.mark.mapper
class TestVaultSecretMapper:
    """Test Vault KV field map mapping."""

    def test_from_native_uses_field_names(self):
        """Test that the configured field names select the credentials."""
        secret = VaultSecret(
            path="services/x", data={"user": "alice", "pass": "wonderland", "url": "db"}
        )
        record = VaultSecretMapper("user", "pass").from_native(secret)

        assert record.name == "x"
        assert record.username == "alice"
        assert record.password == "wonderland"
        assert set(record.fields) == {"username", "password"}

    def test_to_native_uses_field_names(self):
        """Test that the write payload uses the configured field names."""
        record = SecretRecord.from_credentials("x", "alice", "wonderland")

        assert VaultSecretMapper("user", "pass").to_native(record) == {
            "user": "alice",
            "pass": "wonderland",
        }

    def test_missing_field(self):
        """Test that a missing configured field is reported by name."""
        secret = VaultSecret(path="services/x", data={"user": "alice"})

        with pytest.raises(MappingError) as exc_info:
            VaultSecretMapper("user", "pass").from_native(secret)

        assert exc_info.value.missing_field == "pass"

    def test_non_string_value_rejected(self):
        """Test that non-string field values are not accepted as credentials."""
        secret = VaultSecret(path="services/x", data={"user": "alice", "pass": 1234})

        with pytest.raises(MappingError):
            VaultSecretMapper("user", "pass").from_native(secret)

    def test_record_name_for_path(self):
        """Test that records are named after the last path segment."""
        assert record_name_for_path("services/x") == "x"
        assert record_name_for_path("services/x/") == "x"
        assert record_name_for_path("x") == "x"
