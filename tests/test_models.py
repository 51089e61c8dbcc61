"""Test models functionality."""

import logging
from datetime import datetime, timedelta, timezone

import pytest

from secretsync.errors import AuthError
from secretsync.models.repo import SyncDirection
from secretsync.models.secret_record import Credential
from secretsync.models.sync_report import PathResult, SyncOutcome, SyncReport
from secretsync.services.audit_logger import SyncEventLogger
from secretsync.services.token_lifecycle import (
    LifecycleEvent,
    LifecycleEventType,
    LifecycleState,
)

ISSUED = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest.mark.lifecycle
class TestCredential:
    """Test Credential lease arithmetic."""

    def test_issue_with_lease(self):
        """Test that a lease sets the expiry time."""
        credential = Credential.issue("t", 3600, True, ISSUED)

        assert credential.expires_at == ISSUED + timedelta(hours=1)
        assert not credential.is_expired(ISSUED + timedelta(minutes=59))
        assert credential.is_expired(ISSUED + timedelta(hours=1))

    def test_renew_at_fraction(self):
        """Test the renewal point inside the lease."""
        credential = Credential.issue("t", 1000, True, ISSUED)

        assert credential.renew_at(0.5) == ISSUED + timedelta(seconds=500)

    def test_zero_lease_never_expires(self):
        """Test that a zero lease (root-style token) has no expiry."""
        credential = Credential.issue("t", 0, False, ISSUED)

        assert credential.expires_at is None
        assert credential.renew_at(0.5) is None
        assert not credential.is_expired(ISSUED + timedelta(days=365))

    def test_repr_hides_token(self):
        """Test that the token never appears in the repr."""
        assert "s.secret" not in repr(Credential.issue("s.secret", 60, True, ISSUED))


@pytest.mark.sync
class TestSyncReport:
    """Test SyncReport aggregation."""

    def test_counts_and_failures(self):
        """Test per-outcome counts and failure detection."""
        report = SyncReport("vault", "bw", SyncDirection.STRUCTURED_TO_ITEM)
        report.add(PathResult("a", SyncOutcome.SUCCESS))
        report.add(PathResult("b", SyncOutcome.SKIPPED))

        assert report.counts()["success"] == 1
        assert report.counts()["mapping_error"] == 0
        assert not report.has_failures

        report.add(PathResult("c", SyncOutcome.MAPPING_ERROR))

        assert report.has_failures
        assert report.succeeded == 1

    def test_to_dict(self):
        """Test the serialized report."""
        report = SyncReport("vault", "bw", SyncDirection.STRUCTURED_TO_ITEM)
        report.add(PathResult("a", SyncOutcome.SUCCESS, destination_path="x"))
        data = report.finish().to_dict()

        assert data["direction"] == "vault_to_bitwarden"
        assert data["finished_at"] is not None
        assert data["results"][0] == {
            "path": "a",
            "outcome": "success",
            "destination_path": "x",
            "message": "",
            "error_code": None,
            "dry_run": False,
        }


@pytest.mark.lifecycle
class TestLifecycleEventLogging:
    """Test lifecycle events written to the auth logger."""

    def test_login_failure_logged_as_error(self, caplog):
        """Test that a failed login is an error record with its code."""
        event = LifecycleEvent(
            event_type=LifecycleEventType.LOGIN_FAILED,
            store_id="vault",
            state=LifecycleState.RELOGIN_REQUIRED,
            message="login failed",
            error=AuthError("denied", error_code="login_rejected"),
            retry_in=2.0,
        )

        with caplog.at_level(logging.INFO, logger="secretsync.auth"):
            SyncEventLogger().log_lifecycle_event(event)

        record = caplog.records[-1]
        assert record.levelno == logging.ERROR
        assert record.action == "login_failed"
        assert record.error_code == "login_rejected"
        assert record.retry_in == 2.0

    def test_renewal_logged_as_info(self, caplog):
        """Test that a renewal is an info record."""
        event = LifecycleEvent(
            event_type=LifecycleEventType.RENEWED,
            store_id="vault",
            state=LifecycleState.AUTHENTICATED,
            lease_duration=3600,
        )

        with caplog.at_level(logging.INFO, logger="secretsync.auth"):
            SyncEventLogger().log_lifecycle_event(event)

        assert caplog.records[-1].levelno == logging.INFO
        assert caplog.records[-1].lease_duration == 3600
