"""Structured event logging for sync runs and token lifecycle transitions."""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from ..models.sync_report import PathResult, SyncOutcome, SyncReport
from ..schemas.config import RepoConfig
from .token_lifecycle import LifecycleEvent, LifecycleEventType


class SyncEventLogger:
    """Writes one structured log record per synced path and lifecycle event."""

    def __init__(self):
        self.logger = logging.getLogger("secretsync.sync")
        self.auth_logger = logging.getLogger("secretsync.auth")

    def log_sync_event(
        self,
        source: RepoConfig,
        destination: RepoConfig,
        result: PathResult,
        **kwargs,
    ) -> Dict[str, Any]:
        """Log the outcome of syncing one path."""

        log_entry = {
            "event_type": "secret_sync",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "source_id": source.id,
            "source_type": source.type.value,
            "source_addr": source.addr,
            "destination_id": destination.id,
            "destination_type": destination.type.value,
            "destination_addr": destination.addr,
            "path": result.path,
            "destination_path": result.destination_path,
            "outcome": result.outcome.value,
            "error_code": result.error_code,
            "dry_run": result.dry_run,
            "detail": result.message,
        }

        # Add any additional kwargs
        log_entry.update(kwargs)

        message = (
            f"SYNC {source.id} -> {destination.id}: {result.path} {result.outcome.value}"
        )
        if result.outcome.is_failure:
            self.logger.error(message, extra=log_entry)
        elif result.outcome in (
            SyncOutcome.SKIPPED,
            SyncOutcome.AMBIGUOUS,
            SyncOutcome.CANCELLED,
        ):
            self.logger.warning(message, extra=log_entry)
        else:
            self.logger.info(message, extra=log_entry)

        return log_entry

    def log_sync_summary(self, report: SyncReport) -> None:
        """Log the per-outcome counts of a finished run."""

        log_entry = {
            "event_type": "sync_summary",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "source_id": report.source_id,
            "destination_id": report.destination_id,
            "direction": report.direction.value,
            "counts": report.counts(),
        }

        if report.has_failures:
            self.logger.warning(
                f"SYNC SUMMARY {report.source_id} -> {report.destination_id}",
                extra=log_entry,
            )
        else:
            self.logger.info(
                f"SYNC SUMMARY {report.source_id} -> {report.destination_id}",
                extra=log_entry,
            )

    def log_lifecycle_event(self, event: LifecycleEvent) -> None:
        """Log token lifecycle transitions."""

        log_entry = {
            "event_type": "token_lifecycle",
            "timestamp": event.occurred_at.isoformat(),
            "action": event.event_type.value,
            "store_id": event.store_id,
            "state": event.state.value,
            "lease_duration": event.lease_duration,
            "retry_in": event.retry_in,
            "error_code": event.error.error_code if event.error else None,
            "detail": event.message,
        }

        if event.event_type in (
            LifecycleEventType.LOGIN_FAILED,
            LifecycleEventType.RENEWAL_FAILED,
        ):
            self.auth_logger.error(
                f"TOKEN {event.event_type.value}: {event.store_id}", extra=log_entry
            )
        elif event.event_type == LifecycleEventType.LEASE_TERMINATED:
            self.auth_logger.warning(
                f"TOKEN {event.event_type.value}: {event.store_id}", extra=log_entry
            )
        else:
            self.auth_logger.info(
                f"TOKEN {event.event_type.value}: {event.store_id}", extra=log_entry
            )


# Global sync event logger instance
sync_event_logger = SyncEventLogger()


def get_sync_event_logger() -> SyncEventLogger:
    """Get the global sync event logger instance."""
    return sync_event_logger
