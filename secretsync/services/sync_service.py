"""Synchronization service for moving credentials between secret stores."""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

from ..errors import (
    AmbiguousMatchError,
    ConfigError,
    MappingError,
    NotFoundError,
    SecretSyncError,
)
from ..models.repo import SyncDirection
from ..models.secret_record import SecretRecord
from ..models.sync_report import PathResult, SyncOutcome, SyncReport
from .audit_logger import SyncEventLogger, get_sync_event_logger
from .secret_store import SecretStore

logger = logging.getLogger(__name__)


class SyncEngine:
    """Transfers the configured paths from a source store to a destination store.

    A failure on one path is recorded in the report and never stops the
    remaining paths from being processed.
    """

    def __init__(
        self,
        max_workers: int = 1,
        cancel_event: Optional[threading.Event] = None,
        event_logger: Optional[SyncEventLogger] = None,
    ):
        self.max_workers = max(1, max_workers)
        self.cancel_event = cancel_event or threading.Event()
        self.event_logger = event_logger or get_sync_event_logger()
        self._claim_lock = threading.Lock()

    def test_backends(self, *stores: SecretStore) -> Dict[str, Any]:
        """Test connectivity to every given store."""
        results: Dict[str, Any] = {
            store.repo_id: store.test_connection() for store in stores
        }

        overall_status = "success"
        if any(r["status"] == "error" for r in results.values()):
            overall_status = "error"
        elif any(r["status"] == "warning" for r in results.values()):
            overall_status = "warning"

        results["overall_status"] = overall_status
        return results

    def sync(
        self,
        source: SecretStore,
        destination: SecretStore,
        direction: Optional[SyncDirection] = None,
        paths: Optional[List[str]] = None,
        prefix: Optional[str] = None,
        dry_run: bool = False,
    ) -> SyncReport:
        """Sync every path from source to destination.

        Paths default to the source repo's configured paths and the prefix
        to the destination repo's configured prefix.

        Raises:
            ConfigError: If the direction does not match the store types
        """
        expected = SyncDirection.between(source.repo_type, destination.repo_type)
        if direction is None:
            direction = expected
        elif direction is not expected:
            raise ConfigError(
                f"Direction {direction.value} does not match "
                f"{source.repo_id} -> {destination.repo_id}",
                error_code="unsupported_direction",
            )

        if paths is None:
            paths = list(source.repo.paths)
        if prefix is None:
            prefix = destination.repo.prefix

        report = SyncReport(
            source_id=source.repo_id,
            destination_id=destination.repo_id,
            direction=direction,
        )
        logger.debug(
            f"Starting sync {source.repo_id} -> {destination.repo_id} "
            f"({direction.value}) for {len(paths)} paths"
        )

        # Destination path -> the source path that wrote it in this run
        claimed: Dict[str, str] = {}

        def run(path: str) -> PathResult:
            return self.sync_path(
                source, destination, direction, path, prefix, dry_run, claimed
            )

        if self.max_workers == 1:
            for result in map(run, paths):
                self._record(report, source, destination, result)
        else:
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="secretsync"
            ) as pool:
                # Results are collected in submission order
                for result in pool.map(run, paths):
                    self._record(report, source, destination, result)

        report.finish()
        self.event_logger.log_sync_summary(report)
        return report

    def _record(
        self,
        report: SyncReport,
        source: SecretStore,
        destination: SecretStore,
        result: PathResult,
    ) -> None:
        report.add(result)
        self.event_logger.log_sync_event(source.repo, destination.repo, result)

    def sync_path(
        self,
        source: SecretStore,
        destination: SecretStore,
        direction: SyncDirection,
        path: str,
        prefix: str = "",
        dry_run: bool = False,
        claimed: Optional[Dict[str, str]] = None,
    ) -> PathResult:
        """Sync a single path, converting every per-path error into a result.

        When `claimed` is given, a path whose destination was already written
        by another path in the same run is reported as ambiguous and skipped.
        """
        if self.cancel_event.is_set():
            return PathResult(
                path=path,
                outcome=SyncOutcome.CANCELLED,
                message="Sync cancelled before this path was processed",
                dry_run=dry_run,
            )

        destination_path = None
        try:
            record = self._read_record(source, direction, path)
            destination_path = f"{prefix}{record.name}"
            self._claim(claimed, destination_path, path)

            if dry_run:
                destination.mapper.to_native(record, name=destination_path)
                return PathResult(
                    path=path,
                    outcome=SyncOutcome.SUCCESS,
                    destination_path=destination_path,
                    message=f"Would write '{destination_path}' to {destination.repo_id}",
                    dry_run=True,
                )

            result = destination.put(destination_path, record)
            return PathResult(
                path=path,
                outcome=SyncOutcome.SUCCESS,
                destination_path=destination_path,
                message=result.get("message", ""),
            )

        except NotFoundError as e:
            outcome = SyncOutcome.SKIPPED
            error = e
        except AmbiguousMatchError as e:
            outcome = SyncOutcome.AMBIGUOUS
            error = e
        except MappingError as e:
            outcome = SyncOutcome.MAPPING_ERROR
            error = e
        except SecretSyncError as e:
            # Transport, auth and token renewal failures
            outcome = SyncOutcome.TRANSPORT_ERROR
            error = e
        except Exception as e:
            logger.exception(f"Unexpected error syncing path '{path}'")
            return PathResult(
                path=path,
                outcome=SyncOutcome.TRANSPORT_ERROR,
                destination_path=destination_path,
                message=f"Unexpected error: {str(e)}",
                error_code="unexpected_error",
                dry_run=dry_run,
            )

        return PathResult(
            path=path,
            outcome=outcome,
            destination_path=destination_path,
            message=error.message,
            error_code=error.error_code,
            dry_run=dry_run,
        )

    def _claim(
        self, claimed: Optional[Dict[str, str]], destination_path: str, path: str
    ) -> None:
        if claimed is None:
            return
        with self._claim_lock:
            owner = claimed.setdefault(destination_path, path)
        if owner != path:
            raise AmbiguousMatchError(
                f"'{path}' and '{owner}' both resolve to '{destination_path}'",
                matches=2,
                error_code="duplicate_destination",
            )

    def _read_record(
        self, source: SecretStore, direction: SyncDirection, path: str
    ) -> SecretRecord:
        """Read and map the single source item a path refers to.

        Raises:
            NotFoundError: If the path matches nothing
            AmbiguousMatchError: If a search matches more than one item
            MappingError: If the item lacks a username or password
        """
        if direction is SyncDirection.ITEM_TO_STRUCTURED:
            items = source.list(path)
            if not items:
                raise NotFoundError(
                    f"No item in {source.repo_id} matches '{path}'",
                    error_code="no_match",
                )
            if len(items) > 1:
                raise AmbiguousMatchError(
                    f"{len(items)} items in {source.repo_id} match '{path}'",
                    matches=len(items),
                )
            return source.mapper.from_native(items[0])

        return source.mapper.from_native(source.get(path))
