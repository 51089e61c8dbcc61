"""Per-path outcomes of a sync run."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from .repo import SyncDirection


class SyncOutcome(Enum):
    """Enumeration of per-path sync outcomes."""

    SUCCESS = "success"
    SKIPPED = "skipped"
    AMBIGUOUS = "ambiguous"
    MAPPING_ERROR = "mapping_error"
    TRANSPORT_ERROR = "transport_error"
    CANCELLED = "cancelled"

    @property
    def is_failure(self) -> bool:
        return self in (SyncOutcome.MAPPING_ERROR, SyncOutcome.TRANSPORT_ERROR)


@dataclass
class PathResult:
    """Outcome of syncing a single configured path."""

    path: str
    outcome: SyncOutcome
    destination_path: Optional[str] = None
    message: str = ""
    error_code: Optional[str] = None
    dry_run: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "outcome": self.outcome.value,
            "destination_path": self.destination_path,
            "message": self.message,
            "error_code": self.error_code,
            "dry_run": self.dry_run,
        }


@dataclass
class SyncReport:
    """Aggregated result of one directional sync run."""

    source_id: str
    destination_id: str
    direction: SyncDirection
    results: List[PathResult] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    def add(self, result: PathResult) -> None:
        self.results.append(result)

    def finish(self) -> "SyncReport":
        self.finished_at = datetime.now(timezone.utc)
        return self

    def outcome_for(self, path: str) -> Optional[SyncOutcome]:
        """Return the outcome recorded for a path, if any."""
        for result in self.results:
            if result.path == path:
                return result.outcome
        return None

    def counts(self) -> Dict[str, int]:
        """Count results per outcome, including zero counts."""
        counts = {outcome.value: 0 for outcome in SyncOutcome}
        for result in self.results:
            counts[result.outcome.value] += 1
        return counts

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.outcome is SyncOutcome.SUCCESS)

    @property
    def has_failures(self) -> bool:
        return any(r.outcome.is_failure for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_id": self.source_id,
            "destination_id": self.destination_id,
            "direction": self.direction.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "counts": self.counts(),
            "results": [r.to_dict() for r in self.results],
        }
