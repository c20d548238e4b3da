"""
Progress aggregation for batch import runs.

A ``ProgressTracker`` owns the single mutable ``ImportState`` of an importer.
Only the scheduler writes to it; everybody else reads immutable snapshots,
either by polling ``snapshot()`` or by subscribing to updates.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from app.integrations.batch_processor import BASE_COUNTERS, BatchResult

logger = logging.getLogger(__name__)


class ImportStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"


ACTIVE_STATUSES = frozenset({ImportStatus.RUNNING, ImportStatus.PAUSED})

_ALLOWED_TRANSITIONS = {
    ImportStatus.IDLE: {ImportStatus.RUNNING},
    ImportStatus.RUNNING: {ImportStatus.PAUSED, ImportStatus.COMPLETED, ImportStatus.STOPPED},
    ImportStatus.PAUSED: {ImportStatus.RUNNING, ImportStatus.STOPPED},
    ImportStatus.COMPLETED: set(),
    ImportStatus.STOPPED: set(),
}


@dataclass
class ImportState:
    status: ImportStatus = ImportStatus.IDLE
    current_batch: int = 0
    total_batches: int = 0
    processed_records: int = 0
    total_records: int = 0
    counters: Dict[str, int] = field(default_factory=lambda: {name: 0 for name in BASE_COUNTERS})
    errors: List[str] = field(default_factory=list)
    target_id: Optional[str] = None
    has_header: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None


@dataclass(frozen=True)
class ProgressSnapshot:
    """Read-only, point-in-time view of an import run."""
    status: ImportStatus
    current_batch: int
    total_batches: int
    processed_records: int
    total_records: int
    counters: Dict[str, int]
    errors: Tuple[str, ...]
    target_id: Optional[str] = None
    has_header: bool = False
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error_tail_size: int = 5

    @property
    def inserted(self) -> int:
        return self.counters.get("inserted", 0)

    @property
    def skipped(self) -> int:
        return self.counters.get("skipped", 0)

    @property
    def domain_counters(self) -> Dict[str, int]:
        return {name: value for name, value in self.counters.items() if name not in BASE_COUNTERS}

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def recent_errors(self) -> Tuple[str, ...]:
        if self.error_tail_size <= 0:
            return ()
        return self.errors[-self.error_tail_size:]

    @property
    def progress_percent(self) -> float:
        if self.total_records == 0:
            return 0.0
        return round(self.processed_records / self.total_records * 100, 1)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> Dict:
        return {
            "status": self.status.value,
            "target_id": self.target_id,
            "current_batch": self.current_batch,
            "total_batches": self.total_batches,
            "processed_records": self.processed_records,
            "total_records": self.total_records,
            "progress_percent": self.progress_percent,
            "has_header": self.has_header,
            "inserted": self.inserted,
            "skipped": self.skipped,
            "counters": dict(self.counters),
            "error_count": self.error_count,
            "recent_errors": list(self.recent_errors),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass(frozen=True)
class ImportSummary:
    """Final totals emitted once when a run completes."""
    target_id: Optional[str]
    total_records: int
    processed_records: int
    total_batches: int
    inserted: int
    skipped: int
    domain_counters: Dict[str, int]
    error_count: int
    errors: Tuple[str, ...]

    def describe(self) -> str:
        parts = [f"inserted={self.inserted}", f"skipped={self.skipped}"]
        parts.extend(f"{name}={value}" for name, value in sorted(self.domain_counters.items()))
        parts.append(f"errors={self.error_count}")
        return ", ".join(parts)


ProgressCallback = Callable[[ProgressSnapshot], None]


class ProgressTracker:
    """Holds one ``ImportState`` and publishes snapshots after each mutation."""

    def __init__(self, error_tail_size: int = 5):
        self.error_tail_size = error_tail_size
        self._state = ImportState()
        self._subscribers: List[ProgressCallback] = []

    # ------------------------------------------------------------------ reads

    @property
    def status(self) -> ImportStatus:
        return self._state.status

    def snapshot(self) -> ProgressSnapshot:
        state = self._state
        return ProgressSnapshot(
            status=state.status,
            current_batch=state.current_batch,
            total_batches=state.total_batches,
            processed_records=state.processed_records,
            total_records=state.total_records,
            counters=dict(state.counters),
            errors=tuple(state.errors),
            target_id=state.target_id,
            has_header=state.has_header,
            started_at=state.started_at,
            finished_at=state.finished_at,
            error_tail_size=self.error_tail_size,
        )

    def summary(self) -> ImportSummary:
        snap = self.snapshot()
        return ImportSummary(
            target_id=snap.target_id,
            total_records=snap.total_records,
            processed_records=snap.processed_records,
            total_batches=snap.total_batches,
            inserted=snap.inserted,
            skipped=snap.skipped,
            domain_counters=snap.domain_counters,
            error_count=snap.error_count,
            errors=snap.errors,
        )

    def subscribe(self, callback: ProgressCallback) -> Callable[[], None]:
        """Register ``callback`` for every update; returns an unsubscribe function."""
        self._subscribers.append(callback)
        return lambda: self.unsubscribe(callback)

    def unsubscribe(self, callback: ProgressCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    # ----------------------------------------------------------------- writes

    def begin(self, *, target_id: str, total_records: int, total_batches: int, has_header: bool) -> None:
        """Reset all counters and errors for a fresh run and mark it running."""
        self._state = ImportState(
            status=ImportStatus.RUNNING,
            total_batches=total_batches,
            total_records=total_records,
            target_id=target_id,
            has_header=has_header,
            started_at=datetime.now(),
        )
        self._publish()

    def set_status(self, status: ImportStatus) -> None:
        self._check_transition(status)
        if self._apply_status(status):
            self._publish()

    def _check_transition(self, status: ImportStatus) -> None:
        current = self._state.status
        if status != current and status not in _ALLOWED_TRANSITIONS[current]:
            raise RuntimeError(f"Illegal import status transition {current.value} -> {status.value}")

    def _apply_status(self, status: ImportStatus) -> bool:
        if status == self._state.status:
            return False
        self._state.status = status
        if status in (ImportStatus.COMPLETED, ImportStatus.STOPPED):
            self._state.finished_at = datetime.now()
        return True

    def record_batch(
        self,
        *,
        batch_index: int,
        processed_records: int,
        result: Optional[BatchResult] = None,
        errors: Optional[List[str]] = None,
        last: bool = False,
    ) -> None:
        """
        Apply one finished batch: merge its counters (if it succeeded), append
        its errors, and advance the batch and record positions.
        """
        status = ImportStatus.COMPLETED if last else ImportStatus.RUNNING
        self._check_transition(status)

        state = self._state
        if result is not None:
            for name, value in result.counter_totals().items():
                state.counters[name] = state.counters.get(name, 0) + value
        if errors:
            state.errors.extend(errors)

        state.current_batch = max(state.current_batch, batch_index + 1)
        state.processed_records = max(state.processed_records, processed_records)

        self._apply_status(status)
        self._publish()

    def _publish(self) -> None:
        if not self._subscribers:
            return
        snap = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snap)
            except Exception:
                logger.exception("Progress subscriber %r failed", callback)
