"""Base loader interface for writing records to the target instance."""

from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence
from datetime import datetime
import logging
import threading

from ..client import PlatformClient
from ..models.migration import MigrationSession, MigrationStatus
from ..models.record import ErrorDetail, ImportAction, ImportRecord, ImportStatus, SourceRecord

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class LoadResult:
    """Result of loading one collection."""
    collection: str
    records: List[ImportRecord] = field(default_factory=list)
    total_attempted: int = 0
    total_succeeded: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    cancelled: bool = False
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def success_rate(self) -> float:
        if self.total_attempted == 0:
            return 0.0
        return self.total_succeeded / self.total_attempted

    @property
    def created(self) -> int:
        return sum(1 for r in self.records if r.success and r.action == ImportAction.CREATED)

    @property
    def updated(self) -> int:
        return sum(1 for r in self.records if r.success and r.action == ImportAction.UPDATED)

    @property
    def errors(self) -> List[Dict[str, Any]]:
        return [
            {"record_id": r.original_id, **(r.error.to_dict() if r.error else {})}
            for r in self.records if not r.success
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "collection": self.collection,
            "total_attempted": self.total_attempted,
            "total_succeeded": self.total_succeeded,
            "total_failed": self.total_failed,
            "total_skipped": self.total_skipped,
            "created": self.created,
            "updated": self.updated,
            "cancelled": self.cancelled,
            "success_rate": self.success_rate,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
            "errors": self.errors,
        }


class BaseLoader(ABC):
    """
    Base class for loaders.

    Subclasses write one record at a time; this class runs the batch loop,
    reports progress and turns unexpected exceptions into error records so
    one bad record never stops the batch.
    """

    def __init__(self, client: PlatformClient, concurrency: int = 1):
        """
        Initialize the loader.

        Args:
            client: Client for the target instance
            concurrency: Number of records written in parallel (1 = sequential)
        """
        self.client = client
        self.concurrency = max(1, concurrency)

    @abstractmethod
    def load_record(self, record: SourceRecord) -> ImportRecord:
        """
        Write a single record to the target.

        Args:
            record: Record read from the source

        Returns:
            ImportRecord describing the outcome
        """
        pass

    def _safe_load(self, record: SourceRecord) -> ImportRecord:
        try:
            return self.load_record(record)
        except Exception as e:
            logger.error(f"Failed to load {record.collection} record {record.id}: {e}")
            return ImportRecord(
                original_id=record.id,
                status=ImportStatus.ERROR,
                error=ErrorDetail(message=str(e)),
            )

    def load_batch(
        self,
        collection: str,
        records: Sequence[SourceRecord],
        progress_callback: Optional[ProgressCallback] = None,
        session: Optional[MigrationSession] = None,
        cancel_event: Optional[threading.Event] = None
    ) -> LoadResult:
        """
        Load records of one collection.

        Args:
            collection: Collection name
            records: Records in source order
            progress_callback: Called with ``(processed, total)`` after every record
            session: Session whose progress map is updated alongside the callback
            cancel_event: When set, remaining records are skipped

        Returns:
            LoadResult with one ImportRecord per processed record, in input order
        """
        result = LoadResult(collection=collection)
        result.started_at = datetime.utcnow()
        total = len(records)
        slots: List[Optional[ImportRecord]] = [None] * total
        lock = threading.Lock()
        counters = {"processed": 0, "succeeded": 0, "failed": 0}

        if session:
            session.update_progress(collection, total=total, status=MigrationStatus.MIGRATING_DATA)

        def work(index: int) -> None:
            if cancel_event is not None and cancel_event.is_set():
                return
            record = self._safe_load(records[index])
            slots[index] = record
            with lock:
                counters["processed"] += 1
                counters["succeeded" if record.success else "failed"] += 1
                processed = counters["processed"]
                if session:
                    session.update_progress(
                        collection,
                        processed=processed,
                        succeeded=counters["succeeded"],
                        failed=counters["failed"],
                    )
                if progress_callback:
                    progress_callback(processed, total)

        if self.concurrency == 1 or total <= 1:
            for index in range(total):
                work(index)
        else:
            with ThreadPoolExecutor(max_workers=self.concurrency) as executor:
                list(executor.map(work, range(total)))

        result.records = [r for r in slots if r is not None]
        result.total_attempted = len(result.records)
        result.total_succeeded = sum(1 for r in result.records if r.success)
        result.total_failed = result.total_attempted - result.total_succeeded
        result.total_skipped = total - result.total_attempted
        result.cancelled = bool(cancel_event is not None and cancel_event.is_set() and result.total_skipped)
        result.completed_at = datetime.utcnow()

        if session:
            if result.cancelled:
                status = MigrationStatus.CANCELLED
            elif result.total_failed:
                status = MigrationStatus.COMPLETED_WITH_ERRORS
            else:
                status = MigrationStatus.COMPLETED
            session.update_progress(collection, status=status)

        logger.info(
            f"Loaded {collection}: {result.total_succeeded}/{total} succeeded"
            + (f", {result.total_failed} failed" if result.total_failed else "")
            + (f", {result.total_skipped} skipped" if result.total_skipped else "")
        )
        return result
