"""Base extractor interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional
from datetime import datetime
import logging

from ..client import PlatformAPIError
from ..models.record import SourceRecord

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Result of extracting one collection."""
    collection: str
    records: List[SourceRecord] = field(default_factory=list)
    total_extracted: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    @property
    def success(self) -> bool:
        """Check if extraction was successful."""
        return len(self.errors) == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "collection": self.collection,
            "total_extracted": self.total_extracted,
            "errors": self.errors,
            "warnings": self.warnings,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": self.duration_seconds,
        }


class BaseExtractor(ABC):
    """
    Base class for paged extractors.

    Subclasses fetch one page at a time; this class streams pages until a
    short page or the item cap is reached.
    """

    def __init__(self, collection: str, batch_size: int = 100, limit: Optional[int] = None):
        """
        Initialize the extractor.

        Args:
            collection: Collection to read
            batch_size: Page size
            limit: Maximum number of records to read (None = all)
        """
        self.collection = collection
        self.batch_size = batch_size
        self.limit = limit if limit and limit > 0 else None
        self._errors: List[Dict[str, Any]] = []
        self._warnings: List[str] = []

    @abstractmethod
    def extract_batch(self, offset: int = 0, limit: int = 100) -> List[SourceRecord]:
        """
        Extract a page of records.

        Args:
            offset: Starting offset
            limit: Maximum records to extract

        Returns:
            List of extracted SourceRecord objects
        """
        pass

    def stream(self, batch_size: Optional[int] = None) -> Iterator[List[SourceRecord]]:
        """
        Stream records in batches.

        Yields:
            Batches of SourceRecord objects, never more than ``limit`` in total
        """
        batch_size = batch_size or self.batch_size
        offset = 0

        while True:
            page_size = batch_size
            if self.limit is not None:
                page_size = min(batch_size, self.limit - offset)
                if page_size <= 0:
                    break

            batch = self.extract_batch(offset=offset, limit=page_size)
            if not batch:
                break

            yield batch
            offset += len(batch)

            if len(batch) < page_size:
                break

    def extract(self) -> ExtractionResult:
        """Extract all records of the collection."""
        self.reset()
        result = ExtractionResult(collection=self.collection, started_at=datetime.utcnow())

        try:
            for batch in self.stream():
                result.records.extend(batch)
        except PlatformAPIError as e:
            self.add_error(f"Extraction failed: {e.message}", details={"status": e.status_code})

        result.total_extracted = len(result.records)
        result.errors = self._errors.copy()
        result.warnings = self._warnings.copy()
        result.completed_at = datetime.utcnow()

        logger.info(f"Extracted {result.total_extracted} records from {self.collection}")
        return result

    def create_record(self, id: Any, data: Dict[str, Any]) -> SourceRecord:
        """Create a SourceRecord for this collection."""
        return SourceRecord(id=id, collection=self.collection, data=data)

    def add_error(
        self,
        message: str,
        record_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        """Add an error to the extraction."""
        error = {
            "message": message,
            "record_id": record_id,
            "timestamp": datetime.utcnow().isoformat(),
        }
        if details:
            error.update(details)
        self._errors.append(error)
        logger.error(f"Extraction error: {message}")

    def add_warning(self, message: str) -> None:
        """Add a warning to the extraction."""
        self._warnings.append(message)
        logger.warning(f"Extraction warning: {message}")

    def reset(self) -> None:
        """Reset the extractor state."""
        self._errors = []
        self._warnings = []
