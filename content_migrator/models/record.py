"""Record models for item migration."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from enum import Enum
from datetime import datetime


class ImportStatus(str, Enum):
    """Outcome status of one imported item."""
    SUCCESS = "success"
    ERROR = "error"


class ImportAction(str, Enum):
    """What happened to an item on the target."""
    CREATED = "created"
    UPDATED = "updated"


class UpsertOutcome(str, Enum):
    """Tag of an upsert result."""
    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class ErrorDetail:
    """Error reported by the target for a single unit."""
    message: str
    status: Optional[int] = None
    details: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "message": self.message,
            "status": self.status,
            "details": self.details,
        }


@dataclass
class SourceRecord:
    """An item read from a source collection."""
    id: Any
    collection: str
    data: Dict[str, Any]
    extracted_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "collection": self.collection,
            "data": self.data,
            "extracted_at": self.extracted_at.isoformat(),
        }


@dataclass
class UpsertResult:
    """Tagged result of a create-or-update: Created, Updated or Failed(reason)."""
    outcome: UpsertOutcome
    item_id: Any
    error: Optional[ErrorDetail] = None
    response_data: Optional[Dict[str, Any]] = None

    @property
    def success(self) -> bool:
        return self.outcome != UpsertOutcome.FAILED

    @classmethod
    def created(cls, item_id: Any, response_data: Optional[Dict[str, Any]] = None) -> "UpsertResult":
        return cls(UpsertOutcome.CREATED, item_id, response_data=response_data)

    @classmethod
    def updated(cls, item_id: Any, response_data: Optional[Dict[str, Any]] = None) -> "UpsertResult":
        return cls(UpsertOutcome.UPDATED, item_id, response_data=response_data)

    @classmethod
    def failed(cls, item_id: Any, error: ErrorDetail) -> "UpsertResult":
        return cls(UpsertOutcome.FAILED, item_id, error=error)


@dataclass
class ImportRecord:
    """Terminal result of importing one item."""
    original_id: Any
    status: ImportStatus
    new_id: Optional[Any] = None
    action: Optional[ImportAction] = None
    error: Optional[ErrorDetail] = None
    imported_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def success(self) -> bool:
        return self.status == ImportStatus.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "original_id": self.original_id,
            "new_id": self.new_id,
            "status": self.status.value,
            "action": self.action.value if self.action else None,
            "error": self.error.to_dict() if self.error else None,
            "imported_at": self.imported_at.isoformat(),
        }

    @classmethod
    def from_upsert(cls, result: UpsertResult) -> "ImportRecord":
        """Build the import record for a tagged upsert result."""
        if result.outcome == UpsertOutcome.FAILED:
            return cls(
                original_id=result.item_id,
                status=ImportStatus.ERROR,
                error=result.error,
            )
        action = ImportAction.CREATED if result.outcome == UpsertOutcome.CREATED else ImportAction.UPDATED
        return cls(
            original_id=result.item_id,
            status=ImportStatus.SUCCESS,
            new_id=result.item_id,
            action=action,
        )


@dataclass
class UnitResult:
    """Result for one migrated object (flow, operation, role, policy...)."""
    original_id: Any
    new_id: Optional[Any] = None
    name: Optional[str] = None
    status: str = "success"  # success, error, skipped
    action: Optional[str] = None
    error: Optional[str] = None
    parent_id: Optional[Any] = None

    @property
    def success(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "original_id": self.original_id,
            "new_id": self.new_id,
            "name": self.name,
            "status": self.status,
            "action": self.action,
            "error": self.error,
            "parent_id": self.parent_id,
        }
