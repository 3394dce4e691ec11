"""Schema migration: snapshot the source, diff against the target, apply a selection."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import logging

from ..client import PlatformAPIError, PlatformClient
from ..models.migration import MigrationSession
from ..models.schema import SchemaDiff
from .diff_selector import NOTHING_TO_APPLY, filter_schema_diff

logger = logging.getLogger(__name__)


class SchemaApplyStatus(str, Enum):
    """Outcome of a schema apply."""
    APPLIED = "applied"
    NOTHING_TO_APPLY = "nothing_to_apply"
    FAILED = "failed"


@dataclass
class SchemaApplyResult:
    """Result of applying a (filtered) schema diff."""
    status: SchemaApplyStatus
    message: str
    diff: Optional[SchemaDiff] = None
    error: Optional[Dict[str, Any]] = None
    counts: Dict[str, int] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status == SchemaApplyStatus.APPLIED

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "status": self.status.value,
            "message": self.message,
            "counts": self.counts,
            "error": self.error,
        }


class SchemaMigrator:
    """
    Moves the schema of selected collections from source to target.

    The target computes the diff against the source snapshot; this class only
    filters it and forwards the filtered entries with the original hash.
    """

    def __init__(self, source_client: PlatformClient, target_client: PlatformClient):
        self.source = source_client
        self.target = target_client

    def snapshot(self) -> Dict[str, Any]:
        """Fetch the full schema snapshot of the source."""
        logger.info(f"Fetching schema snapshot from {self.source.base_url}")
        return self.source.get("/schema/snapshot") or {}

    def diff(self, snapshot: Dict[str, Any]) -> SchemaDiff:
        """
        Ask the target for the diff between its schema and ``snapshot``.

        An empty (204) response means the schemas already match.
        """
        logger.info(f"Computing schema diff on {self.target.base_url}")
        data = self.target.post("/schema/diff", snapshot)
        diff = SchemaDiff.from_dict(data)
        logger.info(f"Target reported {diff.change_count} schema differences")
        return diff

    def apply(self, diff: SchemaDiff) -> SchemaApplyResult:
        """
        Apply a diff on the target.

        An empty diff is refused without sending a request.
        """
        counts = {
            "collections": len(diff.collections),
            "fields": len(diff.fields),
            "relations": len(diff.relations),
        }
        if diff.is_empty:
            logger.warning(NOTHING_TO_APPLY)
            return SchemaApplyResult(SchemaApplyStatus.NOTHING_TO_APPLY, NOTHING_TO_APPLY, diff=diff, counts=counts)

        logger.debug(f"Applying schema changes for {', '.join(diff.touched_collections())}")
        try:
            self.target.post("/schema/apply", diff.to_dict())
        except PlatformAPIError as e:
            logger.error(f"Schema apply failed: {e.message}")
            return SchemaApplyResult(
                SchemaApplyStatus.FAILED,
                f"Schema apply failed: {e.message}",
                diff=diff,
                error=e.to_dict(),
                counts=counts,
            )

        message = (
            f"Applied {counts['collections']} collection, {counts['fields']} field "
            f"and {counts['relations']} relation changes"
        )
        logger.info(message)
        return SchemaApplyResult(SchemaApplyStatus.APPLIED, message, diff=diff, counts=counts)

    def preview(self, session: MigrationSession) -> SchemaDiff:
        """Snapshot, diff and filter without applying."""
        raw = self.diff(self.snapshot())
        return filter_schema_diff(raw, session.selection, session.include_system, session.system_prefix)

    def migrate_selection(self, session: MigrationSession) -> SchemaApplyResult:
        """
        Run snapshot, diff, filter and apply for the session's selection.

        The selection is frozen before the apply request is built.

        Args:
            session: Migration session holding the (closed) selection

        Returns:
            SchemaApplyResult
        """
        selection = session.freeze()
        try:
            raw = self.diff(self.snapshot())
        except PlatformAPIError as e:
            logger.error(f"Schema diff failed: {e.message}")
            return SchemaApplyResult(SchemaApplyStatus.FAILED, f"Schema diff failed: {e.message}", error=e.to_dict())

        filtered = filter_schema_diff(raw, selection, session.include_system, session.system_prefix)
        return self.apply(filtered)
