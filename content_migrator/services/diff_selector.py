"""Filter a server-computed schema diff down to a selection of collections."""

import logging
from typing import Iterable, List

from ..models.schema import SYSTEM_PREFIX, DiffEntry, SchemaDiff, is_system_collection

logger = logging.getLogger(__name__)

NOTHING_TO_APPLY = "Nothing to apply for this selection"


class DiffSelector:
    """
    Keeps the diff entries that belong to a selection.

    Supports:
    - Collection and field entries owned by a selected collection
    - Relation entries touching any selected participant (either side)
    - Dropping entries without a New/Edit/Delete change
    """

    def __init__(
        self,
        selection: Iterable[str],
        include_system: bool = False,
        system_prefix: str = SYSTEM_PREFIX
    ):
        self.selection = set(selection)
        self.include_system = include_system
        self.system_prefix = system_prefix

    def accepts(self, collection: str) -> bool:
        """Check whether a collection is selected and visible."""
        if collection not in self.selection:
            return False
        return self.include_system or not is_system_collection(collection, self.system_prefix)

    def keep_collection(self, entry: DiffEntry) -> bool:
        return self.accepts(entry.collection)

    def keep_field(self, entry: DiffEntry) -> bool:
        return self.accepts(entry.collection)

    def keep_relation(self, entry: DiffEntry) -> bool:
        return any(self.accepts(name) for name in entry.relation_participants())

    def filter(self, diff: SchemaDiff) -> SchemaDiff:
        """
        Filter a diff.

        Args:
            diff: Raw diff returned by the target

        Returns:
            New SchemaDiff with the same hash and the kept entries in their
            original order
        """
        filtered = SchemaDiff(
            hash=diff.hash,
            collections=self._effective(e for e in diff.collections if self.keep_collection(e)),
            fields=self._effective(e for e in diff.fields if self.keep_field(e)),
            relations=self._effective(e for e in diff.relations if self.keep_relation(e)),
        )

        logger.info(
            f"Filtered schema diff from {diff.change_count} to {filtered.change_count} entries "
            f"({len(filtered.collections)} collections, {len(filtered.fields)} fields, "
            f"{len(filtered.relations)} relations)"
        )
        return filtered

    @staticmethod
    def _effective(entries: Iterable[DiffEntry]) -> List[DiffEntry]:
        kept = []
        for entry in entries:
            if entry.has_changes:
                kept.append(entry)
            else:
                logger.debug(f"Dropping diff entry without changes: {entry.collection}.{entry.field or ''}")
        return kept


def filter_schema_diff(
    diff: SchemaDiff,
    selection: Iterable[str],
    include_system: bool = False,
    system_prefix: str = SYSTEM_PREFIX
) -> SchemaDiff:
    """Filter ``diff`` to ``selection``. The hash is forwarded unchanged."""
    return DiffSelector(selection, include_system, system_prefix).filter(diff)
