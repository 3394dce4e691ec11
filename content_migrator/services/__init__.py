"""Planning and schema services for the migration engine."""

from .relation_graph import RelationGraph
from .migration_order import (
    calculate_migration_order,
    find_cycles,
    group_into_batches,
    precedence_edges,
    validate_custom_order,
)
from .diff_selector import DiffSelector, NOTHING_TO_APPLY, filter_schema_diff
from .schema_migrator import SchemaApplyResult, SchemaApplyStatus, SchemaMigrator

__all__ = [
    "RelationGraph",
    "calculate_migration_order",
    "find_cycles",
    "group_into_batches",
    "precedence_edges",
    "validate_custom_order",
    "DiffSelector",
    "NOTHING_TO_APPLY",
    "filter_schema_diff",
    "SchemaApplyResult",
    "SchemaApplyStatus",
    "SchemaMigrator",
]
