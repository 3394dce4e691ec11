"""Data models for the migration engine."""

from .schema import (
    SYSTEM_PREFIX,
    RelationType,
    ChangeKind,
    CollectionDescriptor,
    FieldDescriptor,
    RelationDescriptor,
    ChangeRecord,
    DiffEntry,
    SchemaDiff,
    SchemaMetadata,
    is_system_collection,
)
from .migration import (
    ConnectionConfig,
    AccessControlOptions,
    MigrationConfig,
    MigrationSession,
    MigrationPlan,
    MigrationRun,
    MigrationStep,
    MigrationStatus,
    CollectionProgress,
    SelectionFrozenError,
)
from .record import (
    SourceRecord,
    ImportRecord,
    ImportStatus,
    ImportAction,
    UpsertOutcome,
    UpsertResult,
    ErrorDetail,
    UnitResult,
)
from .flow import (
    ConflictResolution,
    EnvironmentMapping,
    Flow,
    Operation,
    FlowValidationResult,
    FlowImportResult,
)
from .file import (
    Folder,
    FileAsset,
    FileImportResult,
)
from .access import (
    Role,
    Policy,
    Permission,
    Access,
    AccessControlData,
    AccessControlResult,
)

__all__ = [
    "SYSTEM_PREFIX",
    "RelationType",
    "ChangeKind",
    "CollectionDescriptor",
    "FieldDescriptor",
    "RelationDescriptor",
    "ChangeRecord",
    "DiffEntry",
    "SchemaDiff",
    "SchemaMetadata",
    "is_system_collection",
    "ConnectionConfig",
    "AccessControlOptions",
    "MigrationConfig",
    "MigrationSession",
    "MigrationPlan",
    "MigrationRun",
    "MigrationStep",
    "MigrationStatus",
    "CollectionProgress",
    "SelectionFrozenError",
    "SourceRecord",
    "ImportRecord",
    "ImportStatus",
    "ImportAction",
    "UpsertOutcome",
    "UpsertResult",
    "ErrorDetail",
    "UnitResult",
    "ConflictResolution",
    "EnvironmentMapping",
    "Flow",
    "Operation",
    "FlowValidationResult",
    "FlowImportResult",
    "Folder",
    "FileAsset",
    "FileImportResult",
    "Role",
    "Policy",
    "Permission",
    "Access",
    "AccessControlData",
    "AccessControlResult",
]
