"""Migration execution models: configuration, session, plan and run report."""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple
from enum import Enum
from datetime import datetime
import json
import os
import threading
import uuid

from .flow import ConflictResolution, EnvironmentMapping
from .schema import SYSTEM_PREFIX


class MigrationStatus(str, Enum):
    """Status of a migration run or of one of its steps."""
    PENDING = "pending"
    CONNECTING = "connecting"
    PLANNING = "planning"
    MIGRATING_SCHEMA = "migrating_schema"
    MIGRATING_FILES = "migrating_files"
    MIGRATING_DATA = "migrating_data"
    MIGRATING_FLOWS = "migrating_flows"
    MIGRATING_ACCESS = "migrating_access"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    SKIPPED = "skipped"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ConnectionConfig:
    """Base URL and static token of one platform instance."""
    url: str
    token: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation (token is never written out)."""
        return {"url": self.url, "has_token": bool(self.token)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConnectionConfig":
        return cls(url=data.get("url", ""), token=data.get("token", ""))

    @classmethod
    def from_env(cls, prefix: str) -> Optional["ConnectionConfig"]:
        """Read ``{PREFIX}_URL`` and ``{PREFIX}_TOKEN`` from the environment."""
        url = os.environ.get(f"{prefix}_URL")
        token = os.environ.get(f"{prefix}_TOKEN")
        if not url or not token:
            return None
        return cls(url=url, token=token)


@dataclass
class AccessControlOptions:
    """Options for migrating roles, policies and permissions."""
    preserve_role_ids: bool = True
    skip_admin_roles: bool = True
    preserve_policy_ids: bool = True
    skip_admin_policies: bool = True
    skip_invalid_permissions: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preserve_role_ids": self.preserve_role_ids,
            "skip_admin_roles": self.skip_admin_roles,
            "preserve_policy_ids": self.preserve_policy_ids,
            "skip_admin_policies": self.skip_admin_policies,
            "skip_invalid_permissions": self.skip_invalid_permissions,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccessControlOptions":
        defaults = cls()
        return cls(**{k: data.get(k, getattr(defaults, k)) for k in defaults.to_dict()})


@dataclass
class CollectionProgress:
    """Progress of one collection or flow."""
    processed: int = 0
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    status: MigrationStatus = MigrationStatus.PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "status": self.status.value,
        }


class SelectionFrozenError(RuntimeError):
    """Raised when a frozen selection is modified."""


class MigrationSession:
    """
    Selection and progress state shared by the engines for one run.

    The selection is mutable until :meth:`freeze` is called at apply time.
    The progress map has a single writer (the running loader); readers get
    copies.
    """

    def __init__(
        self,
        selection: Optional[Iterable[str]] = None,
        include_system: bool = False,
        system_prefix: str = SYSTEM_PREFIX
    ):
        self.include_system = include_system
        self.system_prefix = system_prefix
        self._selection: List[str] = []
        self._frozen = False
        self._progress: Dict[str, CollectionProgress] = {}
        self._lock = threading.Lock()
        for name in selection or []:
            self.select(name)

    @property
    def selection(self) -> List[str]:
        """Selected collections in discovery order."""
        return list(self._selection)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def select(self, collection: str) -> None:
        if self._frozen:
            raise SelectionFrozenError("Selection is frozen for apply")
        if collection not in self._selection:
            self._selection.append(collection)

    def deselect(self, collection: str) -> None:
        if self._frozen:
            raise SelectionFrozenError("Selection is frozen for apply")
        if collection in self._selection:
            self._selection.remove(collection)

    def replace_selection(self, collections: Iterable[str]) -> None:
        if self._frozen:
            raise SelectionFrozenError("Selection is frozen for apply")
        self._selection = []
        for name in collections:
            if name not in self._selection:
                self._selection.append(name)

    def freeze(self) -> List[str]:
        """Freeze the selection and return it."""
        self._frozen = True
        return self.selection

    def update_progress(self, name: str, **changes: Any) -> CollectionProgress:
        """Replace the progress entry for ``name`` with updated values."""
        with self._lock:
            current = self._progress.get(name, CollectionProgress())
            values = {**current.__dict__, **changes}
            updated = CollectionProgress(**values)
            self._progress[name] = updated
            return updated

    def get_progress(self, name: str) -> Optional[CollectionProgress]:
        with self._lock:
            entry = self._progress.get(name)
            return CollectionProgress(**entry.__dict__) if entry else None

    def progress_snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {name: p.to_dict() for name, p in self._progress.items()}


@dataclass
class MigrationPlan:
    """Ordered collections for a closed selection."""
    order: List[str] = field(default_factory=list)
    edges: List[Tuple[str, str]] = field(default_factory=list)  # (one side, many side)
    violated_edges: List[Tuple[str, str]] = field(default_factory=list)
    cycles: List[List[str]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def has_cycles(self) -> bool:
        return bool(self.cycles)

    def dependencies_of(self, collection: str) -> List[str]:
        """Collections that must be migrated before ``collection``."""
        return [one for one, many in self.edges if many == collection]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order": self.order,
            "edges": [list(e) for e in self.edges],
            "violated_edges": [list(e) for e in self.violated_edges],
            "cycles": self.cycles,
            "warnings": self.warnings,
        }


@dataclass
class MigrationStep:
    """A single step in a migration run."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    entity: str = ""
    status: MigrationStatus = MigrationStatus.PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    records_processed: int = 0
    records_succeeded: int = 0
    records_failed: int = 0
    records_skipped: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "entity": self.entity,
            "status": self.status.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "records_processed": self.records_processed,
            "records_succeeded": self.records_succeeded,
            "records_failed": self.records_failed,
            "records_skipped": self.records_skipped,
            "errors": self.errors,
            "warnings": self.warnings,
            "details": self.details,
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None


@dataclass
class MigrationRun:
    """A complete migration run."""
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    status: MigrationStatus = MigrationStatus.PENDING
    dry_run: bool = False

    created_at: datetime = field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    plan: Optional[MigrationPlan] = None
    steps: List[MigrationStep] = field(default_factory=list)
    current_step: Optional[str] = None

    total_records_processed: int = 0
    total_records_succeeded: int = 0
    total_records_failed: int = 0
    total_records_skipped: int = 0

    errors: List[Dict[str, Any]] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "dry_run": self.dry_run,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "plan": self.plan.to_dict() if self.plan else None,
            "steps": [s.to_dict() for s in self.steps],
            "current_step": self.current_step,
            "total_records_processed": self.total_records_processed,
            "total_records_succeeded": self.total_records_succeeded,
            "total_records_failed": self.total_records_failed,
            "total_records_skipped": self.total_records_skipped,
            "errors": self.errors,
            "warnings": self.warnings,
        }

    @property
    def duration_seconds(self) -> Optional[float]:
        """Get duration in seconds."""
        if self.started_at and self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return None

    def add_step(self, name: str, entity: str) -> MigrationStep:
        """Add a new step to the run."""
        step = MigrationStep(name=name, entity=entity)
        self.steps.append(step)
        return step

    def get_step(self, step_id: str) -> Optional[MigrationStep]:
        """Get a step by ID."""
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    def update_totals(self) -> None:
        """Update total statistics from steps."""
        self.total_records_processed = sum(s.records_processed for s in self.steps)
        self.total_records_succeeded = sum(s.records_succeeded for s in self.steps)
        self.total_records_failed = sum(s.records_failed for s in self.steps)
        self.total_records_skipped = sum(s.records_skipped for s in self.steps)


@dataclass
class MigrationConfig:
    """Configuration for a migration run."""
    name: str
    source: Optional[ConnectionConfig] = None
    target: Optional[ConnectionConfig] = None

    # Selection
    collections: List[str] = field(default_factory=list)
    include_system: bool = False
    system_prefix: str = SYSTEM_PREFIX
    expand_closure: bool = True
    custom_order: List[str] = field(default_factory=list)

    # Phases
    migrate_schema: bool = True
    migrate_data: bool = True
    migrate_files: bool = False
    file_folders: List[str] = field(default_factory=list)  # Folder IDs; empty selects all
    preserve_file_ids: bool = True
    flows: List[str] = field(default_factory=list)  # Flow IDs; ["*"] selects all
    preserve_flow_ids: bool = True
    flow_conflict: ConflictResolution = ConflictResolution.OVERWRITE
    flow_environment: EnvironmentMapping = field(default_factory=EnvironmentMapping)
    migrate_access_control: bool = False
    access_control: AccessControlOptions = field(default_factory=AccessControlOptions)

    # Data options
    item_limit: Optional[int] = None
    fields: Dict[str, List[str]] = field(default_factory=dict)  # Collection -> field subset
    title_filter: Optional[str] = None
    title_field: str = "translations.title"
    concurrency: int = 1
    page_size: int = 100

    # Execution
    dry_run: bool = False
    timeout: float = 30.0

    # Output
    output_dir: str = "./data"
    save_report: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "name": self.name,
            "source": self.source.to_dict() if self.source else None,
            "target": self.target.to_dict() if self.target else None,
            "collections": self.collections,
            "include_system": self.include_system,
            "system_prefix": self.system_prefix,
            "expand_closure": self.expand_closure,
            "custom_order": self.custom_order,
            "migrate_schema": self.migrate_schema,
            "migrate_data": self.migrate_data,
            "migrate_files": self.migrate_files,
            "file_folders": self.file_folders,
            "preserve_file_ids": self.preserve_file_ids,
            "flows": self.flows,
            "preserve_flow_ids": self.preserve_flow_ids,
            "flow_conflict": self.flow_conflict.value,
            "flow_environment": self.flow_environment.to_dict(),
            "migrate_access_control": self.migrate_access_control,
            "access_control": self.access_control.to_dict(),
            "item_limit": self.item_limit,
            "fields": self.fields,
            "title_filter": self.title_filter,
            "title_field": self.title_field,
            "concurrency": self.concurrency,
            "page_size": self.page_size,
            "dry_run": self.dry_run,
            "timeout": self.timeout,
            "output_dir": self.output_dir,
            "save_report": self.save_report,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MigrationConfig":
        """Create from dictionary representation, falling back to the environment for connections."""
        source = ConnectionConfig.from_dict(data["source"]) if data.get("source") else ConnectionConfig.from_env("SOURCE")
        target = ConnectionConfig.from_dict(data["target"]) if data.get("target") else ConnectionConfig.from_env("TARGET")

        return cls(
            name=data.get("name", ""),
            source=source,
            target=target,
            collections=list(data.get("collections", [])),
            include_system=data.get("include_system", False),
            system_prefix=data.get("system_prefix", SYSTEM_PREFIX),
            expand_closure=data.get("expand_closure", True),
            custom_order=list(data.get("custom_order", [])),
            migrate_schema=data.get("migrate_schema", True),
            migrate_data=data.get("migrate_data", True),
            migrate_files=data.get("migrate_files", False),
            file_folders=list(data.get("file_folders", [])),
            preserve_file_ids=data.get("preserve_file_ids", True),
            flows=list(data.get("flows", [])),
            preserve_flow_ids=data.get("preserve_flow_ids", True),
            flow_conflict=ConflictResolution(data.get("flow_conflict") or ConflictResolution.OVERWRITE.value),
            flow_environment=EnvironmentMapping.from_dict(data.get("flow_environment")),
            migrate_access_control=data.get("migrate_access_control", False),
            access_control=AccessControlOptions.from_dict(data.get("access_control", {})),
            item_limit=data.get("item_limit"),
            fields=dict(data.get("fields", {})),
            title_filter=data.get("title_filter"),
            title_field=data.get("title_field") or "translations.title",
            concurrency=max(1, int(data.get("concurrency", 1))),
            page_size=data.get("page_size", 100),
            dry_run=data.get("dry_run", False),
            timeout=data.get("timeout", 30.0),
            output_dir=data.get("output_dir", "./data"),
            save_report=data.get("save_report", True),
        )

    @classmethod
    def from_json_file(cls, file_path: str) -> "MigrationConfig":
        """Load configuration from a JSON file."""
        with open(file_path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)
